"""Pattern matching utilities for OTP extraction.

This module provides utilities for extracting OTP candidates from text,
including HTML parsing, pattern set assembly and time-bounded regex matching.
"""

from dataclasses import dataclass
from html.parser import HTMLParser
from typing import List, Optional, Sequence

import regex
from loguru import logger

from otp_relay.constants import OTP
from otp_relay.models import Candidate


class HTMLTextExtractor(HTMLParser):
    """Extract plain text from HTML content."""

    def __init__(self):
        super().__init__()
        self.text = []
        self.in_script = False
        self.in_style = False

    def handle_starttag(self, tag, attrs):
        if tag.lower() == "script":
            self.in_script = True
        elif tag.lower() == "style":
            self.in_style = True

    def handle_endtag(self, tag):
        if tag.lower() == "script":
            self.in_script = False
        elif tag.lower() == "style":
            self.in_style = False

    def handle_data(self, data):
        if not self.in_script and not self.in_style:
            self.text.append(data)

    def get_text(self) -> str:
        return " ".join(self.text)


def html_to_text(html: str) -> str:
    """Strip tags, scripts and styles from an HTML document."""
    extractor = HTMLTextExtractor()
    extractor.feed(html)
    extractor.close()
    return extractor.get_text()


# Built-in patterns appended after the configured one. Keywords match in any
# case; the code itself must be digits or upper-case letters.
ENHANCED_OTP_PATTERNS: List[tuple] = [
    (
        "keyword_numeric",
        r"(?i:\b(?:code|otp|verification|authenticate|passcode)\b)[:\s-]*([0-9]{4,8})\b",
    ),
    (
        "keyword_alphanumeric",
        r"(?i:\b(?:code|otp|verification|authenticate|passcode)\b)[:\s-]*"
        r"((?=[A-Z]*\d)[A-Z0-9]{4,8})\b",
    ),
    ("pin_numeric", r"(?i:\bPIN\b)[:\s-]*([0-9]{4,8})\b"),
]


@dataclass(frozen=True)
class CompiledPattern:
    """A compiled extraction pattern with a stable identifier."""

    pattern_id: str
    source: str
    compiled: "regex.Pattern"


def build_pattern_set(
    configured: Optional[str], default_pattern: str = OTP.DEFAULT_PATTERN
) -> List[CompiledPattern]:
    """
    Assemble the ordered pattern set for one account.

    The configured pattern comes first. When it is missing or does not
    compile, the global default takes its place.

    Args:
        configured: Mapping override or account default pattern
        default_pattern: Global fallback pattern

    Returns:
        Ordered list of compiled patterns
    """
    primary: Optional[CompiledPattern] = None
    if configured:
        try:
            primary = CompiledPattern("configured", configured, regex.compile(configured))
        except regex.error as e:
            logger.warning(f"Configured OTP pattern is invalid, using default: {e}")

    if primary is None:
        primary = CompiledPattern("default", default_pattern, regex.compile(default_pattern))

    patterns = [primary]
    for pattern_id, source in ENHANCED_OTP_PATTERNS:
        patterns.append(CompiledPattern(pattern_id, source, regex.compile(source)))
    return patterns


def build_search_text(
    subject: str, text_body: str, html_body: str, limit: int = OTP.MAX_SEARCH_TEXT_CHARS
) -> str:
    """Join subject and bodies and cut the result to ``limit`` characters."""
    return f"{subject or ''} {text_body or ''} {html_body or ''}"[:limit]


class OTPPatternMatcher:
    """Regex-based OTP candidate extractor with a per-pattern time budget."""

    def __init__(
        self,
        timeout_ms: int = OTP.PATTERN_TIMEOUT_MS,
        max_text_chars: int = OTP.MAX_SEARCH_TEXT_CHARS,
        min_length: int = OTP.MIN_CODE_LENGTH,
        max_length: int = OTP.MAX_CODE_LENGTH,
    ):
        """
        Initialize OTP pattern matcher.

        Args:
            timeout_ms: Wall-clock budget for one pattern over one text
            max_text_chars: Text beyond this length is never scanned
            min_length: Shortest candidate kept
            max_length: Longest candidate kept
        """
        self._timeout = timeout_ms / 1000.0
        self._max_text_chars = max_text_chars
        self._min_length = min_length
        self._max_length = max_length

    def _scan(self, pattern: CompiledPattern, text: str) -> List[Candidate]:
        found = []
        for match in pattern.compiled.finditer(text, timeout=self._timeout):
            if match.re.groups >= 1 and match.group(1) is not None:
                value, position = match.group(1), match.start(1)
            else:
                value, position = match.group(0), match.start(0)
            if self._min_length <= len(value) <= self._max_length:
                found.append(Candidate(value, pattern.pattern_id, position))
        return found

    def extract(self, text: str, patterns: Sequence[CompiledPattern]) -> List[Candidate]:
        """
        Extract OTP candidates from text.

        Patterns run in order. A pattern that raises or exceeds its time
        budget is skipped; the remaining patterns still run.

        Args:
            text: Text to search
            patterns: Ordered pattern set

        Returns:
            Candidates in pattern order, then position order
        """
        if not text:
            return []

        text = text[: self._max_text_chars]
        candidates: List[Candidate] = []
        for pattern in patterns:
            try:
                candidates.extend(self._scan(pattern, text))
            except TimeoutError:
                logger.warning(f"OTP pattern '{pattern.pattern_id}' timed out, skipping")
            except (regex.error, IndexError) as e:
                logger.warning(f"OTP pattern '{pattern.pattern_id}' failed, skipping: {e}")

        if candidates:
            logger.debug(f"Extracted {len(candidates)} OTP candidate(s)")
        return candidates
