"""Confidence scoring for OTP candidates.

A candidate is trusted when it is not a placeholder-looking code and at least
one of these holds: the sender is allow-listed, the subject looks
OTP-related, or OTP wording appears close to the candidate.
"""

import re
from dataclasses import dataclass
from itertools import groupby
from typing import List, Optional, Sequence

from loguru import logger

from otp_relay.constants import OTP, TRIVIAL_CODES, OTPKeywords
from otp_relay.models import Candidate, MailMessage
from otp_relay.utils.masking import mask_otp

from .message_filter import MessageFilter

_REPEATED_DIGITS = re.compile(r"(\d)\1{5}")
_CONTEXT_KEYWORDS = re.compile(OTPKeywords.CONTEXT_PATTERN, re.IGNORECASE)


def is_trivial_code(code: str) -> bool:
    """Check for repeated digits and common placeholder sequences."""
    return bool(_REPEATED_DIGITS.search(code)) or code in TRIVIAL_CODES


def is_subject_relevant(subject: str) -> bool:
    """Check whether the subject contains an OTP keyword."""
    subject = (subject or "").lower()
    return any(keyword in subject for keyword in OTPKeywords.SUBJECT)


def has_keyword_context(
    text: str, candidate: Candidate, window: int = OTP.CONTEXT_WINDOW_CHARS
) -> bool:
    """Check the characters around a candidate for OTP wording."""
    start = max(0, candidate.source_position - window)
    end = min(len(text), candidate.source_position + len(candidate.text) + window)
    return bool(_CONTEXT_KEYWORDS.search(text[start:end]))


@dataclass
class ScoredCandidate:
    """Accepted candidate with the signals that supported it."""

    candidate: Candidate
    subject_relevant: bool
    sender_allowlisted: bool
    context_match: bool

    @property
    def relevance(self) -> str:
        return "high" if self.subject_relevant else "low"


class ConfidenceScorer:
    """Decides which candidate, if any, from a message is the real code."""

    def __init__(self, context_window: int = OTP.CONTEXT_WINDOW_CHARS):
        self._context_window = context_window

    def score(
        self,
        candidate: Candidate,
        message: MailMessage,
        search_text: str,
        message_filter: MessageFilter,
    ) -> Optional[ScoredCandidate]:
        """
        Score one candidate.

        Args:
            candidate: Candidate to judge
            message: Message it came from
            search_text: Text the candidate position refers to
            message_filter: Filters active for the account

        Returns:
            ScoredCandidate if accepted, None if rejected
        """
        if is_trivial_code(candidate.text):
            logger.debug(f"Rejected trivial OTP candidate {mask_otp(candidate.text)}")
            return None

        sender_ok = message_filter.sender_allowlisted(message.from_address)
        subject_ok = is_subject_relevant(message.subject)
        context_ok = has_keyword_context(search_text, candidate, self._context_window)

        if not (sender_ok or subject_ok or context_ok):
            logger.debug(
                f"Low confidence OTP candidate {mask_otp(candidate.text)} "
                f"(context: {context_ok}, sender: {sender_ok}, subject: {subject_ok})"
            )
            return None

        return ScoredCandidate(candidate, subject_ok, sender_ok, context_ok)

    def select(
        self,
        candidates: Sequence[Candidate],
        message: MailMessage,
        search_text: str,
        message_filter: MessageFilter,
    ) -> Optional[ScoredCandidate]:
        """
        Pick the accepted candidate for a message.

        Candidates are taken pattern by pattern. Within a pattern, a
        subject-relevant message prefers the first match and any other
        message prefers the last. The first accepted candidate wins.
        """
        prefer_first = is_subject_relevant(message.subject)
        for _, group in groupby(candidates, key=lambda c: c.pattern_id):
            ordered: List[Candidate] = list(group)
            if not prefer_first:
                ordered.reverse()
            for candidate in ordered:
                scored = self.score(candidate, message, search_text, message_filter)
                if scored is not None:
                    return scored
        return None
