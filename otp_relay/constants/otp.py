"""OTP extraction constants."""

from typing import Final, FrozenSet, Tuple


class OTP:
    """Email OTP retrieval configuration."""

    DEFAULT_PATTERN: Final[str] = r"\b\d{6}\b"
    FETCH_LIMIT: Final[int] = 20
    TIME_WINDOW_HOURS: Final[int] = 24
    MAX_SEARCH_TEXT_CHARS: Final[int] = 10_000
    PATTERN_TIMEOUT_MS: Final[int] = 500
    CONTEXT_WINDOW_CHARS: Final[int] = 60
    MIN_CODE_LENGTH: Final[int] = 4
    MAX_CODE_LENGTH: Final[int] = 12
    IMAP_TIMEOUT_SECONDS: Final[int] = 15
    REQUEST_BUDGET_SECONDS: Final[int] = 60
    MAILBOX_FOLDER: Final[str] = "INBOX"


class OTPKeywords:
    """Keyword lists used to judge OTP relevance."""

    # Matched as lowercase substrings of the subject line
    SUBJECT: Final[Tuple[str, ...]] = (
        "verification",
        "code",
        "otp",
        "authenticate",
        "login",
        "signin",
        "security",
        "access",
        "confirm",
        "activate",
        "reset",
    )

    # Searched in the text surrounding a candidate
    CONTEXT_PATTERN: Final[str] = (
        r"(otp|code|verify|verification|login|sign\s?in|two[-\s]?factor|authentication|passcode)"
    )


# Placeholder-looking codes that are never trusted
TRIVIAL_CODES: Final[FrozenSet[str]] = frozenset(
    {"123456", "654321", "123123", "000000", "111111", "222222"}
)
