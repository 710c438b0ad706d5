"""TOTP constants."""

from typing import Final, FrozenSet


class TOTPDefaults:
    """Default TOTP parameters (RFC 6238)."""

    DIGITS: Final[int] = 6
    PERIOD_SECONDS: Final[int] = 30
    ALGORITHM: Final[str] = "SHA1"
    MIN_SECRET_LENGTH: Final[int] = 16
    SUPPORTED_ALGORITHMS: Final[FrozenSet[str]] = frozenset({"SHA1", "SHA256", "SHA512"})
