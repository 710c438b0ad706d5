"""Rate limiting constants."""

from typing import Final


class RateLimits:
    """Per (user, product) OTP request limits."""

    OTP_MAX_REQUESTS: Final[int] = 10
    OTP_WINDOW_SECONDS: Final[int] = 60
    REDIS_KEY_PREFIX: Final[str] = "otp_rl"
