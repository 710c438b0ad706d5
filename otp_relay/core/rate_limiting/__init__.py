"""Rate limiting package."""

from .backends import InMemoryBackend, RateLimitEntry, RateLimiterBackend, RedisBackend
from .limiter import OTPRateLimiter, get_otp_rate_limiter, reset_otp_rate_limiter

__all__ = [
    "RateLimiterBackend",
    "RateLimitEntry",
    "InMemoryBackend",
    "RedisBackend",
    "OTPRateLimiter",
    "get_otp_rate_limiter",
    "reset_otp_rate_limiter",
]
