"""Per (user, product) rate limiter gating OTP and TOTP requests."""

import threading
from typing import Optional

from loguru import logger

from otp_relay.constants import RateLimits
from otp_relay.utils.masking import mask_database_url

from .backends import InMemoryBackend, RateLimiterBackend, RedisBackend


class OTPRateLimiter:
    """
    Fixed-window rate limiter keyed by (user_id, product).

    Supports both in-memory (single worker) and Redis (multi-worker) backends.
    """

    def __init__(
        self,
        max_requests: int = RateLimits.OTP_MAX_REQUESTS,
        window_seconds: int = RateLimits.OTP_WINDOW_SECONDS,
        backend: Optional[RateLimiterBackend] = None,
        redis_url: Optional[str] = None,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Requests admitted per window
            window_seconds: Window length in seconds
            backend: Optional backend instance (auto-detects if None)
            redis_url: Redis URL used by auto-detection
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds

        if backend is not None:
            self._backend = backend
        else:
            self._backend = self._auto_detect_backend(redis_url)

    def _auto_detect_backend(self, redis_url: Optional[str]) -> RateLimiterBackend:
        """
        Try Redis when a URL is configured, fall back to in-memory.

        Returns:
            RateLimiterBackend instance
        """
        if redis_url:
            try:
                import redis

                client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=5)
                client.ping()
                logger.info(f"OTPRateLimiter using Redis backend: {mask_database_url(redis_url)}")
                return RedisBackend(client, key_prefix=RateLimits.REDIS_KEY_PREFIX)
            except Exception as e:
                logger.critical(
                    f"REDIS FALLBACK: Failed to connect to Redis ({mask_database_url(redis_url)}), "
                    f"falling back to in-memory backend. Limits will NOT be shared across workers! "
                    f"Error: {e}"
                )

        logger.info("OTPRateLimiter using in-memory backend")
        return InMemoryBackend()

    @staticmethod
    def make_key(user_id: str, product_key: str) -> str:
        """Build the counter key for a (user, product) pair."""
        return f"{user_id}:{product_key}"

    @property
    def is_distributed(self) -> bool:
        """Check if rate limiter is using distributed storage."""
        return self._backend.is_distributed

    def check(self, user_id: str, product_key: str) -> bool:
        """
        Admit or deny one request for a (user, product) pair.

        The check and the increment happen as one atomic operation per key.

        Args:
            user_id: Requesting user
            product_key: Product slug or id

        Returns:
            True if the request may proceed, False if rate limited
        """
        allowed = self._backend.try_acquire(
            self.make_key(user_id, product_key), self.max_requests, self.window_seconds
        )
        if not allowed:
            logger.warning(f"Rate limit reached for user {user_id} on product {product_key}")
        return allowed

    def reset(self, user_id: str, product_key: str) -> None:
        """Clear the counter for a (user, product) pair."""
        self._backend.reset(self.make_key(user_id, product_key))

    def cleanup_expired(self) -> int:
        """Remove entries whose window has elapsed."""
        return self._backend.cleanup_expired()


# Global rate limiter instance
_otp_rate_limiter: Optional[OTPRateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_otp_rate_limiter() -> OTPRateLimiter:
    """
    Get or create the OTP rate limiter singleton from settings.

    Returns:
        OTPRateLimiter instance
    """
    global _otp_rate_limiter
    if _otp_rate_limiter is not None:
        return _otp_rate_limiter
    with _rate_limiter_lock:
        if _otp_rate_limiter is None:
            from otp_relay.core.config import get_settings

            settings = get_settings()
            _otp_rate_limiter = OTPRateLimiter(
                max_requests=settings.otp_rate_limit,
                window_seconds=settings.otp_rate_window_seconds,
                redis_url=settings.redis_url,
            )
        return _otp_rate_limiter


def reset_otp_rate_limiter() -> None:
    """Drop the global rate limiter instance. Thread-safe."""
    global _otp_rate_limiter
    with _rate_limiter_lock:
        _otp_rate_limiter = None
