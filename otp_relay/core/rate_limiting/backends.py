"""Fixed-window rate limiter backends."""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

# Lua script for atomic fixed-window admission (check + increment in one operation)
# KEYS[1] = rate limit key
# ARGV[1] = max requests per window
# ARGV[2] = window_seconds
# Returns: 1 if admitted (counter incremented), 0 if limited (counter untouched)
_FIXED_WINDOW_LUA_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

local current = tonumber(redis.call('GET', key) or '0')
if current >= limit then
    return 0
end

redis.call('INCR', key)
if redis.call('TTL', key) < 0 then
    redis.call('EXPIRE', key, window)
end
return 1
"""


@dataclass
class RateLimitEntry:
    """Counter for one key within its current window."""

    count: int
    window_reset_at: float


class RateLimiterBackend(ABC):
    """Abstract base class for rate limiter backends."""

    @abstractmethod
    def try_acquire(self, identifier: str, max_requests: int, window_seconds: int) -> bool:
        """
        Atomically check the window for ``identifier`` and count one request.

        Args:
            identifier: Rate limit key
            max_requests: Requests admitted per window
            window_seconds: Window length in seconds

        Returns:
            True if the request is admitted (counter incremented),
            False if the window is exhausted (counter untouched)
        """

    @abstractmethod
    def reset(self, identifier: str) -> None:
        """Forget the counter for an identifier."""

    @abstractmethod
    def cleanup_expired(self) -> int:
        """
        Drop entries whose window has elapsed.

        Returns:
            Number of entries removed
        """

    @property
    @abstractmethod
    def is_distributed(self) -> bool:
        """Check if backend uses distributed storage."""


class InMemoryBackend(RateLimiterBackend):
    """In-process rate limiter backend (single-worker only)."""

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize in-memory backend.

        Args:
            clock: Returns the current time in seconds
        """
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def try_acquire(self, identifier: str, max_requests: int, window_seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            entry = self._entries.get(identifier)

            if entry is None or now > entry.window_reset_at:
                self._entries[identifier] = RateLimitEntry(
                    count=1, window_reset_at=now + window_seconds
                )
                return True

            if entry.count >= max_requests:
                return False

            entry.count += 1
            return True

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._entries.pop(identifier, None)

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if now > e.window_reset_at]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def get_entry(self, identifier: str) -> Optional[RateLimitEntry]:
        """Return a snapshot of the entry for an identifier, if any."""
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None:
                return None
            return RateLimitEntry(count=entry.count, window_reset_at=entry.window_reset_at)

    @property
    def is_distributed(self) -> bool:
        return False


class RedisBackend(RateLimiterBackend):
    """Redis-based distributed rate limiter backend."""

    def __init__(self, redis_client: Any, key_prefix: str = "otp_rl"):
        """
        Initialize Redis backend.

        Args:
            redis_client: Redis client instance
            key_prefix: Namespace for rate limit keys
        """
        self._redis = redis_client
        self._key_prefix = key_prefix
        self._script = self._redis.register_script(_FIXED_WINDOW_LUA_SCRIPT)

    def _key(self, identifier: str) -> str:
        return f"{self._key_prefix}:{identifier}"

    def try_acquire(self, identifier: str, max_requests: int, window_seconds: int) -> bool:
        result = self._script(keys=[self._key(identifier)], args=[max_requests, window_seconds])
        return bool(int(result))

    def reset(self, identifier: str) -> None:
        self._redis.delete(self._key(identifier))

    def cleanup_expired(self) -> int:
        # Keys carry a TTL, Redis expires them itself
        return 0

    @property
    def is_distributed(self) -> bool:
        return True
