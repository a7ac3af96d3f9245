"""
Token bucket rate limiter for Spotify Web API calls.

Hey future me - ONE limiter instance is shared by every sync running in this process
(see get_spotify_limiter()). A full library sync of a big account is easily 40+ pages
per resource kind, and five kinds per user. Without a shared bucket a handful of users
hitting "refresh" at once turns into 429s for everybody.

ALGORITHM: token bucket
- Bucket holds up to max_tokens
- Tokens refill at refill_rate per second
- Every request takes one token, waits if the bucket is empty

429 HANDLING:
- Spotify sends Retry-After (seconds). We honour it, capped at max_backoff_seconds.
- Without Retry-After: exponential backoff 1s, 2s, 4s... The caller resets it with
  reset_backoff() once a request gets past the 429s. Leaving the `async with` block
  does NOT reset it: a 429 response leaves the block cleanly too.

USAGE:
    limiter = get_spotify_limiter()

    async with limiter:
        response = await client.get(url)

    if response.status_code == 429:
        await limiter.handle_rate_limit_response(retry_after)
    else:
        limiter.reset_backoff()
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Rate limiter configuration.

    Spotify allows roughly 180 requests per minute per app. We sustain 2/sec with a
    burst of 10 to keep some headroom.
    """

    max_tokens: int = 10
    refill_rate: float = 2.0  # tokens per second
    # Spotify can send Retry-After of several minutes under heavy load. Capping lower
    # than that means we retry too early and get 429 again immediately.
    max_backoff_seconds: float = 600.0
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0


@dataclass
class RateLimiter:
    """Token bucket rate limiter with adaptive 429 backoff."""

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"
    clock: Callable[[], float] = time.monotonic

    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default=0.0, init=False)
    _current_backoff: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.config.max_tokens)
        self._last_refill = self.clock()
        self._current_backoff = self.config.initial_backoff_seconds

    @classmethod
    def for_spotify(cls) -> "RateLimiter":
        """Limiter tuned for the Spotify Web API."""
        return cls(
            config=RateLimiterConfig(
                max_tokens=10,
                refill_rate=2.0,
                max_backoff_seconds=600.0,
                initial_backoff_seconds=1.0,
            ),
            name="spotify",
        )

    def _refill_tokens(self) -> None:
        now = self.clock()
        elapsed = now - self._last_refill
        self._tokens = min(
            float(self.config.max_tokens), self._tokens + elapsed * self.config.refill_rate
        )
        self._last_refill = now

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        while True:
            async with self._lock:
                self._refill_tokens()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait_time = (1.0 - self._tokens) / self.config.refill_rate

            logger.debug("RateLimiter[%s]: bucket empty, waiting %.2fs", self.name, wait_time)
            await asyncio.sleep(wait_time)

    async def handle_rate_limit_response(self, retry_after: int | None = None) -> float:
        """Back off after a 429.

        Args:
            retry_after: Retry-After header value in seconds, if Spotify sent one

        Returns:
            Seconds actually waited
        """
        async with self._lock:
            wait_time = float(retry_after) if retry_after is not None else self._current_backoff
            wait_time = min(wait_time, self.config.max_backoff_seconds)

            self._current_backoff = min(
                self._current_backoff * self.config.backoff_multiplier,
                self.config.max_backoff_seconds,
            )
            # Empty the bucket so concurrent callers wait too
            self._tokens = 0.0
            self._last_refill = self.clock()

        logger.warning(
            "RateLimiter[%s]: 429 rate limited, waiting %.1fs before retry",
            self.name,
            wait_time,
        )
        await asyncio.sleep(wait_time)
        return wait_time

    def reset_backoff(self) -> None:
        """Reset backoff after a successful request."""
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        return None

    @property
    def available_tokens(self) -> float:
        """Current token count (for debugging and tests)."""
        self._refill_tokens()
        return self._tokens

    @property
    def current_backoff(self) -> float:
        return self._current_backoff


_spotify_limiter: RateLimiter | None = None


def get_spotify_limiter() -> RateLimiter:
    """Get the process-wide Spotify rate limiter."""
    global _spotify_limiter
    if _spotify_limiter is None:
        _spotify_limiter = RateLimiter.for_spotify()
    return _spotify_limiter


def reset_spotify_limiter() -> None:
    """Drop the process-wide limiter (tests, each on its own event loop)."""
    global _spotify_limiter
    _spotify_limiter = None


__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
    "get_spotify_limiter",
    "reset_spotify_limiter",
]
