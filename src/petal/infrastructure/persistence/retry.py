# Hey future me - this is THE FIX for "database is locked" errors!
#
# SQLite has exactly ONE writer at a time. Five users hitting refresh at once means
# five syncs firing single-row upserts at the same file, and some of them will see
# "database is locked". Those locks are TEMPORARY: wait a bit, try again, done.
#
# USAGE:
#   @with_db_retry()
#   async def _insert(self, draft): ...
#
# IMPORTANT: the decorated function must open its OWN session inside, so every retry
# starts from a clean transaction. Never decorate something that receives a session!
"""Database retry utilities for handling SQLite lock errors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class DatabaseLockMetrics:
    """Counts lock events so tests and health output can see how often we wait."""

    _instance: DatabaseLockMetrics | None = None

    def __init__(self) -> None:
        self.lock_retries: int = 0
        self.lock_failures: int = 0

    @classmethod
    def get_instance(cls) -> DatabaseLockMetrics:
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_stats(self) -> dict[str, Any]:
        return {"lock_retries": self.lock_retries, "lock_failures": self.lock_failures}

    def reset(self) -> None:
        """Reset all counters (for testing)."""
        self.lock_retries = 0
        self.lock_failures = 0


def is_lock_error(exception: BaseException) -> bool:
    """True if this is a retryable SQLite lock error."""
    if not isinstance(exception, OperationalError):
        return False
    error_msg = str(exception).lower()
    return "locked" in error_msg or "busy" in error_msg


def with_db_retry(
    max_attempts: int = 5,
    initial_delay: float = 0.1,
    max_delay: float = 2.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an async storage operation on SQLite lock errors.

    Backoff is exponential (0.1s → 0.2s → 0.4s ..., capped at max_delay).
    Only lock/busy OperationalErrors are retried, everything else is raised
    immediately.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            metrics = DatabaseLockMetrics.get_instance()
            delay = initial_delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e):
                        raise
                    if attempt >= max_attempts:
                        metrics.lock_failures += 1
                        logger.error(
                            "Database locked after %d attempts, giving up: %s",
                            max_attempts,
                            func.__qualname__,
                        )
                        raise

                    metrics.lock_retries += 1
                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        delay,
                        func.__qualname__,
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)

            raise RuntimeError("Unexpected state in retry decorator")

        return wrapper

    return decorator
