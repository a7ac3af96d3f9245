"""Operation timing helpers for consistent start/end logs.

USAGE:
    async with log_operation(logger, "catalog_sync", user_id="u1", kind="playlists"):
        await do_the_sync()
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


# Yo, wraps any awaitable chunk of work with "{operation}.started" / ".completed" /
# ".failed" logs and a duration_ms field. Exceptions are logged and RE-RAISED, never eaten.
# Expected failures (throttle, expired token) are not errors from our side - pass their
# types in quiet_exceptions and they get logged at WARNING without a traceback.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    quiet_exceptions: tuple[type[BaseException], ...] = (),
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Log operation start/end with automatic timing.

    The yielded dict is merged into the completion log, so callers can attach
    results (counts etc.) while inside the block.
    """
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)
    result_fields: dict[str, Any] = {}

    try:
        yield result_fields
    except quiet_exceptions as e:
        logger.warning(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": int((time.monotonic() - start) * 1000),
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        raise
    except Exception as e:
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": int((time.monotonic() - start) * 1000),
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    logger.info(
        f"{operation}.completed",
        extra={
            **context,
            **result_fields,
            "duration_ms": int((time.monotonic() - start) * 1000),
        },
    )
