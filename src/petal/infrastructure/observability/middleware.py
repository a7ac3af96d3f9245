"""Middleware for observability: request/response logging."""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from petal.infrastructure.observability.logging import (
    get_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


# Hey future me, this middleware runs before every route handler. It picks up the
# caller's X-Correlation-ID (or makes one), so every log line of a sync triggered over
# HTTP carries the same id, and echoes it back in the response header for support tickets.
# We never log headers - the Authorization header is a live Spotify token!
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests/responses and propagate the correlation id."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        set_correlation_id(request.headers.get(CORRELATION_HEADER))

        method = request.method
        path = request.url.path

        logger.info(
            f"→ {method} {path}",
            extra={
                "method": method,
                "path": path,
                "query_params": str(request.query_params),
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                f"Request failed: {method} {path}",
                extra={
                    "method": method,
                    "path": path,
                    "duration_ms": int((time.monotonic() - start_time) * 1000),
                    "error_type": type(e).__name__,
                },
            )
            raise

        duration_ms = int((time.monotonic() - start_time) * 1000)
        status_mark = "✓" if response.status_code < 400 else "✗"
        logger.info(
            f"{status_mark} {method} {path} → {response.status_code} ({duration_ms}ms)",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers[CORRELATION_HEADER] = get_correlation_id()
        return response
