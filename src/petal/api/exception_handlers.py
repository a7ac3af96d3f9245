"""Custom exception handlers for FastAPI application.

Converts domain exceptions into JSON responses with proper status codes. The
mobile client keys its behaviour off the status:
- 401 → prompt Spotify re-authentication
- 429 → wait Retry-After seconds, keep showing cached data
- 502/500 → keep showing cached data with a soft error indicator
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from petal.domain.exceptions import (
    AuthExpired,
    ConfigurationError,
    EntityNotFoundException,
    NetworkError,
    RemotePayloadError,
    StorageError,
    SyncThrottled,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int, message: str, error: str, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "error": error},
        headers=headers,
    )


# Hey future me, register these ONCE in create_app() before any request arrives. Starlette
# picks the handler by walking the exception's MRO, so the most specific registered class
# wins. Anything NOT registered here (a bug) becomes a plain 500 and gets logged by the
# request middleware with full traceback.
def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for domain and sync failure exceptions."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning("Validation error at %s: %s", request.url.path, exc.message)
        return _error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY, exc.message, "validation_error"
        )

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
        )
        return _error_response(status.HTTP_404_NOT_FOUND, exc.message, "not_found")

    @app.exception_handler(AuthExpired)
    async def auth_expired_handler(request: Request, exc: AuthExpired) -> JSONResponse:
        logger.info("Spotify credentials rejected at %s", request.url.path)
        return _error_response(
            status.HTTP_401_UNAUTHORIZED,
            exc.message,
            "auth_expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(SyncThrottled)
    async def sync_throttled_handler(request: Request, exc: SyncThrottled) -> JSONResponse:
        retry_after = max(1, math.ceil(exc.retry_after))
        return _error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            exc.message,
            "sync_throttled",
            headers={"Retry-After": str(retry_after)},
        )

    @app.exception_handler(NetworkError)
    async def network_error_handler(request: Request, exc: NetworkError) -> JSONResponse:
        logger.warning(
            "Spotify unavailable at %s: %s (upstream status %s)",
            request.url.path,
            exc.message,
            exc.status_code,
        )
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after is not None else None
        return _error_response(
            status.HTTP_502_BAD_GATEWAY, exc.message, "network_error", headers=headers
        )

    @app.exception_handler(RemotePayloadError)
    async def remote_payload_error_handler(
        request: Request, exc: RemotePayloadError
    ) -> JSONResponse:
        logger.error("Undecodable Spotify payload at %s: %s", request.url.path, exc.message)
        return _error_response(status.HTTP_502_BAD_GATEWAY, exc.message, "remote_payload_error")

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure at %s: %s", request.url.path, exc.message)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Storage failure while syncing, please retry later",
            "storage_error",
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.error("Configuration error at %s: %s", request.url.path, exc.message)
        return _error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE, exc.message, "configuration_error"
        )
