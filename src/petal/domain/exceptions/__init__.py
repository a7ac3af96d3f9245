"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # This is your base class - DON'T raise it directly! Always use a specific subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationError(DomainException):
    """Input validation failed.

    HTTP Status: 422

    Example:
        raise ValidationError("Playlist id cannot be empty")
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503 (Service Unavailable)
    """

    pass


# =============================================================================
# SYNC FAILURES
# Hey future me - everything CatalogSyncService.sync() can raise derives from
# SyncFailure. Callers catch SyncFailure and look at the subclass to decide:
# NetworkError/StorageError → keep showing old data + soft error,
# AuthExpired → prompt re-auth, SyncThrottled → just wait.
# Uniqueness races are NOT in here: they come back from the stores as an
# AlreadyExists outcome and get resolved inside the engine.
# =============================================================================


class SyncFailure(DomainException):
    """Base class for failures of a catalog sync attempt."""

    pass


class NetworkError(SyncFailure):
    """Transient failure reaching or paginating the remote API.

    Covers transport errors, timeouts, 5xx and exhausted 429 retries.
    The whole sync is aborted - removals are never computed from a partial fetch.

    HTTP Status: 502 (Bad Gateway)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class AuthExpired(SyncFailure):
    """Remote API rejected the credentials.

    The caller has to refresh the token before retrying.

    HTTP Status: 401
    """

    def __init__(
        self,
        message: str = "Spotify rejected the access token. Please re-authenticate.",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemotePayloadError(SyncFailure):
    """Remote API returned a payload we could not decode into a DTO.

    HTTP Status: 502 (Bad Gateway)
    """

    pass


class StorageError(SyncFailure):
    """Persistence failure that is not a uniqueness race.

    Rows committed before the failure stay committed - every write is idempotent,
    so the next run converges.

    HTTP Status: 500
    """

    pass


class SyncThrottled(SyncFailure):
    """Sync attempted again inside the cooldown window.

    HTTP Status: 429
    """

    def __init__(self, sync_type: str, retry_after: float) -> None:
        super().__init__(
            f"Sync for {sync_type} attempted too soon, retry in {retry_after:.1f}s"
        )
        self.sync_type = sync_type
        self.retry_after = retry_after


__all__ = [
    "DomainException",
    "EntityNotFoundException",
    "ValidationError",
    "ConfigurationError",
    "SyncFailure",
    "NetworkError",
    "AuthExpired",
    "RemotePayloadError",
    "StorageError",
    "SyncThrottled",
]
