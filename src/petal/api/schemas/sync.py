"""API schemas for library sync."""

from datetime import datetime

from pydantic import BaseModel, Field

from petal.domain.entities import ResourceKind, SyncResult, SyncState, SyncStatus


class SyncResultResponse(BaseModel):
    """Outcome of one successful sync pass."""

    resource_kind: ResourceKind = Field(..., description="What was synced")
    added: int = Field(..., ge=0, description="Relationships (or plays) created")
    updated: int = Field(..., ge=0, description="Canonical entities refreshed")
    removed: int = Field(..., ge=0, description="Relationships deleted")
    total: int = Field(..., ge=0, description="Items in the complete remote set")
    synced_at: datetime

    @classmethod
    def from_result(cls, kind: ResourceKind, result: SyncResult) -> "SyncResultResponse":
        return cls(
            resource_kind=kind,
            added=result.added,
            updated=result.updated,
            removed=result.removed,
            total=result.total,
            synced_at=result.synced_at,
        )


class SyncStateResponse(BaseModel):
    """Last sync attempt for one (user, resource kind)."""

    resource_kind: ResourceKind
    last_synced_at: datetime
    status: SyncStatus
    error_message: str | None = None
    items_added: int = 0
    items_updated: int = 0
    items_removed: int = 0

    @classmethod
    def from_state(cls, state: SyncState) -> "SyncStateResponse":
        return cls(
            resource_kind=ResourceKind(state.sync_type),
            last_synced_at=state.last_synced_at,
            status=state.status,
            error_message=state.error_message,
            items_added=state.items_added,
            items_updated=state.items_updated,
            items_removed=state.items_removed,
        )
