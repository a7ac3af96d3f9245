"""Library sync endpoints."""

import logging

from fastapi import APIRouter, Depends, Query

from petal.api.dependencies import (
    get_catalog_sync_service,
    get_listening_history_service,
    get_spotify_token,
    get_sync_state_tracker,
)
from petal.api.schemas.sync import SyncResultResponse, SyncStateResponse
from petal.application.services import CatalogSyncService, ListeningHistoryService
from petal.domain.entities import ResourceKind
from petal.domain.exceptions import EntityNotFoundException
from petal.domain.ports import ISyncStateTracker

logger = logging.getLogger(__name__)

router = APIRouter()


# Hey future me, this is the "pull to refresh" endpoint. The client sends its Spotify access
# token as Bearer; we pass it through to the fetcher untouched. Failures are NOT handled here:
# they bubble up as SyncFailure subclasses and exception_handlers.py turns them into
# 401/429/502/500. recently_played goes to the append-only service, everything else to the engine.
@router.post(
    "/users/{user_id}/sync/{resource_kind}",
    response_model=SyncResultResponse,
)
async def sync_resource(
    user_id: str,
    resource_kind: ResourceKind,
    force: bool = Query(default=False, description="Skip the cooldown check"),
    spotify_token: str = Depends(get_spotify_token),
    catalog_sync: CatalogSyncService = Depends(get_catalog_sync_service),
    history_sync: ListeningHistoryService = Depends(get_listening_history_service),
) -> SyncResultResponse:
    """Mirror one resource kind of the user's Spotify library."""
    if resource_kind.is_reconciled:
        result = await catalog_sync.sync(user_id, resource_kind, spotify_token, force=force)
    else:
        result = await history_sync.sync(user_id, spotify_token, force=force)
    return SyncResultResponse.from_result(resource_kind, result)


@router.get(
    "/users/{user_id}/sync/{resource_kind}",
    response_model=SyncStateResponse,
)
async def get_sync_state(
    user_id: str,
    resource_kind: ResourceKind,
    tracker: ISyncStateTracker = Depends(get_sync_state_tracker),
) -> SyncStateResponse:
    """Last sync attempt, so the client can show how stale its data is."""
    state = await tracker.get_state(user_id, resource_kind.value)
    if state is None:
        raise EntityNotFoundException("SyncState", f"{user_id}/{resource_kind.value}")
    return SyncStateResponse.from_state(state)
