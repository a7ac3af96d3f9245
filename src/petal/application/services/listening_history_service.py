"""Append-only ingestion of the user's recently played tracks."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from petal.application.services.canonical_entities import CanonicalEntityResolver
from petal.application.services.sync_bookkeeping import (
    DEFAULT_COOLDOWN_SECONDS,
    SyncBookkeeper,
)
from petal.domain.dtos import PlayedTrackDTO
from petal.domain.entities import ResourceKind, SyncResult
from petal.domain.exceptions import (
    AuthExpired,
    EntityNotFoundException,
    StorageError,
    SyncFailure,
)
from petal.domain.ports import (
    ICanonicalEntityStore,
    ICatalogFetcher,
    IListeningHistoryStore,
    ISyncStateTracker,
    IUserDirectory,
)
from petal.infrastructure.observability.logging import (
    get_correlation_id,
    set_correlation_id,
)
from petal.infrastructure.observability.operations import log_operation

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ListeningHistoryService:
    """Ingest /me/player/recently-played into listening_history.

    Hey future me - unlike the library kinds this is NOT a set we mirror! Spotify only
    shows the last 50 plays, so "missing remotely" just means "scrolled out of the
    window", never "deleted". We only ever add. Duplicate plays are detected by the
    (user, track, played_at) unique constraint, same tagged-outcome trick as everywhere.
    """

    sync_type = ResourceKind.RECENTLY_PLAYED.value

    def __init__(
        self,
        fetcher: ICatalogFetcher,
        entity_store: ICanonicalEntityStore,
        history_store: IListeningHistoryStore,
        state_tracker: ISyncStateTracker,
        user_directory: IUserDirectory,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._fetcher = fetcher
        self._history = history_store
        self._users = user_directory
        self._resolver = CanonicalEntityResolver(entity_store)
        self._bookkeeper = SyncBookkeeper(state_tracker, cooldown_seconds, clock)
        self._clock = clock

    async def sync(self, user_id: str, credentials: str, force: bool = False) -> SyncResult:
        """Pull recent plays and store the ones we haven't seen.

        Returns:
            SyncResult where added = new plays, updated = track rows refreshed,
            removed = always 0
        """
        await self._bookkeeper.check_cooldown(user_id, self.sync_type, force)

        if await self._users.get_external_id(user_id) is None:
            raise EntityNotFoundException("User", user_id)

        if not get_correlation_id():
            set_correlation_id()

        async with log_operation(
            logger,
            "listening_history_sync",
            quiet_exceptions=(AuthExpired,),
            user_id=user_id,
        ) as log_fields:
            try:
                result = await self._ingest(user_id, credentials)
            except SyncFailure as e:
                await self._bookkeeper.record_failure(user_id, self.sync_type, e)
                raise
            await self._bookkeeper.record_success(user_id, result, self.sync_type)
            log_fields.update(added=result.added, updated=result.updated, total=result.total)

        return result

    async def _ingest(self, user_id: str, credentials: str) -> SyncResult:
        plays: list[PlayedTrackDTO] = [
            play
            async for play in self._fetcher.fetch_all(ResourceKind.RECENTLY_PLAYED, credentials)
        ]

        added = updated = 0
        refreshed: set[str] = set()

        for play in plays:
            resolved = await self._resolver.resolve(play.track)
            # Same track played 5 times → count its refresh once
            if resolved.updated and resolved.entity.id not in refreshed:
                refreshed.add(resolved.entity.id)
                updated += 1

            outcome = await self._history.add_play(user_id, resolved.entity.id, play.played_at)
            if outcome.is_created:
                added += 1
            elif outcome.is_failed:
                raise StorageError(
                    f"Failed to store play of track {play.track.external_id}: "
                    f"{outcome.reason or 'unknown error'}"
                )

        return SyncResult(
            added=added,
            updated=updated,
            removed=0,
            synced_at=self._clock(),
            resource_kind=ResourceKind.RECENTLY_PLAYED,
            total=len(plays),
        )
