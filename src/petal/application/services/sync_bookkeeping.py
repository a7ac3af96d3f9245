"""Cooldown and SyncState bookkeeping shared by every sync service."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from petal.domain.entities import SyncResult, SyncState, SyncStatus
from petal.domain.exceptions import SyncFailure, SyncThrottled
from petal.domain.ports import ISyncStateTracker

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 10.0


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SyncBookkeeper:
    """Enforces the per (user, sync type) cooldown and records every attempt.

    Hey future me - the cooldown ONLY bounds load on Spotify. Correctness never depends
    on it: two overlapping syncs for the same user still converge thanks to the unique
    constraints. That's why force=True is allowed to skip it.
    Aborted attempts are recorded too (status=error) and count for the cooldown, so a
    client hammering "refresh" on a broken token doesn't hammer Spotify with it.
    """

    def __init__(
        self,
        tracker: ISyncStateTracker,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._tracker = tracker
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock

    async def check_cooldown(self, user_id: str, sync_type: str, force: bool = False) -> None:
        """Raise SyncThrottled if the last attempt is inside the cooldown window."""
        if force or self.cooldown_seconds <= 0:
            return

        state = await self._tracker.get_state(user_id, sync_type)
        if state is None:
            return

        last = state.last_synced_at
        if last.tzinfo is None:
            last = last.replace(tzinfo=UTC)
        elapsed = (self.clock() - last).total_seconds()
        if elapsed < self.cooldown_seconds:
            raise SyncThrottled(sync_type, self.cooldown_seconds - elapsed)

    async def record_success(self, user_id: str, result: SyncResult, sync_type: str) -> None:
        await self._tracker.record(
            SyncState(
                user_id=user_id,
                sync_type=sync_type,
                last_synced_at=result.synced_at,
                status=SyncStatus.OK,
                items_added=result.added,
                items_updated=result.updated,
                items_removed=result.removed,
            )
        )

    async def record_failure(self, user_id: str, sync_type: str, error: SyncFailure) -> None:
        """Record an aborted attempt.

        Never raises: the caller is already propagating the real failure, and a second
        storage problem while writing the bookkeeping row must not replace it.
        """
        try:
            await self._tracker.record(
                SyncState(
                    user_id=user_id,
                    sync_type=sync_type,
                    last_synced_at=self.clock(),
                    status=SyncStatus.ERROR,
                    error_message=error.message,
                )
            )
        except SyncFailure as record_error:
            logger.warning(
                "Could not record failed %s sync for user %s: %s",
                sync_type,
                user_id,
                record_error.message,
            )
