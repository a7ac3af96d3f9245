# Hey future me - this is THE reconciliation engine. One call to sync() mirrors ONE
# resource kind of ONE user from Spotify into our tables:
#
#   fetch everything (R) → load local snapshot (L) → plan_reconciliation(R, L)
#   → update changed → resolve + link additions → delete removals → SyncState
#
# Rules that must never break:
# - Removals are computed ONLY from a complete remote set. If any page fails, the
#   exception escapes before list_relationships() is even called.
# - Every write is its own committed, idempotent storage operation. Nothing is rolled
#   back on failure, the next run just converges from wherever this one stopped.
# - Uniqueness races come back as ALREADY_EXISTS outcomes and are resolved here with a
#   read. No locks anywhere in this file.
"""Catalog reconciliation engine."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from petal.application.services.canonical_entities import CanonicalEntityResolver
from petal.application.services.reconciliation import plan_reconciliation
from petal.application.services.sync_bookkeeping import (
    DEFAULT_COOLDOWN_SECONDS,
    SyncBookkeeper,
)
from petal.domain.dtos import CatalogItemDTO
from petal.domain.entities import (
    CanonicalEntity,
    RelationshipDraft,
    ResourceKind,
    SyncResult,
)
from petal.domain.exceptions import (
    AuthExpired,
    EntityNotFoundException,
    StorageError,
    SyncFailure,
    ValidationError,
)
from petal.domain.ports import (
    ICanonicalEntityStore,
    ICatalogFetcher,
    IRelationshipStore,
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


class CatalogSyncService:
    """Mirror a user's Spotify library (playlists, liked tracks, saved albums,
    followed artists) into canonical entities plus per-user relationships.

    Safe to run concurrently for different users and for the same user.
    """

    def __init__(
        self,
        fetcher: ICatalogFetcher,
        entity_store: ICanonicalEntityStore,
        relationship_store: IRelationshipStore,
        state_tracker: ISyncStateTracker,
        user_directory: IUserDirectory,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the engine.

        Args:
            fetcher: Remote catalog fetcher (Spotify)
            entity_store: Shared canonical entity storage
            relationship_store: Per-user relationship storage
            state_tracker: SyncState bookkeeping
            user_directory: Lookup of the user's Spotify id (playlist ownership)
            cooldown_seconds: Minimum seconds between attempts per (user, kind)
            clock: Returns "now" as an aware UTC datetime (tests freeze it)
        """
        self._fetcher = fetcher
        self._entities = entity_store
        self._relationships = relationship_store
        self._users = user_directory
        self._resolver = CanonicalEntityResolver(entity_store)
        self._bookkeeper = SyncBookkeeper(state_tracker, cooldown_seconds, clock)
        self._clock = clock

    async def sync(
        self,
        user_id: str,
        resource_kind: ResourceKind,
        credentials: str,
        force: bool = False,
    ) -> SyncResult:
        """Reconcile one resource kind of one user against Spotify.

        Args:
            user_id: Internal user id
            resource_kind: What to sync (not recently_played, that one is append-only)
            credentials: Spotify bearer token, handed to the fetcher untouched
            force: Skip the cooldown check

        Returns:
            SyncResult with added/updated/removed counts

        Raises:
            SyncThrottled: Last attempt is inside the cooldown window
            EntityNotFoundException: Unknown user
            AuthExpired: Spotify rejected the token
            NetworkError: Spotify unreachable or failing (nothing was removed)
            RemotePayloadError: Spotify returned something we can't decode
            StorageError: Database failure (committed rows stay, next run converges)
        """
        if not resource_kind.is_reconciled:
            raise ValidationError(
                f"{resource_kind.value} is append-only and can't be reconciled as a set"
            )

        sync_type = resource_kind.value
        await self._bookkeeper.check_cooldown(user_id, sync_type, force)

        user_external_id = await self._users.get_external_id(user_id)
        if user_external_id is None:
            raise EntityNotFoundException("User", user_id)

        if not get_correlation_id():
            set_correlation_id()

        async with log_operation(
            logger,
            "catalog_sync",
            quiet_exceptions=(AuthExpired,),
            user_id=user_id,
            resource_kind=sync_type,
        ) as log_fields:
            try:
                result = await self._reconcile(user_id, user_external_id, resource_kind, credentials)
            except SyncFailure as e:
                await self._bookkeeper.record_failure(user_id, sync_type, e)
                raise
            await self._bookkeeper.record_success(user_id, result, sync_type)
            log_fields.update(
                added=result.added,
                updated=result.updated,
                removed=result.removed,
                total=result.total,
            )

        return result

    async def _reconcile(
        self,
        user_id: str,
        user_external_id: str,
        resource_kind: ResourceKind,
        credentials: str,
    ) -> SyncResult:
        entity_kind = resource_kind.entity_kind

        # 1. Complete remote set - raises before anything local is touched
        remote = await self._collect_remote(resource_kind, credentials)

        # 2. Local snapshot
        local = await self._relationships.list_relationships(user_id, entity_kind)

        # 3. Pure diff
        plan = plan_reconciliation(remote, local)
        logger.debug(
            "Plan for %s/%s: +%d ~%d =%d -%d",
            user_id,
            resource_kind.value,
            len(plan.additions),
            len(plan.changed),
            len(plan.unchanged),
            len(plan.removals),
        )

        added = updated = removed = 0

        # Already paired, token moved on → remote wins
        for change in plan.changed:
            await self._entities.update_entity(
                entity_kind, change.pairing.entity_id, change.item.to_draft()
            )
            updated += 1

        for item in plan.additions:
            resolved = await self._resolver.resolve(item)
            if resolved.updated:
                updated += 1
            if await self._ensure_relationship(user_id, user_external_id, resolved.entity, item):
                added += 1

        # 4. Prune. Safe only because `remote` is known to be complete.
        for pairing in plan.removals:
            if await self._relationships.delete_relationship(
                entity_kind, user_id, pairing.entity_id
            ):
                removed += 1

        return SyncResult(
            added=added,
            updated=updated,
            removed=removed,
            synced_at=self._clock(),
            resource_kind=resource_kind,
            total=len(remote),
        )

    async def _collect_remote(
        self, resource_kind: ResourceKind, credentials: str
    ) -> dict[str, CatalogItemDTO]:
        remote: dict[str, CatalogItemDTO] = {}
        async for item in self._fetcher.fetch_all(resource_kind, credentials):
            # Spotify can list the same item twice (playlist followed twice, paging drift)
            remote.setdefault(item.external_id, item)
        return remote

    # Hey future me - this is the ONE "ensure relationship" step. It doesn't care whether
    # the entity was just created or existed for years (maybe linked to us by a parallel
    # sync of our other device a millisecond ago): insert, and ALREADY_EXISTS means done.
    async def _ensure_relationship(
        self,
        user_id: str,
        user_external_id: str,
        entity: CanonicalEntity,
        item: CatalogItemDTO,
    ) -> bool:
        draft = RelationshipDraft(
            user_id=user_id,
            entity_id=entity.id,
            kind=entity.kind,
            relation_kind=item.relation_kind_for(user_external_id),
            added_at=item.added_at or self._clock(),
        )
        outcome = await self._relationships.create_relationship(draft)
        if outcome.is_created:
            return True
        if outcome.is_already_exists:
            return False
        raise StorageError(
            f"Failed to link user {user_id} to {entity.kind.value} {entity.external_id}: "
            f"{outcome.reason or 'unknown error'}"
        )
