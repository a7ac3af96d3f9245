"""Resolve remote items to shared canonical entities."""

import logging
from dataclasses import dataclass

from petal.domain.dtos import CatalogItemDTO
from petal.domain.entities import CanonicalEntity
from petal.domain.exceptions import StorageError
from petal.domain.ports import ICanonicalEntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedEntity:
    """Canonical entity for a remote item plus what resolving it did."""

    entity: CanonicalEntity
    created: bool = False
    updated: bool = False


class CanonicalEntityResolver:
    """Find-or-create for canonical entities (optimistic insert with fallback read).

    Hey future me - this is the ONLY place that creates canonical rows, shared by the
    catalog sync and the listening history ingestion. Two users syncing the same
    playlist for the first time at the same moment both reach create_entity(); the
    unique constraint lets exactly one win and the loser gets ALREADY_EXISTS and
    simply reads the winner's row. No locks, no retries, no duplicate rows.
    """

    def __init__(self, entity_store: ICanonicalEntityStore) -> None:
        self._entities = entity_store

    async def resolve(self, item: CatalogItemDTO) -> ResolvedEntity:
        """Get or create the canonical entity for a remote item.

        A pre-existing entity with a stale change token gets overwritten with the
        remote values (remote wins).

        Raises:
            StorageError: If the insert failed for a reason other than a duplicate
        """
        kind = item.entity_kind
        existing = await self._entities.find_entity_by_external_id(kind, item.external_id)
        if existing is not None:
            return await self._refresh(existing, item)

        draft = item.to_draft()
        outcome = await self._entities.create_entity(draft)

        if outcome.is_created and outcome.value is not None:
            return ResolvedEntity(entity=outcome.value, created=True)

        if outcome.is_already_exists:
            # Lost the creation race - somebody else inserted it between our read and write
            logger.debug(
                "Lost creation race for %s %s, falling back to read",
                kind.value,
                item.external_id,
            )
            winner = await self._entities.find_entity_by_external_id(kind, item.external_id)
            if winner is None:
                raise StorageError(
                    f"{kind.value} {item.external_id} reported as existing but could not be read"
                )
            return await self._refresh(winner, item)

        raise StorageError(
            f"Failed to create {kind.value} {item.external_id}: {outcome.reason or 'unknown error'}"
        )

    async def _refresh(self, entity: CanonicalEntity, item: CatalogItemDTO) -> ResolvedEntity:
        if entity.change_token == item.change_token:
            return ResolvedEntity(entity=entity)

        draft = item.to_draft()
        await self._entities.update_entity(entity.kind, entity.id, draft)
        entity.name = draft.name
        entity.change_token = draft.change_token
        entity.image_url = draft.image_url
        entity.fields = dict(draft.fields)
        return ResolvedEntity(entity=entity, updated=True)
