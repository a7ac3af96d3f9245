"""Domain ports (interfaces) for dependency inversion.

Hey future me - these are the NARROW contracts the sync engine talks to. The SQL
implementations live in infrastructure/persistence/stores.py, the Spotify one in
infrastructure/integrations/spotify_client.py. Unit tests plug in-memory fakes in
here, so keep the contracts small and never leak SQLAlchemy or httpx types through them!
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from petal.domain.dtos import RemotePage
from petal.domain.entities import (
    CanonicalEntity,
    EntityDraft,
    EntityKind,
    LocalPairing,
    Relationship,
    RelationshipDraft,
    ResourceKind,
    SyncState,
)

T = TypeVar("T")


class CreateStatus(str, Enum):
    """Outcome tag of a create operation."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


# Hey future me - this is the TAGGED RESULT every create_* returns instead of raising!
# ALREADY_EXISTS means "a uniqueness constraint said no" and NOTHING else. Any other
# database problem comes back as FAILED with a reason. That way the engine's
# fallback-read branch only runs for genuine duplicate-insert races, and an unrelated
# storage fault (disk full, FK violation, ...) can never be mistaken for one.
@dataclass(frozen=True)
class CreateOutcome(Generic[T]):
    """Tagged result of a create operation: Created | AlreadyExists | Failed."""

    status: CreateStatus
    value: T | None = None
    reason: str | None = None

    @classmethod
    def created(cls, value: T) -> "CreateOutcome[T]":
        return cls(status=CreateStatus.CREATED, value=value)

    @classmethod
    def already_exists(cls) -> "CreateOutcome[T]":
        return cls(status=CreateStatus.ALREADY_EXISTS)

    @classmethod
    def failed(cls, reason: str) -> "CreateOutcome[T]":
        return cls(status=CreateStatus.FAILED, reason=reason)

    @property
    def is_created(self) -> bool:
        return self.status is CreateStatus.CREATED

    @property
    def is_already_exists(self) -> bool:
        return self.status is CreateStatus.ALREADY_EXISTS

    @property
    def is_failed(self) -> bool:
        return self.status is CreateStatus.FAILED


class ICatalogFetcher(ABC):
    """Interface for pulling a user's remote library page by page.

    Implementations report failures as SyncFailure subclasses (AuthExpired,
    NetworkError, RemotePayloadError) and never retry on their own beyond
    rate-limit handling.
    """

    @abstractmethod
    async def fetch_page(
        self,
        kind: ResourceKind,
        credentials: str,
        cursor: str | None = None,
    ) -> RemotePage[Any]:
        """Fetch one page of decoded items.

        Args:
            kind: Resource kind to fetch
            credentials: Opaque bearer token, passed through untouched
            cursor: Cursor returned by the previous page, None for the first page

        Returns:
            Page of DTOs plus the next cursor (None when exhausted)
        """
        pass

    async def fetch_all(self, kind: ResourceKind, credentials: str) -> AsyncIterator[Any]:
        """Yield every item of the resource, following cursors until exhausted.

        Hey future me - this generator is finite and NOT restartable. If a page fails
        the exception propagates out of the `async for` and the caller must treat
        whatever it collected so far as garbage (never as "the complete set")!
        """
        cursor: str | None = None
        while True:
            page = await self.fetch_page(kind, credentials, cursor)
            for item in page.items:
                yield item
            if not page.next_cursor:
                return
            cursor = page.next_cursor


class ICanonicalEntityStore(ABC):
    """Shared, deduplicated canonical entity storage."""

    @abstractmethod
    async def find_entity_by_external_id(
        self, kind: EntityKind, external_id: str
    ) -> CanonicalEntity | None:
        """Get canonical entity by its Spotify id."""
        pass

    @abstractmethod
    async def create_entity(self, draft: EntityDraft) -> CreateOutcome[CanonicalEntity]:
        """Insert a canonical entity unless one with the same external id exists."""
        pass

    @abstractmethod
    async def update_entity(
        self, kind: EntityKind, entity_id: str, draft: EntityDraft
    ) -> None:
        """Overwrite mutable fields (last writer wins)."""
        pass


class IRelationshipStore(ABC):
    """Per-user association rows."""

    @abstractmethod
    async def find_relationship(
        self, kind: EntityKind, user_id: str, entity_id: str
    ) -> Relationship | None:
        pass

    @abstractmethod
    async def create_relationship(
        self, draft: RelationshipDraft
    ) -> CreateOutcome[Relationship]:
        """Insert a relationship unless (user_id, entity_id) already exists."""
        pass

    @abstractmethod
    async def delete_relationship(
        self, kind: EntityKind, user_id: str, entity_id: str
    ) -> bool:
        """Hard-delete a relationship. Returns True if a row was deleted."""
        pass

    @abstractmethod
    async def list_relationships(
        self, user_id: str, kind: EntityKind
    ) -> list[LocalPairing]:
        """Snapshot of the user's current pairings for one entity kind."""
        pass


class ISyncStateTracker(ABC):
    """Per (user, sync type) bookkeeping."""

    @abstractmethod
    async def get_state(self, user_id: str, sync_type: str) -> SyncState | None:
        pass

    @abstractmethod
    async def record(self, state: SyncState) -> None:
        """Upsert the state row for (state.user_id, state.sync_type)."""
        pass


class IUserDirectory(ABC):
    """Read access to the users owned by the auth collaborator."""

    @abstractmethod
    async def get_external_id(self, user_id: str) -> str | None:
        """Spotify id of the user, None if the user is unknown."""
        pass


class IListeningHistoryStore(ABC):
    """Append-only listening history."""

    @abstractmethod
    async def add_play(
        self, user_id: str, track_entity_id: str, played_at: datetime
    ) -> CreateOutcome[None]:
        """Insert one play. ALREADY_EXISTS means it was ingested before."""
        pass


__all__ = [
    "CreateStatus",
    "CreateOutcome",
    "ICatalogFetcher",
    "ICanonicalEntityStore",
    "IRelationshipStore",
    "ISyncStateTracker",
    "IUserDirectory",
    "IListeningHistoryStore",
]
