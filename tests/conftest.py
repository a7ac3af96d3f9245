"""Shared fixtures: in-memory fakes for the sync ports plus a throwaway SQLite database.

Hey future me - the fakes honour the SAME contracts as the SQL stores (tagged create
outcomes, bool from delete, snapshot lists). Engine unit tests run against them,
the integration tests run the real stores against a temp-file SQLite database.
"""

import uuid
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from petal.config import DatabaseSettings
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
from petal.domain.ports import (
    CreateOutcome,
    ICanonicalEntityStore,
    ICatalogFetcher,
    IListeningHistoryStore,
    IRelationshipStore,
    ISyncStateTracker,
    IUserDirectory,
)
from petal.infrastructure.observability.logging import correlation_id_var
from petal.infrastructure.persistence import Database
from petal.infrastructure.persistence.retry import DatabaseLockMetrics
from petal.infrastructure.rate_limiter import reset_spotify_limiter

# =============================================================================
# FAKES
# =============================================================================


class FakeFetcher(ICatalogFetcher):
    """Serves pre-baked pages; can blow up on a given page."""

    def __init__(self) -> None:
        self.pages: dict[ResourceKind, list[list[Any]]] = {}
        self.fail_at: dict[ResourceKind, tuple[int, Exception]] = {}
        self.calls: list[tuple[ResourceKind, str, str | None]] = []

    def set_items(self, kind: ResourceKind, *pages: list[Any]) -> None:
        self.pages[kind] = [list(page) for page in pages] or [[]]

    def fail(self, kind: ResourceKind, page_index: int, error: Exception) -> None:
        self.fail_at[kind] = (page_index, error)

    async def fetch_page(
        self, kind: ResourceKind, credentials: str, cursor: str | None = None
    ) -> RemotePage[Any]:
        self.calls.append((kind, credentials, cursor))
        index = int(cursor) if cursor else 0

        failure = self.fail_at.get(kind)
        if failure is not None and failure[0] == index:
            raise failure[1]

        pages = self.pages.get(kind, [[]])
        next_cursor = str(index + 1) if index + 1 < len(pages) else None
        return RemotePage(items=list(pages[index]), next_cursor=next_cursor)


class FakeEntityStore(ICanonicalEntityStore):
    """Canonical entities keyed by (kind, external id).

    before_create runs right before an insert; tests use it to let a "competitor"
    insert the same entity first, which must come back as ALREADY_EXISTS.
    """

    def __init__(self) -> None:
        self.entities: dict[tuple[EntityKind, str], CanonicalEntity] = {}
        self.before_create: Callable[[EntityDraft], None] | None = None
        self.fail_create_reason: str | None = None
        self.hide_on_read: set[str] = set()
        self.create_calls = 0
        self.update_calls: list[tuple[EntityKind, str]] = []

    def insert(self, draft: EntityDraft) -> CanonicalEntity:
        entity = CanonicalEntity(
            id=str(uuid.uuid4()),
            kind=draft.kind,
            external_id=draft.external_id,
            name=draft.name,
            change_token=draft.change_token,
            image_url=draft.image_url,
            fields=dict(draft.fields),
        )
        self.entities[(draft.kind, draft.external_id)] = entity
        return entity

    def by_id(self, entity_id: str) -> CanonicalEntity:
        for entity in self.entities.values():
            if entity.id == entity_id:
                return entity
        raise KeyError(entity_id)

    def count(self, kind: EntityKind) -> int:
        return sum(1 for k, _ in self.entities if k is kind)

    async def find_entity_by_external_id(
        self, kind: EntityKind, external_id: str
    ) -> CanonicalEntity | None:
        if external_id in self.hide_on_read:
            return None
        entity = self.entities.get((kind, external_id))
        if entity is None:
            return None
        # Hand out copies like a real store would
        return CanonicalEntity(
            id=entity.id,
            kind=entity.kind,
            external_id=entity.external_id,
            name=entity.name,
            change_token=entity.change_token,
            image_url=entity.image_url,
            fields=dict(entity.fields),
        )

    async def create_entity(self, draft: EntityDraft) -> CreateOutcome[CanonicalEntity]:
        self.create_calls += 1
        if self.before_create is not None:
            hook, self.before_create = self.before_create, None
            hook(draft)
        if self.fail_create_reason is not None:
            return CreateOutcome.failed(self.fail_create_reason)
        if (draft.kind, draft.external_id) in self.entities:
            return CreateOutcome.already_exists()
        return CreateOutcome.created(self.insert(draft))

    async def update_entity(self, kind: EntityKind, entity_id: str, draft: EntityDraft) -> None:
        self.update_calls.append((kind, entity_id))
        entity = self.by_id(entity_id)
        entity.name = draft.name
        entity.change_token = draft.change_token
        entity.image_url = draft.image_url
        entity.fields = dict(draft.fields)


class FakeRelationshipStore(IRelationshipStore):
    """Per-user links keyed by (kind, user, entity id)."""

    def __init__(self, entity_store: FakeEntityStore) -> None:
        self._entities = entity_store
        self.links: dict[tuple[EntityKind, str, str], Relationship] = {}
        self.fail_create_reason: str | None = None
        self.list_calls = 0

    def pairs(self, user_id: str, kind: EntityKind) -> set[str]:
        """External ids the user is currently linked to."""
        return {
            self._entities.by_id(entity_id).external_id
            for (k, u, entity_id) in self.links
            if k is kind and u == user_id
        }

    async def find_relationship(
        self, kind: EntityKind, user_id: str, entity_id: str
    ) -> Relationship | None:
        return self.links.get((kind, user_id, entity_id))

    async def create_relationship(self, draft: RelationshipDraft) -> CreateOutcome[Relationship]:
        if self.fail_create_reason is not None:
            return CreateOutcome.failed(self.fail_create_reason)
        key = (draft.kind, draft.user_id, draft.entity_id)
        if key in self.links:
            return CreateOutcome.already_exists()
        relationship = Relationship(
            user_id=draft.user_id,
            entity_id=draft.entity_id,
            kind=draft.kind,
            relation_kind=draft.relation_kind,
            added_at=draft.added_at,
        )
        self.links[key] = relationship
        return CreateOutcome.created(relationship)

    async def delete_relationship(self, kind: EntityKind, user_id: str, entity_id: str) -> bool:
        return self.links.pop((kind, user_id, entity_id), None) is not None

    async def list_relationships(self, user_id: str, kind: EntityKind) -> list[LocalPairing]:
        self.list_calls += 1
        pairings = []
        for (k, u, entity_id), link in self.links.items():
            if k is not kind or u != user_id:
                continue
            entity = self._entities.by_id(entity_id)
            pairings.append(
                LocalPairing(
                    entity_id=entity_id,
                    external_id=entity.external_id,
                    change_token=entity.change_token,
                    relation_kind=link.relation_kind,
                )
            )
        return pairings


class FakeSyncStateTracker(ISyncStateTracker):
    def __init__(self) -> None:
        self.states: dict[tuple[str, str], SyncState] = {}

    async def get_state(self, user_id: str, sync_type: str) -> SyncState | None:
        return self.states.get((user_id, sync_type))

    async def record(self, state: SyncState) -> None:
        self.states[(state.user_id, state.sync_type)] = state


class FakeUserDirectory(IUserDirectory):
    def __init__(self) -> None:
        self.users: dict[str, str | None] = {}

    async def get_external_id(self, user_id: str) -> str | None:
        return self.users.get(user_id)


class FakeListeningHistoryStore(IListeningHistoryStore):
    def __init__(self) -> None:
        self.plays: set[tuple[str, str, datetime]] = set()
        self.fail_reason: str | None = None

    async def add_play(
        self, user_id: str, track_entity_id: str, played_at: datetime
    ) -> CreateOutcome[None]:
        if self.fail_reason is not None:
            return CreateOutcome.failed(self.fail_reason)
        key = (user_id, track_entity_id, played_at)
        if key in self.plays:
            return CreateOutcome.already_exists()
        self.plays.add(key)
        return CreateOutcome.created(None)


class FrozenClock:
    """Callable clock that tests can move forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_globals() -> None:
    """Module-level singletons must not leak between tests."""
    token = correlation_id_var.set("")
    DatabaseLockMetrics.get_instance().reset()
    reset_spotify_limiter()
    yield
    correlation_id_var.reset(token)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def entity_store() -> FakeEntityStore:
    return FakeEntityStore()


@pytest.fixture
def relationship_store(entity_store: FakeEntityStore) -> FakeRelationshipStore:
    return FakeRelationshipStore(entity_store)


@pytest.fixture
def state_tracker() -> FakeSyncStateTracker:
    return FakeSyncStateTracker()


@pytest.fixture
def user_directory() -> FakeUserDirectory:
    directory = FakeUserDirectory()
    directory.users["user-1"] = "spotify-user-1"
    directory.users["user-2"] = "spotify-user-2"
    return directory


@pytest.fixture
def history_store() -> FakeListeningHistoryStore:
    return FakeListeningHistoryStore()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    # File-backed on purpose: every store operation opens its own connection and
    # an in-memory database would be a different (empty) one per connection.
    return f"sqlite+aiosqlite:///{tmp_path / 'petal-test.db'}"


@pytest.fixture
async def database(sqlite_url: str) -> AsyncIterator[Database]:
    """Real SQLite database with all tables created."""
    db = Database(DatabaseSettings(url=sqlite_url))
    await db.create_tables()
    yield db
    await db.close()
