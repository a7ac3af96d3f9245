"""End-to-end reconciliation against the real SQL stores (fake Spotify only)."""

import asyncio
from datetime import UTC, datetime

import pytest
from sqlalchemy import func, select

from petal.application.services import CatalogSyncService, ListeningHistoryService
from petal.domain.dtos import PlayedTrackDTO, PlaylistDTO, TrackDTO
from petal.domain.entities import EntityKind, RelationKind, ResourceKind, SyncStatus
from petal.domain.exceptions import NetworkError
from petal.infrastructure.persistence import (
    SqlCanonicalEntityStore,
    SqlListeningHistoryStore,
    SqlRelationshipStore,
    SqlSyncStateTracker,
    SqlUserDirectory,
)
from petal.infrastructure.persistence.models import PlaylistModel

pytestmark = pytest.mark.integration

TOKEN = "spotify-access-token"


def playlist(external_id: str, snapshot: str = "s1", owner: str = "someone") -> PlaylistDTO:
    return PlaylistDTO(
        external_id=external_id, name=external_id, snapshot_id=snapshot, owner_spotify_id=owner
    )


@pytest.fixture
def relationships(database) -> SqlRelationshipStore:
    return SqlRelationshipStore(database)


@pytest.fixture
def service(database, fetcher) -> CatalogSyncService:
    return CatalogSyncService(
        fetcher=fetcher,
        entity_store=SqlCanonicalEntityStore(database),
        relationship_store=SqlRelationshipStore(database),
        state_tracker=SqlSyncStateTracker(database),
        user_directory=SqlUserDirectory(database),
        cooldown_seconds=0,
    )


@pytest.fixture
async def alice(database) -> str:
    return await SqlUserDirectory(database).create_user("alice", spotify_id="spotify-alice")


@pytest.fixture
async def bob(database) -> str:
    return await SqlUserDirectory(database).create_user("bob", spotify_id="spotify-bob")


async def _external_ids(relationships, user_id) -> set[str]:
    pairings = await relationships.list_relationships(user_id, EntityKind.PLAYLIST)
    return {p.external_id for p in pairings}


class TestCatalogSyncOnSqlite:
    async def test_converges_through_add_change_remove(
        self, service, fetcher, relationships, alice
    ):
        fetcher.set_items(ResourceKind.PLAYLISTS, [playlist("A"), playlist("B")], [playlist("C")])
        first = await service.sync(alice, ResourceKind.PLAYLISTS, TOKEN)

        fetcher.set_items(
            ResourceKind.PLAYLISTS, [playlist("A"), playlist("B", snapshot="s2"), playlist("D")]
        )
        second = await service.sync(alice, ResourceKind.PLAYLISTS, TOKEN)
        third = await service.sync(alice, ResourceKind.PLAYLISTS, TOKEN)

        assert (first.added, first.updated, first.removed) == (3, 0, 0)
        assert (second.added, second.updated, second.removed) == (1, 1, 1)
        assert (third.added, third.updated, third.removed) == (0, 0, 0)
        assert await _external_ids(relationships, alice) == {"A", "B", "D"}

    async def test_aborted_sync_keeps_everything(
        self, service, fetcher, relationships, database, alice
    ):
        fetcher.set_items(ResourceKind.PLAYLISTS, [playlist("A"), playlist("B")])
        await service.sync(alice, ResourceKind.PLAYLISTS, TOKEN)

        fetcher.set_items(ResourceKind.PLAYLISTS, [playlist("A")], [])
        fetcher.fail(ResourceKind.PLAYLISTS, 1, NetworkError("Spotify 502", status_code=502))
        with pytest.raises(NetworkError):
            await service.sync(alice, ResourceKind.PLAYLISTS, TOKEN)

        assert await _external_ids(relationships, alice) == {"A", "B"}
        state = await SqlSyncStateTracker(database).get_state(alice, "playlists")
        assert state.status is SyncStatus.ERROR

    async def test_parallel_first_sync_of_shared_playlist(
        self, service, fetcher, relationships, database, alice, bob
    ):
        fetcher.set_items(
            ResourceKind.PLAYLISTS, [playlist("shared", owner="spotify-alice"), playlist("x")]
        )

        await asyncio.gather(
            service.sync(alice, ResourceKind.PLAYLISTS, TOKEN),
            service.sync(bob, ResourceKind.PLAYLISTS, TOKEN),
        )

        entities = SqlCanonicalEntityStore(database)
        shared = await entities.find_entity_by_external_id(EntityKind.PLAYLIST, "shared")
        assert shared is not None
        async with database.session_scope() as session:
            rows = await session.scalar(
                select(func.count())
                .select_from(PlaylistModel)
                .where(PlaylistModel.spotify_id == "shared")
            )
        assert rows == 1
        alice_links = await relationships.list_relationships(alice, EntityKind.PLAYLIST)
        bob_links = await relationships.list_relationships(bob, EntityKind.PLAYLIST)
        assert {p.external_id for p in alice_links} == {"shared", "x"}
        assert {p.external_id for p in bob_links} == {"shared", "x"}
        kinds = {p.external_id: p.relation_kind for p in alice_links}
        assert kinds["shared"] is RelationKind.OWNER
        assert {p.relation_kind for p in bob_links} == {RelationKind.SUBSCRIBER}

    async def test_same_user_overlapping_syncs_converge(
        self, service, fetcher, relationships, alice
    ):
        fetcher.set_items(ResourceKind.PLAYLISTS, [playlist("A"), playlist("B"), playlist("C")])

        results = await asyncio.gather(
            service.sync(alice, ResourceKind.PLAYLISTS, TOKEN),
            service.sync(alice, ResourceKind.PLAYLISTS, TOKEN),
        )

        assert sum(result.added for result in results) == 3
        assert await _external_ids(relationships, alice) == {"A", "B", "C"}


async def test_listening_history_on_sqlite(database, fetcher, alice):
    history = SqlListeningHistoryStore(database)
    service = ListeningHistoryService(
        fetcher=fetcher,
        entity_store=SqlCanonicalEntityStore(database),
        history_store=history,
        state_tracker=SqlSyncStateTracker(database),
        user_directory=SqlUserDirectory(database),
        cooldown_seconds=0,
    )
    plays = [
        PlayedTrackDTO(
            track=TrackDTO(external_id="t1", name="a"),
            played_at=datetime(2025, 1, 1, 9, tzinfo=UTC),
        ),
        PlayedTrackDTO(
            track=TrackDTO(external_id="t1", name="a"),
            played_at=datetime(2025, 1, 1, 8, tzinfo=UTC),
        ),
    ]
    fetcher.set_items(ResourceKind.RECENTLY_PLAYED, plays)

    first = await service.sync(alice, TOKEN)
    second = await service.sync(alice, TOKEN)

    assert first.added == 2
    assert second.added == 0
    assert await history.count_plays(alice) == 2
