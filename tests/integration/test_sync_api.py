"""Integration tests for the sync endpoints (real app + SQLite, fake Spotify)."""

import asyncio
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from petal.config import DatabaseSettings, Settings, SyncSettings
from petal.domain.dtos import ArtistDTO, PlaylistDTO
from petal.domain.entities import ResourceKind
from petal.domain.exceptions import AuthExpired, NetworkError, RemotePayloadError
from petal.infrastructure.persistence import Database, SqlUserDirectory
from petal.main import create_app

pytestmark = pytest.mark.integration

AUTH = {"Authorization": "Bearer BQD-test-token"}


@pytest.fixture
def user_id(sqlite_url: str) -> str:
    async def seed() -> str:
        db = Database(DatabaseSettings(url=sqlite_url))
        try:
            await db.create_tables()
            return await SqlUserDirectory(db).create_user("alice", spotify_id="spotify-alice")
        finally:
            await db.close()

    return asyncio.run(seed())


@pytest.fixture
def client(sqlite_url: str, fetcher, user_id: str) -> Iterator[TestClient]:
    settings = Settings(
        database=DatabaseSettings(url=sqlite_url, auto_create_tables=True),
        sync=SyncSettings(cooldown_seconds=10),
    )
    app = create_app(settings=settings, catalog_fetcher=fetcher)
    with TestClient(app) as test_client:
        yield test_client


# Hey future me - the happy path: first pull creates, second forced pull is a no-op.
def test_sync_playlists(client: TestClient, fetcher, user_id: str) -> None:
    fetcher.set_items(
        ResourceKind.PLAYLISTS,
        [
            PlaylistDTO(
                external_id="p1", name="Mine", snapshot_id="s1", owner_spotify_id="spotify-alice"
            )
        ],
        [
            PlaylistDTO(
                external_id="p2", name="Theirs", snapshot_id="s1", owner_spotify_id="bob"
            )
        ],
    )

    response = client.post(f"/api/users/{user_id}/sync/playlists", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["resource_kind"] == "playlists"
    assert (body["added"], body["updated"], body["removed"], body["total"]) == (2, 0, 0, 2)
    assert "X-Correlation-ID" in response.headers
    # Token is passed through untouched
    assert fetcher.calls[0][1] == "BQD-test-token"

    again = client.post(f"/api/users/{user_id}/sync/playlists?force=true", headers=AUTH)
    assert again.status_code == 200
    assert again.json()["added"] == 0


def test_sync_state_endpoint(client: TestClient, fetcher, user_id: str) -> None:
    fetcher.set_items(ResourceKind.FOLLOWED_ARTISTS, [ArtistDTO(external_id="r1", name="Band")])

    missing = client.get(f"/api/users/{user_id}/sync/followed_artists")
    assert missing.status_code == 404

    client.post(f"/api/users/{user_id}/sync/followed_artists", headers=AUTH)
    state = client.get(f"/api/users/{user_id}/sync/followed_artists")

    assert state.status_code == 200
    assert state.json()["status"] == "ok"
    assert state.json()["items_added"] == 1


def test_second_sync_inside_cooldown_is_429(client: TestClient, fetcher, user_id: str) -> None:
    fetcher.set_items(ResourceKind.SAVED_ALBUMS, [])

    assert client.post(f"/api/users/{user_id}/sync/saved_albums", headers=AUTH).status_code == 200
    response = client.post(f"/api/users/{user_id}/sync/saved_albums", headers=AUTH)

    assert response.status_code == 429
    assert response.json()["error"] == "sync_throttled"
    assert 1 <= int(response.headers["Retry-After"]) <= 10


def test_missing_token_is_401(client: TestClient, user_id: str) -> None:
    response = client.post(f"/api/users/{user_id}/sync/playlists")
    assert response.status_code == 401


def test_expired_spotify_token_is_401(client: TestClient, fetcher, user_id: str) -> None:
    fetcher.fail(ResourceKind.PLAYLISTS, 0, AuthExpired(status_code=401))

    response = client.post(f"/api/users/{user_id}/sync/playlists", headers=AUTH)

    assert response.status_code == 401
    assert response.json()["error"] == "auth_expired"
    state = client.get(f"/api/users/{user_id}/sync/playlists").json()
    assert state["status"] == "error"


def test_spotify_down_is_502(client: TestClient, fetcher, user_id: str) -> None:
    fetcher.fail(ResourceKind.SAVED_TRACKS, 0, NetworkError("Spotify 503", status_code=503))

    response = client.post(f"/api/users/{user_id}/sync/saved_tracks", headers=AUTH)

    assert response.status_code == 502
    assert response.json()["error"] == "network_error"


def test_undecodable_payload_is_502(client: TestClient, fetcher, user_id: str) -> None:
    fetcher.fail(ResourceKind.PLAYLISTS, 0, RemotePayloadError("page has no items list"))

    response = client.post(f"/api/users/{user_id}/sync/playlists", headers=AUTH)

    assert response.status_code == 502
    assert response.json()["error"] == "remote_payload_error"


def test_unknown_user_is_404(client: TestClient) -> None:
    response = client.post("/api/users/ghost/sync/playlists", headers=AUTH)
    assert response.status_code == 404


def test_unknown_resource_kind_is_422(client: TestClient, user_id: str) -> None:
    response = client.post(f"/api/users/{user_id}/sync/podcasts", headers=AUTH)
    assert response.status_code == 422


def test_recently_played_goes_to_history(client: TestClient, fetcher, user_id: str) -> None:
    fetcher.set_items(ResourceKind.RECENTLY_PLAYED, [])

    response = client.post(f"/api/users/{user_id}/sync/recently_played", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["resource_kind"] == "recently_played"
    assert response.json()["removed"] == 0
