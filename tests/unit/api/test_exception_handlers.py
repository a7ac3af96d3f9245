"""Tests for domain exception → HTTP response mapping."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from petal.api.exception_handlers import register_exception_handlers
from petal.domain.exceptions import (
    AuthExpired,
    ConfigurationError,
    EntityNotFoundException,
    NetworkError,
    RemotePayloadError,
    StorageError,
    SyncThrottled,
    ValidationError,
)

RAISERS = {
    "validation": lambda: ValidationError("bad input"),
    "not_found": lambda: EntityNotFoundException("User", "u-1"),
    "auth": lambda: AuthExpired(status_code=401),
    "throttled": lambda: SyncThrottled("playlists", 2.2),
    "throttled_tiny": lambda: SyncThrottled("playlists", 0.01),
    "network": lambda: NetworkError("Spotify 503", status_code=503),
    "rate_limited": lambda: NetworkError("429 exhausted", status_code=429, retry_after=40),
    "payload": lambda: RemotePayloadError("page has no items list"),
    "storage": lambda: StorageError("create_entity failed: disk I/O error"),
    "config": lambda: ConfigurationError("Unsupported database dialect"),
}


@pytest.fixture
def client() -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/raise/{name}")
    async def raise_it(name: str):
        raise RAISERS[name]()

    return TestClient(app)


class TestExceptionHandlers:
    @pytest.mark.parametrize(
        ("name", "status_code", "error"),
        [
            ("validation", 422, "validation_error"),
            ("not_found", 404, "not_found"),
            ("auth", 401, "auth_expired"),
            ("throttled", 429, "sync_throttled"),
            ("network", 502, "network_error"),
            ("payload", 502, "remote_payload_error"),
            ("storage", 500, "storage_error"),
            ("config", 503, "configuration_error"),
        ],
    )
    def test_status_mapping(self, client, name, status_code, error):
        response = client.get(f"/raise/{name}")

        assert response.status_code == status_code
        assert response.json()["error"] == error

    def test_auth_expired_sets_www_authenticate(self, client):
        response = client.get("/raise/auth")
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_throttled_retry_after_rounded_up(self, client):
        assert client.get("/raise/throttled").headers["Retry-After"] == "3"

    def test_throttled_retry_after_at_least_one_second(self, client):
        assert client.get("/raise/throttled_tiny").headers["Retry-After"] == "1"

    def test_network_error_forwards_retry_after(self, client):
        response = client.get("/raise/rate_limited")
        assert response.headers["Retry-After"] == "40"

    def test_network_error_without_retry_after(self, client):
        assert "Retry-After" not in client.get("/raise/network").headers

    def test_storage_error_hides_internals(self, client):
        body = client.get("/raise/storage").json()
        assert "disk I/O" not in body["detail"]
