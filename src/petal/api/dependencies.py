"""Dependency injection for API endpoints."""

from typing import cast

from fastapi import Depends, Header, HTTPException, Request, status

from petal.application.services import CatalogSyncService, ListeningHistoryService
from petal.config import Settings
from petal.domain.ports import ICatalogFetcher, ISyncStateTracker
from petal.infrastructure.persistence import (
    Database,
    SqlCanonicalEntityStore,
    SqlListeningHistoryStore,
    SqlRelationshipStore,
    SqlSyncStateTracker,
    SqlUserDirectory,
)


# Hey future me, everything long-lived (settings, Database, Spotify client) is put on
# app.state by the lifespan in main.py. If it's missing, startup went wrong - answer 503
# instead of blowing up with an AttributeError.
def _app_state(request: Request, name: str) -> object:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialized",
        )
    return value


def get_app_settings(request: Request) -> Settings:
    return cast(Settings, _app_state(request, "settings"))


def get_database(request: Request) -> Database:
    return cast(Database, _app_state(request, "db"))


def get_catalog_fetcher(request: Request) -> ICatalogFetcher:
    return cast(ICatalogFetcher, _app_state(request, "catalog_fetcher"))


def get_sync_state_tracker(db: Database = Depends(get_database)) -> ISyncStateTracker:
    return SqlSyncStateTracker(db)


def get_catalog_sync_service(
    db: Database = Depends(get_database),
    fetcher: ICatalogFetcher = Depends(get_catalog_fetcher),
    settings: Settings = Depends(get_app_settings),
) -> CatalogSyncService:
    """Build the reconciliation engine on top of the SQL stores.

    Stores are stateless wrappers around Database, so building them per request is cheap.
    """
    return CatalogSyncService(
        fetcher=fetcher,
        entity_store=SqlCanonicalEntityStore(db),
        relationship_store=SqlRelationshipStore(db),
        state_tracker=SqlSyncStateTracker(db),
        user_directory=SqlUserDirectory(db),
        cooldown_seconds=settings.sync.cooldown_seconds,
    )


def get_listening_history_service(
    db: Database = Depends(get_database),
    fetcher: ICatalogFetcher = Depends(get_catalog_fetcher),
    settings: Settings = Depends(get_app_settings),
) -> ListeningHistoryService:
    return ListeningHistoryService(
        fetcher=fetcher,
        entity_store=SqlCanonicalEntityStore(db),
        history_store=SqlListeningHistoryStore(db),
        state_tracker=SqlSyncStateTracker(db),
        user_directory=SqlUserDirectory(db),
        cooldown_seconds=settings.sync.cooldown_seconds,
    )


def parse_bearer_token(authorization: str) -> str:
    """Strip a case-insensitive "Bearer " prefix from an Authorization header value."""
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return authorization.strip()


# The token is a Spotify access token issued to the client by the auth side of the app.
# We never look inside it, we just hand it to the fetcher.
def get_spotify_token(authorization: str | None = Header(default=None)) -> str:
    """Extract the Spotify access token from the Authorization header."""
    token = parse_bearer_token(authorization or "")
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Spotify access token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token
