"""Application lifecycle management for startup and shutdown tasks."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from petal.config import Settings, get_settings
from petal.infrastructure.integrations.spotify_client import SpotifyCatalogClient
from petal.infrastructure.observability import configure_logging
from petal.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


# Hey future me, this runs ONCE per process: configure logging, open the Database, create
# the shared Spotify client. create_app() may already have put settings or a catalog
# fetcher on app.state (tests inject fakes that way) - we only fill in what's missing
# and only close what we created ourselves.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()
    app.state.settings = settings

    configure_logging(
        log_level=settings.observability.level,
        json_format=settings.observability.json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    db = Database(settings.database)
    app.state.db = db
    if settings.database.auto_create_tables:
        await db.create_tables()
        logger.info("Database tables ensured")

    owned_client: SpotifyCatalogClient | None = None
    if getattr(app.state, "catalog_fetcher", None) is None:
        owned_client = SpotifyCatalogClient(settings.spotify)
        app.state.catalog_fetcher = owned_client

    try:
        yield
    finally:
        if owned_client is not None:
            await owned_client.close()
            app.state.catalog_fetcher = None
        await db.close()
        logger.info("Application shutdown complete")
