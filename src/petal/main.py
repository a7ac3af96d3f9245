"""FastAPI application factory."""

from fastapi import FastAPI

from petal import __version__
from petal.api.exception_handlers import register_exception_handlers
from petal.api.routers import api_router
from petal.config import Settings
from petal.domain.ports import ICatalogFetcher
from petal.infrastructure.lifecycle import lifespan
from petal.infrastructure.observability import RequestLoggingMiddleware


def create_app(
    settings: Settings | None = None,
    catalog_fetcher: ICatalogFetcher | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use instead of the environment (tests)
        catalog_fetcher: Fetcher to use instead of the real Spotify client (tests)
    """
    app = FastAPI(
        title="Petal",
        description="Mirrors a user's Spotify library into a shared catalog",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.catalog_fetcher = catalog_fetcher

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    return app


app = create_app()
