"""API router initialization."""

# Hey future me, this is the MAIN API router aggregator! Mounted at /api in main.py, so
# the sync endpoints end up at /api/users/{user_id}/sync/{resource_kind}.

from fastapi import APIRouter

from petal.api.routers import sync

api_router = APIRouter()

api_router.include_router(sync.router, tags=["Sync"])

__all__ = ["api_router"]
