"""Persistence layer: database session management, ORM models and SQL stores."""

from petal.infrastructure.persistence.database import Database
from petal.infrastructure.persistence.models import Base, ensure_utc_aware, utc_now
from petal.infrastructure.persistence.stores import (
    SqlCanonicalEntityStore,
    SqlListeningHistoryStore,
    SqlRelationshipStore,
    SqlSyncStateTracker,
    SqlUserDirectory,
)

__all__ = [
    "Base",
    "Database",
    "SqlCanonicalEntityStore",
    "SqlListeningHistoryStore",
    "SqlRelationshipStore",
    "SqlSyncStateTracker",
    "SqlUserDirectory",
    "ensure_utc_aware",
    "utc_now",
]
