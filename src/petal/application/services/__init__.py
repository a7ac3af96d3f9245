"""Application services - catalog reconciliation and listening history."""

from petal.application.services.canonical_entities import (
    CanonicalEntityResolver,
    ResolvedEntity,
)

# Hey future me - CatalogSyncService is the engine, everything else here supports it.
# The pure planner lives in reconciliation.py so it can be tested without any fakes.
from petal.application.services.catalog_sync_service import CatalogSyncService
from petal.application.services.listening_history_service import (
    ListeningHistoryService,
)
from petal.application.services.reconciliation import (
    PlannedChange,
    ReconciliationPlan,
    plan_reconciliation,
)
from petal.application.services.sync_bookkeeping import SyncBookkeeper

__all__ = [
    "CanonicalEntityResolver",
    "CatalogSyncService",
    "ListeningHistoryService",
    "PlannedChange",
    "ReconciliationPlan",
    "ResolvedEntity",
    "SyncBookkeeper",
    "plan_reconciliation",
]
