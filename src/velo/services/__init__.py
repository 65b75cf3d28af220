"""
Velo services: business logic for the ingestion and rating pipeline.

Pipeline stages:
1. Sync upcoming: new upcoming matches from the data source
2. Refresh pending: live / final / cancelled updates for started matches
3. Recompute: full rating rebuild and odds for upcoming matches

Usage:
    from velo.services import (
        sync_upcoming,
        refresh_pending,
        recompute_ratings_and_odds,
    )
"""

from velo.services.orchestrator import (
    RecomputeStats,
    RefreshStats,
    SyncStats,
    recompute_ratings_and_odds,
    refresh_pending,
    sync_upcoming,
)
from velo.services.reconciler import (
    MatchReconciler,
    ReconcileStats,
)

__all__ = [
    # Reconciliation
    "MatchReconciler",
    "ReconcileStats",
    # Jobs
    "sync_upcoming",
    "SyncStats",
    "refresh_pending",
    "RefreshStats",
    "recompute_ratings_and_odds",
    "RecomputeStats",
]
