"""
Dogpile Sync Engine
===================

Reconciles each shelter's scraped listings against the store: inserts and
enriches new dogs, refreshes the ones still listed, removes the ones gone
stale, and fans out search reindex and image jobs.
"""

from dogpile_sync.sync.circuit_breaker import BreakerDecision, evaluate_breaker
from dogpile_sync.sync.config import SyncSettings
from dogpile_sync.sync.diff import DiffResult, diff_listings
from dogpile_sync.sync.engine import ReconciliationEngine, RunResult
from dogpile_sync.sync.enrichment import EnrichmentOrchestrator, EnrichmentOutcome
from dogpile_sync.sync.gc import collect_stale_runs
from dogpile_sync.sync.queue import (
    IMAGE_QUEUE,
    REINDEX_QUEUE,
    ArqJobQueue,
    InMemoryJobQueue,
    JobQueue,
)

__all__ = [
    "BreakerDecision",
    "evaluate_breaker",
    "SyncSettings",
    "DiffResult",
    "diff_listings",
    "ReconciliationEngine",
    "RunResult",
    "EnrichmentOrchestrator",
    "EnrichmentOutcome",
    "collect_stale_runs",
    "IMAGE_QUEUE",
    "REINDEX_QUEUE",
    "ArqJobQueue",
    "InMemoryJobQueue",
    "JobQueue",
]
