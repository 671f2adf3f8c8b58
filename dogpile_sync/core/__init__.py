"""Core domain models, enums and errors."""

from dogpile_sync.core.enums import ACTIVE_STATUSES, ListingStatus, ShelterStatus, SyncRunStatus
from dogpile_sync.core.errors import (
    EnrichmentError,
    ParseError,
    PersistenceError,
    QueueSendError,
    ScrapeError,
    SyncError,
    UnknownAdapterError,
)
from dogpile_sync.core.fingerprint import compute_fingerprint
from dogpile_sync.core.schema import (
    Listing,
    ReindexJob,
    ScrapeRequest,
    Shelter,
    SyncRun,
    utc_now,
)

__all__ = [
    # Enums
    "ACTIVE_STATUSES",
    "ListingStatus",
    "ShelterStatus",
    "SyncRunStatus",
    # Errors
    "SyncError",
    "ScrapeError",
    "ParseError",
    "UnknownAdapterError",
    "EnrichmentError",
    "PersistenceError",
    "QueueSendError",
    # Models
    "Listing",
    "Shelter",
    "SyncRun",
    "ScrapeRequest",
    "ReindexJob",
    "utc_now",
    "compute_fingerprint",
]
