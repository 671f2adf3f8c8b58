"""Database initialization and persistence layer."""

from dogpile_sync.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from dogpile_sync.db.models import (
    ApiCostDB,
    Base,
    ListingDB,
    ShelterDB,
    SyncRunDB,
)
from dogpile_sync.db.repositories import (
    ApiCostRepository,
    ListingRepository,
    ShelterRepository,
    SyncRunRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "ShelterDB",
    "ListingDB",
    "SyncRunDB",
    "ApiCostDB",
    # Repositories
    "ShelterRepository",
    "ListingRepository",
    "SyncRunRepository",
    "ApiCostRepository",
]
