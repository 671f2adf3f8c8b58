"""
Dogpile Ingestion Framework
===========================

Shelter registry and the adapters that turn a shelter site into
fingerprinted, normalized listings.

Adapter Stages:
1. Fetch - Download raw content for a shelter
2. Parse - Extract RawListings, each with a content fingerprint
3. Transform - Normalize one RawListing with adapter fallback fields
"""

from dogpile_sync.ingestion.adapters import (
    BaseAdapter,
    FixtureAdapter,
    NormalizedListing,
    RawListing,
    ScraperConfig,
    get_adapter,
    list_adapters,
    register_adapter,
)
from dogpile_sync.ingestion.registry import (
    GlobalConfig,
    ShelterConfig,
    ShelterRegistry,
    get_default_registry,
    reset_default_registry,
    seed_shelters,
)

__all__ = [
    # Adapters
    "BaseAdapter",
    "FixtureAdapter",
    "NormalizedListing",
    "RawListing",
    "ScraperConfig",
    "get_adapter",
    "list_adapters",
    "register_adapter",
    # Registry
    "GlobalConfig",
    "ShelterConfig",
    "ShelterRegistry",
    "get_default_registry",
    "reset_default_registry",
    "seed_shelters",
]
