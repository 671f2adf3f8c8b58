"""Application services for dogpile sync."""

from dogpile_sync.services.ai import (
    AIClient,
    AIProvider,
    ApiCostTracker,
    EnrichmentService,
)
from dogpile_sync.services.search import SearchDocument, SearchIndex, build_search_document

__all__ = [
    "AIClient",
    "AIProvider",
    "ApiCostTracker",
    "EnrichmentService",
    "SearchDocument",
    "SearchIndex",
    "build_search_document",
]
