"""Meilisearch service for adoptable-dog search indexing.

Consumes reindex jobs: upserts enriched dogs into the ``dogs`` index and
deletes removed ones, with filterable metadata for shelter, city, size,
age, sex and status.
"""

import logging
import os
from typing import Any

from meilisearch import Client
from meilisearch.errors import MeilisearchApiError, MeilisearchCommunicationError

from dogpile_sync.services.search import SearchDocument, SearchIndex

logger = logging.getLogger(__name__)

DOGS_INDEX = "dogs"


class MeilisearchService(SearchIndex):
    """Service for managing the Meilisearch dogs index."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        client: Client | None = None,
    ):
        """
        Initialize the Meilisearch service.

        Args:
            url: Meilisearch server URL (default: MEILISEARCH_URL env or localhost:7700)
            api_key: Meilisearch API key (default: MEILISEARCH_API_KEY env or None)
            client: Optional pre-built client
        """
        self.url = url or os.getenv("MEILISEARCH_URL", "http://localhost:7700")
        self.api_key = api_key or os.getenv("MEILISEARCH_API_KEY")
        self.client = client or Client(self.url, self.api_key)

    def is_available(self) -> bool:
        """Check if Meilisearch is reachable."""
        try:
            self.client.health()
            return True
        except (MeilisearchApiError, MeilisearchCommunicationError):
            return False

    def setup_indexes(self) -> None:
        """Configure the dogs index."""
        self.client.index(DOGS_INDEX).update_settings({
            "searchableAttributes": ["text"],
            "filterableAttributes": [
                "shelter_id",
                "city",
                "size",
                "age_months",
                "sex",
                "status",
                "urgent",
            ],
            "sortableAttributes": ["age_months"],
            "typoTolerance": {
                "enabled": True,
                "minWordSizeForTypos": {
                    "oneTypo": 4,
                    "twoTypos": 8,
                },
            },
        })
        logger.info("Dogs index configured successfully")

    # =========================================================================
    # Indexing Methods
    # =========================================================================

    def upsert_documents(self, documents: list[SearchDocument]) -> None:
        """
        Add or replace dog documents.

        Errors propagate so the reindex job is retried by the queue.
        """
        if not documents:
            return
        self.client.index(DOGS_INDEX).add_documents(
            [d.to_index_document() for d in documents], primary_key="id"
        )
        logger.info(f"Indexed {len(documents)} dog document(s)")

    def delete_documents(self, ids: list[str]) -> None:
        if not ids:
            return
        self.client.index(DOGS_INDEX).delete_documents(ids)
        logger.info(f"Deleted {len(ids)} dog document(s) from index")

    # =========================================================================
    # Search / Stats
    # =========================================================================

    def search_dogs(
        self,
        query: str,
        filters: dict[str, Any] | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Search dogs with optional equality filters."""
        filter_parts = []
        for key, value in (filters or {}).items():
            if isinstance(value, bool):
                filter_parts.append(f"{key} = {str(value).lower()}")
            elif isinstance(value, str):
                filter_parts.append(f'{key} = "{value}"')
            else:
                filter_parts.append(f"{key} = {value}")

        search_params: dict[str, Any] = {"limit": limit}
        if filter_parts:
            search_params["filter"] = " AND ".join(filter_parts)

        try:
            result = self.client.index(DOGS_INDEX).search(query, search_params)
            return result["hits"]
        except MeilisearchApiError as e:
            logger.error(f"Dog search failed: {e}")
            return []

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the dogs index."""
        try:
            index_stats = self.client.index(DOGS_INDEX).get_stats()
        except (MeilisearchApiError, MeilisearchCommunicationError) as e:
            logger.warning(f"Failed to read dogs index stats: {e}")
            return {"available": False}
        return {
            "available": True,
            "numberOfDocuments": index_stats.number_of_documents,
            "isIndexing": index_stats.is_indexing,
        }


# Singleton instance for convenience
_service_instance: MeilisearchService | None = None


def get_meilisearch_service() -> MeilisearchService:
    """Get or create the Meilisearch service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = MeilisearchService()
    return _service_instance
