"""AI enrichment services for dogpile sync."""

from dogpile_sync.services.ai.client import (
    AIClient,
    AIProvider,
    CompletionResult,
    create_client_from_env,
    get_ai_client,
)
from dogpile_sync.services.ai.costs import ApiCostTracker, calculate_cost_usd
from dogpile_sync.services.ai.enrichment import EnrichmentService

__all__ = [
    "AIClient",
    "AIProvider",
    "CompletionResult",
    "create_client_from_env",
    "get_ai_client",
    "ApiCostTracker",
    "calculate_cost_usd",
    "EnrichmentService",
]
