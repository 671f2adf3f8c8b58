"""API cost accounting for enrichment calls."""

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dogpile_sync.db.engine import get_session
from dogpile_sync.db.repositories import ApiCostRepository

logger = logging.getLogger(__name__)

# USD per token, from the OpenRouter model list
PRICING_USD_PER_TOKEN: dict[str, tuple[float, float]] = {
    "google/gemini-3-flash-preview": (0.0000005, 0.000003),
    "x-ai/grok-4.1-fast": (0.0000002, 0.0000005),
    "claude-sonnet-4-20250514": (0.000003, 0.000015),
    "gpt-4o": (0.0000025, 0.00001),
}


def calculate_cost_usd(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated cost of one call; unknown models cost 0."""
    pricing = PRICING_USD_PER_TOKEN.get(model)
    if pricing is None:
        return 0.0
    input_price, output_price = pricing
    return input_tokens * input_price + output_tokens * output_price


class ApiCostTracker:
    """Records token usage of AI calls in the api_costs table."""

    def __init__(self, session_factory: Callable[[], AbstractContextManager[Session]] = get_session):
        self.session_factory = session_factory

    def log(self, operation: str, model: str, input_tokens: int, output_tokens: int) -> float:
        """
        Record one call. Storage failures are logged and swallowed; cost
        accounting never fails an enrichment.

        Returns:
            The estimated cost in USD.
        """
        cost = calculate_cost_usd(model, input_tokens, output_tokens)
        try:
            with self.session_factory() as session:
                ApiCostRepository(session).log(
                    operation=operation,
                    model=model,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    cost_usd=cost,
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to record API cost for {operation} ({model}): {e}")
        return cost
