"""Enrichment service: text extraction, photo analysis and bio generation."""

import asyncio
import logging
import os
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from dogpile_sync.core.errors import EnrichmentError
from dogpile_sync.core.schema import BioRequest, GeneratedBio, PhotoAttributes, TextAttributes
from dogpile_sync.services.ai.client import AIClient, create_client_from_env
from dogpile_sync.services.ai.costs import ApiCostTracker
from dogpile_sync.services.ai.prompts import (
    BIO_INSTRUCTIONS,
    PHOTO_ANALYSIS_INSTRUCTIONS,
    TEXT_EXTRACTION_INSTRUCTIONS,
    build_bio_prompt,
    build_photo_analysis_prompt,
    build_text_extraction_prompt,
)

logger = logging.getLogger(__name__)

DEFAULT_TEXT_MODEL = "x-ai/grok-4.1-fast"
DEFAULT_PHOTO_MODEL = "google/gemini-3-flash-preview"
DEFAULT_BIO_MODEL = "google/gemini-3-flash-preview"

# List fields the models tend to return as null
_LIST_FIELDS = ("breed_estimates", "personality_tags")

ModelT = TypeVar("ModelT", bound=BaseModel)


def sanitize_ai_response(data: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize nulls the models return where our schema wants a value.

    Null lists become empty lists and a null ``location_hints`` becomes an
    empty object.
    """
    result = data.copy()
    for field in _LIST_FIELDS:
        if field in result and result[field] is None:
            result[field] = []
    if "location_hints" in result and result["location_hints"] is None:
        result["location_hints"] = {}
    if "urgent" in result and result["urgent"] is None:
        result["urgent"] = False
    return result


class EnrichmentService:
    """
    The three enrichment capabilities, each independently fallible.

    Every method raises EnrichmentError on provider failure, non-JSON output
    or schema mismatch.
    """

    def __init__(
        self,
        client: AIClient,
        text_model: str | None = None,
        photo_model: str | None = None,
        bio_model: str | None = None,
        cost_tracker: ApiCostTracker | None = None,
    ):
        self.client = client
        self.text_model = text_model or DEFAULT_TEXT_MODEL
        self.photo_model = photo_model or DEFAULT_PHOTO_MODEL
        self.bio_model = bio_model or DEFAULT_BIO_MODEL
        self.cost_tracker = cost_tracker

    @classmethod
    def from_env(cls, cost_tracker: ApiCostTracker | None = None) -> "EnrichmentService":
        """Create the service with a client and models from environment variables."""
        return cls(
            client=create_client_from_env(),
            text_model=os.environ.get("MODEL_TEXT_EXTRACTION"),
            photo_model=os.environ.get("MODEL_PHOTO_ANALYSIS"),
            bio_model=os.environ.get("MODEL_DESCRIPTION_GEN"),
            cost_tracker=cost_tracker,
        )

    async def extract(self, text: str) -> TextAttributes:
        """Extract structured attributes from a listing description."""
        return await self._complete(
            operation="text_extraction",
            response_model=TextAttributes,
            prompt=build_text_extraction_prompt(text),
            instructions=TEXT_EXTRACTION_INSTRUCTIONS,
            model=self.text_model,
        )

    async def analyze_multiple(self, urls: list[str]) -> PhotoAttributes:
        """Estimate visual attributes from all photos of one dog."""
        if not urls:
            raise EnrichmentError("No photos to analyze", operation="photo_analysis")
        return await self._complete(
            operation="photo_analysis",
            response_model=PhotoAttributes,
            prompt=build_photo_analysis_prompt(),
            instructions=PHOTO_ANALYSIS_INSTRUCTIONS,
            model=self.photo_model,
            image_urls=urls,
        )

    async def generate(self, attributes: BioRequest) -> GeneratedBio:
        """Generate an adoption bio from combined attributes."""
        return await self._complete(
            operation="description_generation",
            response_model=GeneratedBio,
            prompt=build_bio_prompt(attributes.model_dump(mode="json")),
            instructions=BIO_INSTRUCTIONS,
            model=self.bio_model,
        )

    async def _complete(
        self,
        operation: str,
        response_model: type[ModelT],
        prompt: str,
        instructions: str,
        model: str,
        image_urls: list[str] | None = None,
    ) -> ModelT:
        try:
            result = await self.client.complete_json(
                prompt,
                instructions=instructions,
                image_urls=image_urls,
                model=model,
            )
        except Exception as e:
            raise EnrichmentError(f"API error: {e}", operation=operation, cause=e) from e

        await self._track_usage(operation, result.model, result.input_tokens, result.output_tokens)

        if result.parsed_json is None:
            raise EnrichmentError(
                result.error_message or "No JSON in response",
                operation=operation,
            )

        try:
            return response_model.model_validate(sanitize_ai_response(result.parsed_json))
        except ValidationError as e:
            raise EnrichmentError("Validation failed", operation=operation, cause=e) from e

    async def _track_usage(self, operation: str, model: str, input_tokens: int, output_tokens: int) -> None:
        if self.cost_tracker is None:
            return
        # The tracker writes through a blocking session; keep it off the event loop
        cost = await asyncio.to_thread(self.cost_tracker.log, operation, model, input_tokens, output_tokens)
        logger.debug(f"{operation} on {model}: {input_tokens}+{output_tokens} tokens, ${cost:.6f}")
