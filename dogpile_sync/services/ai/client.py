"""AI client interface and provider abstraction."""

import json
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class AIProvider(str, Enum):
    """Supported AI providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OPENROUTER = "openrouter"


class CompletionResult(BaseModel):
    """Result of one JSON completion call."""

    raw_response: str
    parsed_json: dict[str, Any] | None = None
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    error_message: str | None = None


def parse_json_response(raw_response: str) -> tuple[dict[str, Any] | None, str | None]:
    """
    Parse a model response as a JSON object.

    Markdown code fences around the payload are stripped first.

    Returns:
        Tuple of (parsed object or None, error message or None).
    """
    json_str = raw_response.strip()
    if json_str.startswith("```json"):
        json_str = json_str[7:]
    if json_str.startswith("```"):
        json_str = json_str[3:]
    if json_str.endswith("```"):
        json_str = json_str[:-3]
    json_str = json_str.strip()

    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as e:
        return None, f"JSON parse error: {e}"

    if not isinstance(parsed, dict):
        return None, f"Expected a JSON object, got {type(parsed).__name__}"
    return parsed, None


class AIClient(ABC):
    """Abstract base class for AI providers."""

    provider: AIProvider
    model: str

    @abstractmethod
    async def complete_json(
        self,
        prompt: str,
        *,
        instructions: str | None = None,
        image_urls: list[str] | None = None,
        model: str | None = None,
    ) -> CompletionResult:
        """
        Ask the model for a JSON object.

        Args:
            prompt: User prompt.
            instructions: Optional system instructions.
            image_urls: Optional images attached to the prompt.
            model: Optional per-call model override.

        Returns:
            CompletionResult; ``parsed_json`` is None when the response was
            not a JSON object. Transport and API errors propagate.
        """
        pass


def get_ai_client(
    provider: AIProvider | str,
    api_key: str,
    model: str | None = None,
    base_url: str | None = None,
) -> AIClient:
    """
    Factory function to get an AI client for the specified provider.

    Args:
        provider: The AI provider to use.
        api_key: The API key for the provider.
        model: Optional default model override.
        base_url: Optional API base URL (OpenAI-compatible providers).

    Returns:
        An AIClient instance for the specified provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    if isinstance(provider, str):
        provider = AIProvider(provider.lower())

    if provider == AIProvider.ANTHROPIC:
        from dogpile_sync.services.ai.providers.anthropic import AnthropicClient

        return AnthropicClient(api_key=api_key, model=model)
    elif provider == AIProvider.OPENAI:
        from dogpile_sync.services.ai.providers.openai import OpenAIClient

        return OpenAIClient(api_key=api_key, model=model, base_url=base_url)
    elif provider == AIProvider.OPENROUTER:
        from dogpile_sync.services.ai.providers.openai import OpenAIClient

        return OpenAIClient(
            api_key=api_key,
            model=model,
            base_url=base_url or OPENROUTER_BASE_URL,
            provider=AIProvider.OPENROUTER,
        )
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")


def create_client_from_env() -> AIClient:
    """
    Create an AI client from environment variables.

    AI_PROVIDER selects the provider; it defaults to openrouter when
    OPENROUTER_API_KEY is set and to anthropic otherwise.
    """
    default_provider = "openrouter" if os.environ.get("OPENROUTER_API_KEY") else "anthropic"
    provider = os.environ.get("AI_PROVIDER", default_provider).lower()
    model = os.environ.get("AI_MODEL")

    key_vars = {
        "anthropic": "ANTHROPIC_API_KEY",
        "openai": "OPENAI_API_KEY",
        "openrouter": "OPENROUTER_API_KEY",
    }
    if provider not in key_vars:
        raise ValueError(f"Unsupported AI provider: {provider}")

    api_key = os.environ.get(key_vars[provider])
    if not api_key:
        raise ValueError(f"{key_vars[provider]} environment variable is required")

    logger.info(f"Using AI provider '{provider}'")
    return get_ai_client(
        provider=provider,
        api_key=api_key,
        model=model,
        base_url=os.environ.get("AI_BASE_URL"),
    )
