"""AI provider implementations."""

from dogpile_sync.services.ai.providers.anthropic import AnthropicClient
from dogpile_sync.services.ai.providers.openai import OpenAIClient

__all__ = ["AnthropicClient", "OpenAIClient"]
