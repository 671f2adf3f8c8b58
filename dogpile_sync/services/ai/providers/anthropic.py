"""Anthropic (Claude) AI provider implementation."""

import logging

import anthropic

from dogpile_sync.services.ai.client import (
    AIClient,
    AIProvider,
    CompletionResult,
    parse_json_response,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicClient(AIClient):
    """Anthropic Claude AI client."""

    provider = AIProvider.ANTHROPIC

    def __init__(self, api_key: str, model: str | None = None):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
            model: Model name (defaults to claude-sonnet-4-20250514).
        """
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model or DEFAULT_MODEL

    async def complete_json(
        self,
        prompt: str,
        *,
        instructions: str | None = None,
        image_urls: list[str] | None = None,
        model: str | None = None,
    ) -> CompletionResult:
        model_name = model or self.model

        content: list[dict] = [{"type": "text", "text": prompt}]
        for url in image_urls or []:
            content.append({"type": "image", "source": {"type": "url", "url": url}})

        kwargs = {}
        if instructions:
            kwargs["system"] = instructions

        response = await self.client.messages.create(
            model=model_name,
            max_tokens=4096,
            messages=[{"role": "user", "content": content}],
            **kwargs,
        )

        raw_response = response.content[0].text if response.content else ""
        logger.debug(f"Raw AI response: {raw_response[:500]}...")

        parsed_json, error = parse_json_response(raw_response)
        if error:
            logger.warning(f"Anthropic response for {model_name} was not usable: {error}")

        return CompletionResult(
            raw_response=raw_response,
            parsed_json=parsed_json,
            model=model_name,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            error_message=error,
        )
