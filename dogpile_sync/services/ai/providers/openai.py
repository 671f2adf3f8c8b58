"""OpenAI-compatible AI provider implementation (OpenAI and OpenRouter)."""

import logging

import openai

from dogpile_sync.services.ai.client import (
    AIClient,
    AIProvider,
    CompletionResult,
    parse_json_response,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


class OpenAIClient(AIClient):
    """OpenAI chat completions client; also serves OpenRouter via base_url."""

    provider = AIProvider.OPENAI

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        provider: AIProvider = AIProvider.OPENAI,
    ):
        """
        Initialize the OpenAI client.

        Args:
            api_key: API key.
            model: Model name (defaults to gpt-4o).
            base_url: Optional API base URL.
            provider: Provider label for OpenAI-compatible endpoints.
        """
        self.client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model or DEFAULT_MODEL
        self.provider = provider

    async def complete_json(
        self,
        prompt: str,
        *,
        instructions: str | None = None,
        image_urls: list[str] | None = None,
        model: str | None = None,
    ) -> CompletionResult:
        model_name = model or self.model

        messages: list[dict] = []
        if instructions:
            messages.append({"role": "system", "content": instructions})

        if image_urls:
            content: list[dict] = [{"type": "text", "text": prompt}]
            content.extend({"type": "image_url", "image_url": {"url": url}} for url in image_urls)
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=model_name,
            max_tokens=4096,
            messages=messages,
            response_format={"type": "json_object"},
        )

        raw_response = response.choices[0].message.content or ""
        logger.debug(f"Raw AI response: {raw_response[:500]}...")

        parsed_json, error = parse_json_response(raw_response)
        if error:
            logger.warning(f"{self.provider.value} response for {model_name} was not usable: {error}")

        usage = response.usage
        return CompletionResult(
            raw_response=raw_response,
            parsed_json=parsed_json,
            model=model_name,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            error_message=error,
        )
