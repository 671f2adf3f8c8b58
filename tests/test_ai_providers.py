"""Tests for AI provider clients, client factory and cost accounting."""

from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from dogpile_sync.db.models import Base
from dogpile_sync.db.repositories import ApiCostRepository
from dogpile_sync.services.ai.client import (
    OPENROUTER_BASE_URL,
    AIProvider,
    create_client_from_env,
    get_ai_client,
    parse_json_response,
)
from dogpile_sync.services.ai.costs import ApiCostTracker, calculate_cost_usd


class TestParseJsonResponse:
    """Tests for parse_json_response."""

    def test_plain_json(self) -> None:
        assert parse_json_response('{"bio": "x"}') == ({"bio": "x"}, None)

    def test_code_fence(self) -> None:
        parsed, error = parse_json_response('```json\n{"bio": "x"}\n```')
        assert parsed == {"bio": "x"}
        assert error is None

    def test_invalid_json(self) -> None:
        parsed, error = parse_json_response("Sorry, I cannot help with that.")
        assert parsed is None
        assert error.startswith("JSON parse error")

    def test_non_object(self) -> None:
        parsed, error = parse_json_response("[1, 2]")
        assert parsed is None
        assert "Expected a JSON object" in error


class TestAnthropicClient:
    """Tests for the Anthropic provider."""

    @pytest.mark.asyncio
    async def test_complete_json(self) -> None:
        mock_response = MagicMock()
        mock_response.content = [MagicMock(text='{"bio": "Burek szuka domu."}')]
        mock_response.usage.input_tokens = 120
        mock_response.usage.output_tokens = 30

        mock_sdk = MagicMock()
        mock_sdk.messages.create = AsyncMock(return_value=mock_response)

        with patch("anthropic.AsyncAnthropic", return_value=mock_sdk):
            client = get_ai_client("anthropic", api_key="test-key")
            result = await client.complete_json(
                "Write a bio",
                instructions="You are helpful",
                image_urls=["https://a.example/1.jpg"],
                model="claude-test",
            )

        assert result.parsed_json == {"bio": "Burek szuka domu."}
        assert result.model == "claude-test"
        assert (result.input_tokens, result.output_tokens) == (120, 30)

        kwargs = mock_sdk.messages.create.call_args.kwargs
        assert kwargs["system"] == "You are helpful"
        content = kwargs["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "Write a bio"}
        assert content[1]["source"] == {"type": "url", "url": "https://a.example/1.jpg"}

    @pytest.mark.asyncio
    async def test_unusable_response(self) -> None:
        mock_response = MagicMock()
        mock_response.content = [MagicMock(text="not json")]
        mock_response.usage.input_tokens = 1
        mock_response.usage.output_tokens = 1

        mock_sdk = MagicMock()
        mock_sdk.messages.create = AsyncMock(return_value=mock_response)

        with patch("anthropic.AsyncAnthropic", return_value=mock_sdk):
            result = await get_ai_client("anthropic", api_key="k").complete_json("prompt")

        assert result.parsed_json is None
        assert result.error_message is not None


class TestOpenAIClient:
    """Tests for the OpenAI-compatible provider."""

    def make_sdk(self, content: str) -> MagicMock:
        mock_response = MagicMock()
        mock_response.choices = [MagicMock(message=MagicMock(content=content))]
        mock_response.usage.prompt_tokens = 50
        mock_response.usage.completion_tokens = 10
        mock_sdk = MagicMock()
        mock_sdk.chat.completions.create = AsyncMock(return_value=mock_response)
        return mock_sdk

    @pytest.mark.asyncio
    async def test_complete_json_with_images(self) -> None:
        mock_sdk = self.make_sdk('{"fur_length": "long"}')

        with patch("openai.AsyncOpenAI", return_value=mock_sdk):
            client = get_ai_client("openai", api_key="k")
            result = await client.complete_json(
                "Describe the dog", instructions="Vet", image_urls=["https://a.example/1.jpg"]
            )

        assert result.parsed_json == {"fur_length": "long"}
        assert result.model == "gpt-4o"
        assert (result.input_tokens, result.output_tokens) == (50, 10)

        kwargs = mock_sdk.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "Vet"}
        user_content = kwargs["messages"][1]["content"]
        assert user_content[1] == {"type": "image_url", "image_url": {"url": "https://a.example/1.jpg"}}

    @pytest.mark.asyncio
    async def test_text_only_prompt(self) -> None:
        mock_sdk = self.make_sdk("{}")

        with patch("openai.AsyncOpenAI", return_value=mock_sdk):
            await get_ai_client("openai", api_key="k").complete_json("Hello")

        messages = mock_sdk.chat.completions.create.call_args.kwargs["messages"]
        assert messages == [{"role": "user", "content": "Hello"}]

    def test_openrouter_uses_base_url(self) -> None:
        with patch("openai.AsyncOpenAI") as mock_cls:
            client = get_ai_client(AIProvider.OPENROUTER, api_key="k", model="x-ai/grok-4.1-fast")

        mock_cls.assert_called_once_with(api_key="k", base_url=OPENROUTER_BASE_URL)
        assert client.provider == AIProvider.OPENROUTER
        assert client.model == "x-ai/grok-4.1-fast"

    def test_unsupported_provider(self) -> None:
        with pytest.raises(ValueError):
            get_ai_client("carrier-pigeon", api_key="k")


class TestCreateClientFromEnv:
    """Tests for environment-driven client creation."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch) -> None:
        for name in ("AI_PROVIDER", "AI_MODEL", "AI_BASE_URL", "OPENROUTER_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY"):
            monkeypatch.delenv(name, raising=False)

    def test_defaults_to_openrouter_when_key_present(self, monkeypatch) -> None:
        monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")

        with patch("openai.AsyncOpenAI"):
            client = create_client_from_env()

        assert client.provider == AIProvider.OPENROUTER

    def test_explicit_provider(self, monkeypatch) -> None:
        monkeypatch.setenv("AI_PROVIDER", "anthropic")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "a-key")
        monkeypatch.setenv("AI_MODEL", "claude-test")

        with patch("anthropic.AsyncAnthropic"):
            client = create_client_from_env()

        assert client.provider == AIProvider.ANTHROPIC
        assert client.model == "claude-test"

    def test_missing_key(self) -> None:
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            create_client_from_env()

    def test_unknown_provider(self, monkeypatch) -> None:
        monkeypatch.setenv("AI_PROVIDER", "carrier-pigeon")
        with pytest.raises(ValueError, match="Unsupported"):
            create_client_from_env()


class TestApiCostTracker:
    """Tests for cost accounting."""

    @pytest.fixture
    def session_factory(self):
        engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(engine)
        SessionLocal = sessionmaker(bind=engine)

        @contextmanager
        def factory():
            session = SessionLocal()
            try:
                yield session
            finally:
                session.close()

        yield factory
        engine.dispose()

    def test_calculate_cost(self) -> None:
        assert calculate_cost_usd("x-ai/grok-4.1-fast", 1_000_000, 0) == pytest.approx(0.2)
        assert calculate_cost_usd("unknown-model", 1000, 1000) == 0.0

    def test_log_persists_usage(self, session_factory) -> None:
        tracker = ApiCostTracker(session_factory)

        cost = tracker.log("photo_analysis", "google/gemini-3-flash-preview", 1000, 100)

        assert cost == pytest.approx(0.0008)
        with session_factory() as session:
            assert ApiCostRepository(session).total_cost() == pytest.approx(0.0008)

    def test_storage_failure_is_not_fatal(self) -> None:
        @contextmanager
        def broken_factory():
            raise OperationalError("INSERT", {}, Exception("database is locked"))
            yield

        cost = ApiCostTracker(broken_factory).log("text_extraction", "x-ai/grok-4.1-fast", 10, 10)

        assert cost > 0
