"""
Tests for LLM router configuration and model resolution.

These tests verify the config parsing and model resolution logic
without making actual API calls.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from evidence_engine.core.llm.base import parse_json_content
from evidence_engine.core.llm.providers.litellm_provider import LiteLLMProvider
from evidence_engine.core.llm.router import _resolve_model, get_current_provider, get_llm
from evidence_engine.core.services.exceptions import UpstreamFailure

SAMPLE_CONFIG = {
    "llm": {
        "current_provider": "anthropic",
        "providers": {
            "anthropic": {
                "api_key": "sk-ant-test",
                "default_model": "claude-3-5-haiku-latest",
                "models": {
                    "fast": "claude-3-5-haiku-latest",
                    "smart": "claude-sonnet-4-5",
                },
            },
            "google": {
                "default_model": "gemini-2.0-flash",
                "models": {"fast": "gemini-2.0-flash"},
            },
            "ollama": {
                "base_url": "http://localhost:11434",
                "default_model": "llama3.1",
            },
        },
        "settings": {"temperature": 0.2, "max_tokens": 1024, "timeout": 30.0},
        "task_overrides": {"report_generation": "smart"},
    }
}


@pytest.fixture
def mock_config():
    """Mock get_config to return sample config."""
    with patch("evidence_engine.core.llm.router.get_config") as mock:
        mock.return_value = SAMPLE_CONFIG
        yield mock


class TestResolveModel:
    """Tests for _resolve_model function."""

    def test_explicit_model_takes_priority(self) -> None:
        llm_config = SAMPLE_CONFIG["llm"]
        assert _resolve_model(llm_config, "anthropic", model="gpt-4o", tier="smart") == "gpt-4o"

    def test_tier_lookup(self) -> None:
        llm_config = SAMPLE_CONFIG["llm"]
        assert _resolve_model(llm_config, "anthropic", tier="smart") == "claude-sonnet-4-5"

    def test_task_override_wins_over_tier(self) -> None:
        llm_config = SAMPLE_CONFIG["llm"]
        model = _resolve_model(llm_config, "anthropic", tier="fast", task="report_generation")
        assert model == "claude-sonnet-4-5"

    def test_task_without_override_keeps_tier(self) -> None:
        llm_config = SAMPLE_CONFIG["llm"]
        model = _resolve_model(llm_config, "anthropic", tier="smart", task="sync_analysis")
        assert model == "claude-sonnet-4-5"

    def test_unknown_tier_falls_back_to_default(self) -> None:
        llm_config = SAMPLE_CONFIG["llm"]
        assert _resolve_model(llm_config, "anthropic", tier="smartest") == "claude-3-5-haiku-latest"

    def test_unconfigured_provider_raises(self) -> None:
        with pytest.raises(ValueError):
            _resolve_model(SAMPLE_CONFIG["llm"], "openai")


class TestGetLLM:
    """Tests for get_llm instance construction."""

    def test_current_provider(self, mock_config) -> None:
        assert get_current_provider() == "anthropic"

    def test_builds_litellm_provider(self, mock_config) -> None:
        llm = get_llm(tier="fast")

        assert isinstance(llm, LiteLLMProvider)
        assert llm.get_model_name() == "claude-3-5-haiku-latest"
        assert llm.config.temperature == 0.2
        assert llm.config.extra["api_key"] == "sk-ant-test"

    def test_provider_prefix_added(self, mock_config) -> None:
        assert get_llm(provider="google").get_model_name() == "gemini/gemini-2.0-flash"
        assert get_llm(provider="ollama").get_model_name() == "ollama/llama3.1"

    def test_base_url_becomes_api_base(self, mock_config) -> None:
        llm = get_llm(provider="ollama")
        assert llm.config.extra["api_base"] == "http://localhost:11434"

    def test_kwargs_override_settings(self, mock_config) -> None:
        llm = get_llm(temperature=0.9, max_tokens=10)
        assert llm.config.temperature == 0.9
        assert llm.config.max_tokens == 10


class TestParseJsonContent:
    """Tests for tolerant JSON parsing of model replies."""

    def test_plain_json(self) -> None:
        assert parse_json_content('{"scope": "small"}') == {"scope": "small"}

    def test_fenced_json(self) -> None:
        assert parse_json_content('```json\n{"a": 1}\n```') == {"a": 1}

    def test_json_inside_prose(self) -> None:
        assert parse_json_content('Here you go: [{"id": "c1"}] Thanks!') == [{"id": "c1"}]

    def test_not_json(self) -> None:
        with pytest.raises(ValueError):
            parse_json_content("I cannot help with that")


class TestLiteLLMProvider:
    """Tests for the litellm-backed provider with acompletion mocked."""

    def _response(self, content: str) -> MagicMock:
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = content
        response.model = "claude-3-5-haiku-latest"
        response.usage.prompt_tokens = 10
        response.usage.completion_tokens = 5
        response.usage.total_tokens = 15
        return response

    @pytest.mark.asyncio
    async def test_complete_json(self, mock_config) -> None:
        llm = get_llm()
        with patch(
            "evidence_engine.core.llm.providers.litellm_provider.litellm.acompletion",
            new=AsyncMock(return_value=self._response('{"category": "feature"}')),
        ) as acompletion:
            data = await llm.complete_json("Classify", system="You are terse")

        assert data == {"category": "feature"}
        messages = acompletion.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "You are terse"}
        assert acompletion.call_args.kwargs["api_key"] == "sk-ant-test"

    @pytest.mark.asyncio
    async def test_call_failure_is_upstream_failure(self, mock_config) -> None:
        llm = get_llm()
        with patch(
            "evidence_engine.core.llm.providers.litellm_provider.litellm.acompletion",
            new=AsyncMock(side_effect=RuntimeError("rate limited")),
        ):
            with pytest.raises(UpstreamFailure):
                await llm.complete("hello")

    @pytest.mark.asyncio
    async def test_unparseable_json_is_upstream_failure(self, mock_config) -> None:
        llm = get_llm()
        with patch(
            "evidence_engine.core.llm.providers.litellm_provider.litellm.acompletion",
            new=AsyncMock(return_value=self._response("no json here")),
        ):
            with pytest.raises(UpstreamFailure):
                await llm.complete_json("Classify")
