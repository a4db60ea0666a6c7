"""
LLM router: builds provider instances from the llm config section.

Usage:
    llm = get_llm()                          # current provider, default model
    llm = get_llm(tier="fast")               # tier of the current provider
    llm = get_llm(task="sync_analysis")      # tier taken from task_overrides
    llm = get_llm(provider="ollama")         # another configured provider
    llm = get_llm(model="gpt-4o-mini")       # exact model, no tier lookup
"""

import logging
from typing import Any

from evidence_engine.core.config.loader import get_config
from evidence_engine.core.llm.base import BaseLLM, LLMConfig
from evidence_engine.core.llm.providers.litellm_provider import LiteLLMProvider

logger = logging.getLogger(__name__)

# LiteLLM model-name prefixes per provider
PROVIDER_PREFIXES: dict[str, str] = {
    "anthropic": "",
    "openai": "",
    "google": "gemini/",
    "ollama": "ollama/",
}

_INSTANCE_KEYS = ("temperature", "max_tokens", "timeout")


def _get_llm_config() -> dict[str, Any]:
    return get_config().get("llm", {})


def _resolve_model(
    llm_config: dict[str, Any],
    provider_name: str,
    model: str | None = None,
    tier: str | None = None,
    task: str | None = None,
) -> str:
    """
    Resolve the model name to call.

    Priority: explicit model, then the tier (a task override wins over the
    tier argument), then the provider's default_model.

    Raises:
        ValueError: If nothing resolves to a model.
    """
    if model:
        return model

    provider_config = llm_config.get("providers", {}).get(provider_name, {})

    if task:
        tier = llm_config.get("task_overrides", {}).get(task, tier)

    if tier:
        models = provider_config.get("models", {})
        if tier in models:
            return models[tier]
        logger.warning(f"Tier '{tier}' not found for provider '{provider_name}', using default")

    default_model = provider_config.get("default_model")
    if default_model:
        return default_model

    raise ValueError(f"No model configured for provider '{provider_name}'")


def get_current_provider() -> str:
    """Name of the provider used when get_llm() is called without one."""
    return _get_llm_config().get("current_provider", "anthropic")


def get_llm(
    model: str | None = None,
    tier: str | None = None,
    task: str | None = None,
    provider: str | None = None,
    **kwargs: Any,
) -> BaseLLM:
    """
    Get an LLM instance.

    Args:
        model: Exact model name; bypasses the tier system.
        tier: "fast", "smart" or "smartest".
        task: Task name looked up in task_overrides (e.g. "sync_analysis").
        provider: "anthropic", "openai", "google" or "ollama"; defaults to
            current_provider from config.
        **kwargs: temperature, max_tokens, timeout, or extra litellm args.

    Raises:
        ValueError: If no model can be resolved.
    """
    llm_config = _get_llm_config()
    provider = provider or get_current_provider()

    resolved_model = _resolve_model(llm_config, provider, model, tier, task)
    prefix = PROVIDER_PREFIXES.get(provider, "")
    if prefix and not resolved_model.startswith(prefix):
        resolved_model = f"{prefix}{resolved_model}"

    settings = llm_config.get("settings", {})
    provider_config = llm_config.get("providers", {}).get(provider, {})

    instance_config = LLMConfig(
        model=resolved_model,
        temperature=kwargs.get("temperature", settings.get("temperature", 0.3)),
        max_tokens=kwargs.get("max_tokens", settings.get("max_tokens", 2048)),
        timeout=kwargs.get("timeout", settings.get("timeout", 60.0)),
        extra={k: v for k, v in kwargs.items() if k not in _INSTANCE_KEYS},
    )
    if provider_config.get("api_key"):
        instance_config.extra["api_key"] = provider_config["api_key"]
    if provider_config.get("base_url"):
        instance_config.extra["api_base"] = provider_config["base_url"]

    logger.debug(f"Creating LLM: provider={provider}, model={resolved_model}")
    return LiteLLMProvider(instance_config)
