"""
LiteLLM provider implementation.

LiteLLM gives one async API over Anthropic, OpenAI, Gemini and local
Ollama models. API keys come from the llm config or from the usual
environment variables (ANTHROPIC_API_KEY, OPENAI_API_KEY, ...).

See: https://docs.litellm.ai/docs/providers
"""

import json
import logging
from typing import Any

import litellm

from evidence_engine.core.llm.base import (
    BaseLLM,
    LLMConfig,
    LLMResponse,
    Message,
    parse_json_content,
)
from evidence_engine.core.services.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)


class LiteLLMProvider(BaseLLM):
    """
    LLM provider backed by litellm.acompletion.

    Every failure (transport, provider error, unparseable JSON) surfaces as
    UpstreamFailure, which the sync pipeline treats as a per-item error.
    """

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        litellm.drop_params = True
        self._api_key = config.extra.get("api_key")

    async def complete(self, prompt: str, system: str | None = None) -> LLMResponse:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return await self._call(messages)

    async def chat(self, messages: list[Message]) -> LLMResponse:
        formatted = [{"role": m.role.value, "content": m.content} for m in messages]
        return await self._call(formatted)

    async def complete_json(
        self,
        prompt: str,
        schema: dict[str, Any] | None = None,
        system: str | None = None,
    ) -> Any:
        json_prompt = f"{prompt}\n\nRespond with valid JSON only. No markdown, no explanation."
        if schema:
            json_prompt += f"\n\nExpected schema:\n```json\n{json.dumps(schema, indent=2)}\n```"

        response = await self.complete(json_prompt, system=system)

        try:
            return parse_json_content(response.content)
        except ValueError as e:
            logger.error(f"Failed to parse JSON response: {response.content[:500]}")
            raise UpstreamFailure(str(e)) from e

    async def _call(self, messages: list[dict]) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "timeout": self.config.timeout,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        for key, value in self.config.extra.items():
            if key != "api_key":
                kwargs[key] = value

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            logger.error(f"LiteLLM call failed ({self.config.model}): {e}")
            raise UpstreamFailure(f"LLM call failed: {e}") from e

        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            usage={
                "prompt_tokens": getattr(usage, "prompt_tokens", 0),
                "completion_tokens": getattr(usage, "completion_tokens", 0),
                "total_tokens": getattr(usage, "total_tokens", 0),
            },
            raw_response=response,
        )
