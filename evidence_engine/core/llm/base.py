"""
Base interface for generative-text providers.

Job handlers only see this interface, so prompts and models can change
without touching the handlers, and tests can swap in a mock.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Message roles in conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """A single message in conversation."""
    role: Role
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    raw_response: Any = None


@dataclass
class LLMConfig:
    """Configuration for an LLM provider."""
    model: str
    temperature: float = 0.3
    max_tokens: int = 2048
    timeout: float = 60.0
    extra: dict[str, Any] = field(default_factory=dict)


def parse_json_content(content: str) -> Any:
    """
    Parse a model reply that should be JSON.

    Tolerates a surrounding ```json fence and leading/trailing prose around
    the outermost object or array.

    Raises:
        ValueError: If no JSON value can be parsed.
    """
    text = content.strip()

    if text.startswith("```"):
        lines = text.split("\n")
        if lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines[1:]).strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except json.JSONDecodeError:
                continue

    raise ValueError(f"LLM response is not valid JSON: {content[:200]}")


class BaseLLM(ABC):
    """
    Abstract base class for LLM providers.

    Usage:
        llm = SomeLLMProvider(config)
        response = await llm.complete("Summarize this pull request ...")
        data = await llm.complete_json("Classify ...", schema={...})
    """

    def __init__(self, config: LLMConfig):
        self.config = config

    @abstractmethod
    async def complete(self, prompt: str, system: str | None = None) -> LLMResponse:
        """Single-prompt completion with an optional system message."""
        pass

    @abstractmethod
    async def chat(self, messages: list[Message]) -> LLMResponse:
        """Chat completion with message history."""
        pass

    @abstractmethod
    async def complete_json(
        self,
        prompt: str,
        schema: dict[str, Any] | None = None,
        system: str | None = None,
    ) -> Any:
        """Completion that returns parsed JSON."""
        pass

    def get_model_name(self) -> str:
        return self.config.model
