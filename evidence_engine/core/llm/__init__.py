"""
LLM module: one interface over the generative-text providers.

Usage:
    from evidence_engine.core.llm import get_llm

    llm = get_llm(task="sync_analysis")
    data = await llm.complete_json(prompt, schema=SCHEMA)
"""

from evidence_engine.core.llm.base import BaseLLM, LLMConfig, LLMResponse, Message, Role
from evidence_engine.core.llm.router import get_current_provider, get_llm

__all__ = [
    "BaseLLM",
    "LLMConfig",
    "LLMResponse",
    "Message",
    "Role",
    "get_current_provider",
    "get_llm",
]
