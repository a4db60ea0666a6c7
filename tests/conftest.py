"""
Shared test fixtures.

The database fixtures run the real models against a throwaway SQLite file
(aiosqlite), so the job store's conditional updates are exercised for real.
"""

from typing import Any

import pytest
import pytest_asyncio

from evidence_engine.core.llm.base import BaseLLM, LLMConfig, LLMResponse, Message
from evidence_engine.core.services.heartbeat import Heartbeat
from evidence_engine.core.services.jobs import JobStore
from evidence_engine.core.storage.base import DatabaseConfig
from evidence_engine.core.storage.postgres import Database
from evidence_engine.workers.dispatcher import Dispatcher
from evidence_engine.workers.registry import HandlerRegistry
from evidence_engine.workers.triggers import JobTriggers, TriggerConfig


@pytest.fixture
def database_config(tmp_path) -> DatabaseConfig:
    """Database configuration pointing at a per-test SQLite file."""
    return DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path}/test.db")


@pytest_asyncio.fixture
async def database(database_config: DatabaseConfig):
    """Connected database with all tables created."""
    db = Database(database_config)
    await db.connect()
    await db.create_tables()
    yield db
    await db.disconnect()


@pytest.fixture
def store(database: Database) -> JobStore:
    return JobStore(database)


@pytest.fixture
def registry() -> HandlerRegistry:
    """Empty registry; tests register the handlers they need."""
    return HandlerRegistry()


@pytest.fixture
def triggers(database: Database, store: JobStore, registry: HandlerRegistry) -> JobTriggers:
    """Trigger layer wired to the test database and the test registry."""
    return JobTriggers(
        store,
        Dispatcher(store, registry),
        Heartbeat(database),
        TriggerConfig(interval_seconds=2, max_concurrency=2),
    )


class FakeLLM(BaseLLM):
    """
    Scripted LLM for handler and pipeline tests.

    complete() returns `text`; complete_json() pops the next scripted
    response (an Exception instance is raised instead). Prompts are kept
    in `prompts` for assertions.
    """

    def __init__(self, json_responses: list[Any] | None = None, text: str = "Generated text"):
        super().__init__(LLMConfig(model="fake-model"))
        self.json_responses = list(json_responses or [])
        self.text = text
        self.prompts: list[str] = []
        self.closed = False

    async def complete(self, prompt: str, system: str | None = None) -> LLMResponse:
        self.prompts.append(prompt)
        return LLMResponse(content=self.text, model=self.config.model)

    async def chat(self, messages: list[Message]) -> LLMResponse:
        return await self.complete(messages[-1].content)

    async def complete_json(
        self,
        prompt: str,
        schema: dict[str, Any] | None = None,
        system: str | None = None,
    ) -> Any:
        self.prompts.append(prompt)
        if not self.json_responses:
            return {}
        response = self.json_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()
