"""Shared plumbing for handlers that read evidence and call the LLM."""

from datetime import datetime
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from evidence_engine.core.llm.base import BaseLLM
from evidence_engine.core.llm.router import get_llm
from evidence_engine.core.models.sync import Evidence
from evidence_engine.core.storage.postgres import Database, get_db
from evidence_engine.workers.registry import JobHandler

# Cap on evidence lines handed to a single prompt
MAX_PROMPT_EVIDENCE = 50


class AnalysisJobHandler(JobHandler):
    """Handler with lazy database access and an injectable LLM factory."""

    llm_task: str = ""

    def __init__(
        self,
        db: Database | None = None,
        llm_factory: Callable[..., BaseLLM] = get_llm,
    ) -> None:
        self._db = db
        self.llm_factory = llm_factory

    async def _get_db(self) -> Database:
        if self._db is None:
            self._db = await get_db()
        return self._db

    def _get_llm(self, **kwargs: Any) -> BaseLLM:
        return self.llm_factory(task=self.llm_task or None, **kwargs)


async def load_evidence(
    session: AsyncSession,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Evidence]:
    """Evidence with occurred_at in [start, end), newest first."""
    query = select(Evidence)
    if start is not None:
        query = query.where(Evidence.occurred_at >= start)
    if end is not None:
        query = query.where(Evidence.occurred_at < end)
    result = await session.execute(query.order_by(Evidence.occurred_at.desc()))
    return list(result.scalars().all())


def format_evidence(evidence: list[Evidence], limit: int = MAX_PROMPT_EVIDENCE) -> str:
    """One prompt line per evidence entry."""
    lines = []
    for entry in evidence[:limit]:
        label = f"{entry.category or 'other'}/{entry.scope or '-'}"
        summary = (entry.summary or "").replace("\n", " ")
        lines.append(f"- [{entry.occurred_at.date().isoformat()}] ({label}) {entry.title}: {summary}")
    return "\n".join(lines)
