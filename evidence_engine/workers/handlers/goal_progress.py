"""
Goal progress job.

Config: goalId (required), evidenceIds (optional), autoMatchEvidence
(default true). Evidence is matched to the goal by keyword overlap when
no ids are given, then the LLM estimates progress and a short summary.
"""

import logging
import re
import uuid
from typing import Any

from sqlalchemy import select

from evidence_engine.core.models.insights import Goal
from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.models.sync import Evidence
from evidence_engine.core.services.exceptions import HandlerFailure
from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.core.storage.exceptions import NotFoundError
from evidence_engine.core.utils.time import utcnow_naive
from evidence_engine.workers.handlers.base import (
    AnalysisJobHandler,
    format_evidence,
    load_evidence,
)

logger = logging.getLogger(__name__)

MIN_KEYWORD_LENGTH = 4
MIN_KEYWORD_MATCHES = 2
PROMPT_EVIDENCE_LIMIT = 10

PROMPT = """Evaluate progress on this performance goal.

## {title}
{description}

Evidence relevant to the goal:
{evidence}

Return JSON: {{"progressPercent": 0-100, "summary": "2-3 sentences"}}"""


def goal_keywords(goal: Goal) -> set[str]:
    """Lowercased words of at least four characters from the goal's title and description."""
    text = f"{goal.title} {goal.description or ''}".lower()
    return {word for word in re.findall(r"[a-z0-9]+", text) if len(word) >= MIN_KEYWORD_LENGTH}


def match_evidence(goal: Goal, evidence: list[Evidence]) -> list[Evidence]:
    """Evidence whose title or summary contains at least two goal keywords."""
    keywords = goal_keywords(goal)
    matched = []
    for entry in evidence:
        text = f"{entry.title} {entry.summary or ''}".lower()
        if sum(1 for keyword in keywords if keyword in text) >= MIN_KEYWORD_MATCHES:
            matched.append(entry)
    return matched


class GoalProgressHandler(AnalysisJobHandler):
    job_type = JobType.GOAL_PROGRESS
    llm_task = "goal_progress"

    async def run(
        self,
        job_id: uuid.UUID,
        config: dict[str, Any],
        recorder: JobRecorder,
    ) -> dict[str, Any]:
        try:
            goal_id = uuid.UUID(str(config.get("goalId")))
        except ValueError as e:
            raise HandlerFailure(f"Missing or invalid goalId in job config: {config.get('goalId')!r}") from e

        db = await self._get_db()
        async with db.session() as session:
            goal = await session.get(Goal, goal_id)
            if goal is None:
                raise NotFoundError(f"Goal {goal_id} not found")

            evidence_ids = config.get("evidenceIds") or []
            if evidence_ids:
                ids = [uuid.UUID(str(value)) for value in evidence_ids]
                result = await session.execute(
                    select(Evidence)
                    .where(Evidence.id.in_(ids))
                    .order_by(Evidence.occurred_at.desc())
                )
                evidence = list(result.scalars().all())
                await recorder.info(f"Using {len(evidence)} specified evidence entries")
            elif config.get("autoMatchEvidence", True):
                evidence = match_evidence(goal, await load_evidence(session))
                await recorder.info(f"Auto-matched {len(evidence)} evidence entries")
            else:
                evidence = []

        await recorder.progress(40, f"Evaluating goal: {goal.title}")

        if evidence:
            llm = self._get_llm()
            raw = await llm.complete_json(
                PROMPT.format(
                    title=goal.title,
                    description=goal.description or "",
                    evidence=format_evidence(evidence, PROMPT_EVIDENCE_LIMIT),
                )
            )
            data = raw if isinstance(raw, dict) else {}
            try:
                percent = int(round(float(data.get("progressPercent", 0))))
            except (TypeError, ValueError):
                percent = 0
            percent = max(0, min(100, percent))
            summary = str(data.get("summary") or "").strip()
        else:
            await recorder.warn("No evidence matched this goal")
            percent = goal.progress_percent
            summary = "No supporting evidence found yet."

        await recorder.progress(80, "Saving goal progress")
        async with db.session() as session:
            stored = await session.get(Goal, goal_id)
            if stored is None:
                raise NotFoundError(f"Goal {goal_id} not found")
            stored.progress_percent = percent
            stored.progress_summary = summary
            stored.progress_evidence_ids = [str(entry.id) for entry in evidence]
            stored.progress_updated_at = utcnow_naive()

        return {
            "goalId": str(goal_id),
            "progressPercent": percent,
            "evidenceCount": len(evidence),
        }
