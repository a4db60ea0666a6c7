"""
Monthly insight job.

Config: month ("YYYY-MM", required), force (regenerate even when an
insight for the month already exists).
"""

import logging
import uuid
from collections import Counter
from typing import Any

from sqlalchemy import select

from evidence_engine.core.models.insights import MonthlyInsight
from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.models.sync import Evidence, GitHubPullRequest
from evidence_engine.core.services.exceptions import HandlerFailure
from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.core.storage.postgres import upsert_insert
from evidence_engine.core.utils.time import month_bounds, utcnow_naive
from evidence_engine.workers.handlers.base import AnalysisJobHandler, format_evidence

logger = logging.getLogger(__name__)

PROMPT = """Summarize this engineer's work for {month}.

Metrics: {metrics}

Evidence:
{evidence}

Return JSON: {{"summary": "3-4 sentences", "highlights": ["...", "..."]}}"""


def compute_metrics(rows: list[tuple[Evidence, GitHubPullRequest | None]]) -> dict[str, Any]:
    """Aggregate counts for one month of evidence."""
    categories = Counter(evidence.category or "other" for evidence, _ in rows)
    scopes = Counter(evidence.scope or "unknown" for evidence, _ in rows)
    kinds = Counter(evidence.kind for evidence, _ in rows)
    components: Counter[str] = Counter()
    total_changes = 0
    for _, pull_request in rows:
        if pull_request is None:
            continue
        total_changes += (pull_request.additions or 0) + (pull_request.deletions or 0)
        components.update(pull_request.components or [])

    return {
        "totalEvidence": len(rows),
        "totalPrs": kinds.get("github_pr", 0),
        "totalTickets": kinds.get("jira", 0),
        "totalChanges": total_changes,
        "categories": dict(categories),
        "scopes": dict(scopes),
        "topComponents": [name for name, _ in components.most_common(5)],
    }


class MonthlyInsightHandler(AnalysisJobHandler):
    job_type = JobType.PERIODIC_INSIGHT
    llm_task = "monthly_insight"

    async def run(
        self,
        job_id: uuid.UUID,
        config: dict[str, Any],
        recorder: JobRecorder,
    ) -> dict[str, Any]:
        month = str(config.get("month") or "")
        try:
            start, end = month_bounds(month)
        except ValueError as e:
            raise HandlerFailure("Valid month in YYYY-MM format is required") from e

        db = await self._get_db()
        if not config.get("force"):
            async with db.session() as session:
                result = await session.execute(
                    select(MonthlyInsight).where(MonthlyInsight.month == month)
                )
                existing = result.scalar_one_or_none()
            if existing is not None:
                await recorder.progress(100, "Using existing insight")
                return {"insightId": str(existing.id), "month": month, "cached": True}

        await recorder.progress(20, "Fetching month data")
        async with db.session() as session:
            result = await session.execute(
                select(Evidence, GitHubPullRequest)
                .outerjoin(GitHubPullRequest, Evidence.pull_request_id == GitHubPullRequest.id)
                .where(Evidence.occurred_at >= start, Evidence.occurred_at < end)
                .order_by(Evidence.occurred_at.desc())
            )
            rows = [(evidence, pull_request) for evidence, pull_request in result.all()]

        metrics = compute_metrics(rows)

        if rows:
            await recorder.progress(40, "Generating insight")
            llm = self._get_llm()
            raw = await llm.complete_json(
                PROMPT.format(
                    month=month,
                    metrics=metrics,
                    evidence=format_evidence([evidence for evidence, _ in rows]),
                )
            )
            data = raw if isinstance(raw, dict) else {}
            narrative = str(data.get("summary") or "").strip() or None
            highlights = [str(item) for item in data.get("highlights") or []]
        else:
            await recorder.info("No activity recorded for this month")
            narrative = None
            highlights = []

        await recorder.progress(85, "Saving insight")
        now = utcnow_naive()
        async with db.session() as session:
            values = {
                "metrics": metrics,
                "narrative": narrative,
                "highlights": highlights,
                "generated_at": now,
            }
            stmt = (
                upsert_insert(session, MonthlyInsight)
                .values(id=uuid.uuid4(), month=month, **values)
                .on_conflict_do_update(index_elements=["month"], set_=values)
            )
            await session.execute(stmt)
            result = await session.execute(
                select(MonthlyInsight.id).where(MonthlyInsight.month == month)
            )
            insight_id = result.scalar_one()

        return {
            "insightId": str(insight_id),
            "month": month,
            "cached": False,
            "noActivity": not rows,
            "metrics": {
                "totalEvidence": metrics["totalEvidence"],
                "totalPrs": metrics["totalPrs"],
                "totalChanges": metrics["totalChanges"],
            },
        }
