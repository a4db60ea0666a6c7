"""
Report generation job.

Config: reportType, startDate, endDate, title (optional).
Collects evidence in the window, asks the LLM for a markdown report and
stores it as a Report row.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from evidence_engine.core.models.insights import Report
from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.services.exceptions import HandlerFailure
from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.core.utils.time import parse_date, utcnow_naive
from evidence_engine.workers.handlers.base import (
    AnalysisJobHandler,
    format_evidence,
    load_evidence,
)

logger = logging.getLogger(__name__)

REPORT_TYPES = (
    "summary",
    "evidence",
    "comprehensive",
    "component_analysis",
    "upward",
    "review_package",
    "resume",
)

# Default window when the job names no start date
DEFAULT_WINDOW_DAYS = 90

SYSTEM_PROMPT = (
    "You write concise, factual engineering performance reports in markdown. "
    "Only use the evidence provided."
)


class ReportGenerationHandler(AnalysisJobHandler):
    job_type = JobType.REPORT_GENERATION
    llm_task = "report_generation"

    async def run(
        self,
        job_id: uuid.UUID,
        config: dict[str, Any],
        recorder: JobRecorder,
    ) -> dict[str, Any]:
        report_type = str(config.get("reportType") or "summary").lower()
        if report_type not in REPORT_TYPES:
            raise HandlerFailure(f"Invalid report type: {config.get('reportType')}")

        end_day = parse_date(config.get("endDate"))
        end = (
            datetime.combine(end_day, datetime.min.time()) + timedelta(days=1)
            if end_day
            else utcnow_naive()
        )
        start_day = parse_date(config.get("startDate"))
        start = (
            datetime.combine(start_day, datetime.min.time())
            if start_day
            else end - timedelta(days=DEFAULT_WINDOW_DAYS)
        )
        if start >= end:
            raise HandlerFailure("startDate must be before endDate")

        await recorder.info(f"Report type: {report_type}")
        await recorder.progress(10, "Fetching evidence...")

        db = await self._get_db()
        async with db.session() as session:
            evidence = await load_evidence(session, start, end)

        await recorder.info(f"Found {len(evidence)} evidence entries")
        title = config.get("title") or (
            f"{report_type.replace('_', ' ').title()} report "
            f"{start.date().isoformat()} to {(end - timedelta(days=1)).date().isoformat()}"
        )

        if evidence:
            await recorder.progress(30, "Generating report...")
            llm = self._get_llm()
            prompt = (
                f"Write a {report_type.replace('_', ' ')} report titled '{title}' "
                f"covering {start.date().isoformat()} to {end.date().isoformat()}.\n\n"
                f"Evidence:\n{format_evidence(evidence)}"
            )
            response = await llm.complete(prompt, system=SYSTEM_PROMPT)
            content = response.content.strip()
        else:
            await recorder.warn("No evidence in range; saving an empty report")
            content = "No evidence was recorded in this period."

        await recorder.progress(90, "Saving report...")
        async with db.session() as session:
            report = Report(
                title=title,
                report_type=report_type,
                start_date=start,
                end_date=end,
                content=content,
                evidence_count=len(evidence),
            )
            session.add(report)
            await session.flush()
            report_id = report.id

        await recorder.info(f"Report saved: {report_id}")
        return {
            "reportId": str(report_id),
            "reportType": report_type,
            "evidenceCount": len(evidence),
        }
