"""Review analysis job: structured summary of pasted performance-review text."""

import logging
import uuid
from typing import Any

from evidence_engine.core.models.insights import ReviewAnalysis
from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.services.exceptions import HandlerFailure
from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.workers.handlers.base import AnalysisJobHandler

logger = logging.getLogger(__name__)

REVIEW_TYPES = ("employee", "manager", "peer", "self")
_LIST_FIELDS = ("themes", "strengths", "growthAreas")

PROMPT = """Analyze this {review_type} performance review.

Return JSON with keys:
  "summary": 2-3 sentence overview,
  "themes": 3-5 main themes,
  "strengths": list of strengths mentioned,
  "growthAreas": list of areas for improvement,
  "confidence": 0-100, how clear and comprehensive the review is

Review:
{text}"""


def normalize_analysis(raw: Any) -> dict[str, Any]:
    """Coerce an LLM reply into the stored analysis shape."""
    data = raw if isinstance(raw, dict) else {}
    analysis: dict[str, Any] = {"summary": str(data.get("summary") or "").strip()}
    for key in _LIST_FIELDS:
        value = data.get(key) or []
        analysis[key] = [str(v) for v in value] if isinstance(value, list) else [str(value)]
    try:
        confidence = float(data.get("confidence", 0))
    except (TypeError, ValueError):
        confidence = 0.0
    analysis["confidence"] = max(0.0, min(100.0, confidence))
    return analysis


class ReviewAnalysisHandler(AnalysisJobHandler):
    """Config: reviewText (required), reviewType (employee/manager/peer/self)."""

    job_type = JobType.REVIEW_ANALYSIS
    llm_task = "review_analysis"

    async def run(
        self,
        job_id: uuid.UUID,
        config: dict[str, Any],
        recorder: JobRecorder,
    ) -> dict[str, Any]:
        text = str(config.get("reviewText") or "").strip()
        if not text:
            raise HandlerFailure("reviewText is required in job config")

        review_type = str(config.get("reviewType") or "peer").lower()
        if review_type not in REVIEW_TYPES:
            raise HandlerFailure(f"Invalid review type: {config.get('reviewType')}")

        await recorder.progress(20, "Analyzing review content")
        llm = self._get_llm()
        raw = await llm.complete_json(PROMPT.format(review_type=review_type, text=text))
        analysis = normalize_analysis(raw)

        await recorder.progress(80, "Saving analysis")
        db = await self._get_db()
        async with db.session() as session:
            record = ReviewAnalysis(review_type=review_type, source_text=text, analysis=analysis)
            session.add(record)
            await session.flush()
            record_id = record.id

        await recorder.info(
            f"Review analyzed: {len(analysis['themes'])} themes, "
            f"{len(analysis['strengths'])} strengths, {len(analysis['growthAreas'])} growth areas"
        )
        return {"reviewAnalysisId": str(record_id), "reviewType": review_type}
