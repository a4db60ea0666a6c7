"""Insight routes: request generation of a monthly insight."""

import logging
import re

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from evidence_engine.api.deps import get_triggers
from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.utils.time import utcnow_naive
from evidence_engine.workers.triggers import JobTriggers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/insights", tags=["insights"])

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class GenerateInsightRequest(BaseModel):
    month: str
    force: bool = False


@router.post("/generate")
async def generate_insight(
    body: GenerateInsightRequest,
    triggers: JobTriggers = Depends(get_triggers),
) -> JSONResponse:
    """
    Create a periodic-insight job for a month.

    One active job per month: a second request while one is pending or
    running returns that job with status 200.
    """
    if not MONTH_PATTERN.match(body.month):
        return JSONResponse(status_code=400, content={"error": "Month must be in YYYY-MM format"})

    current_month = utcnow_naive().strftime("%Y-%m")
    if body.month > current_month:
        return JSONResponse(
            status_code=400,
            content={"error": "Cannot generate insights for future months"},
        )

    job, created = await triggers.create_job(
        JobType.PERIODIC_INSIGHT, {"month": body.month, "force": body.force}
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content={
            "jobId": str(job.id),
            "status": job.status,
            "month": body.month,
            "message": (
                "Monthly insight generation job created"
                if created
                else "Job already in progress for this month"
            ),
        },
    )
