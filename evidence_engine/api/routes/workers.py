"""
Worker routes: the batch-poll trigger for external cron and the
heartbeat health check.
"""

import hmac
import json
import logging
import os
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from evidence_engine.api.deps import get_triggers
from evidence_engine.core.config.loader import get_worker_config
from evidence_engine.workers.dispatcher import DispatchOutcome
from evidence_engine.workers.triggers import JobTriggers

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workers"])

_OUTCOME_COUNTERS = {
    DispatchOutcome.COMPLETED: "successful",
    DispatchOutcome.FAILED: "failed",
    DispatchOutcome.SKIPPED: "skipped",
}


def get_cron_secret() -> str:
    """CRON_SECRET from the environment, else workers.job_worker.cron_secret."""
    return os.environ.get("CRON_SECRET") or str(
        get_worker_config("job_worker").get("cron_secret") or ""
    )


def verify_secret(request: Request, expected: str) -> bool:
    """
    Check the shared secret from "Authorization: Bearer <secret>" or ?secret=.

    Uses constant-time comparison.
    """
    provided = ""
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        provided = header[7:].strip()
    if not provided:
        provided = request.query_params.get("secret", "")
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def _requested_job_id(request: Request) -> str | None:
    job_id = request.query_params.get("jobId")
    if job_id or request.method != "POST":
        return job_id

    body = await request.body()
    if not body:
        return None
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return None
    return data.get("jobId") if isinstance(data, dict) else None


@router.api_route("/api/workers/process-jobs", methods=["GET", "POST"])
async def process_jobs(
    request: Request,
    triggers: JobTriggers = Depends(get_triggers),
) -> Any:
    """
    Run one batch poll, or dispatch a single job when jobId is given.

    Returns {processed, successful, failed, skipped}.
    """
    secret = get_cron_secret()
    if not secret:
        logger.error("CRON_SECRET is not configured; refusing to process jobs")
        return JSONResponse(status_code=500, content={"error": "CRON_SECRET is not configured"})

    if not verify_secret(request, secret):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    job_id = await _requested_job_id(request)
    if job_id:
        outcome = await triggers.run_by_id(job_id)
        counts = {"processed": 1, "successful": 0, "failed": 0, "skipped": 0}
        counts[_OUTCOME_COUNTERS[outcome]] += 1
        return {**counts, "jobId": job_id}

    return await triggers.poll_once()


@router.get("/api/worker/health")
async def worker_health(triggers: JobTriggers = Depends(get_triggers)) -> dict[str, Any]:
    """Report whether the poller has written a heartbeat recently."""
    return await triggers.heartbeat.check(
        interval_seconds=triggers.config.interval_seconds,
        multiple=triggers.config.stale_multiple,
    )
