"""Job queue routes: create, inspect, cancel and delete jobs."""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from evidence_engine.api.deps import get_triggers
from evidence_engine.core.models.jobs import JobStatus, JobType
from evidence_engine.workers.triggers import JobTriggers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


class CreateJobRequest(BaseModel):
    type: str
    config: dict[str, Any] = Field(default_factory=dict)


@router.post("")
async def create_job(
    body: CreateJobRequest,
    triggers: JobTriggers = Depends(get_triggers),
) -> JSONResponse:
    """Create a job; 200 with the existing job when an active duplicate exists."""
    try:
        job_type = JobType(body.type)
    except ValueError:
        valid = ", ".join(t.value for t in JobType)
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid job type: {body.type}. Valid types: {valid}"},
        )

    job, created = await triggers.create_job(job_type, body.config)
    return JSONResponse(
        status_code=201 if created else 200,
        content={"id": str(job.id), "status": job.status, "type": job.type},
    )


@router.get("")
async def list_jobs(
    type: str | None = None,
    status: str | None = None,
    limit: int = 50,
    triggers: JobTriggers = Depends(get_triggers),
) -> Any:
    if type is not None and type not in {t.value for t in JobType}:
        return JSONResponse(status_code=400, content={"error": f"Invalid job type: {type}"})
    if status is not None and status not in {s.value for s in JobStatus}:
        return JSONResponse(status_code=400, content={"error": f"Invalid status: {status}"})

    limit = max(1, min(limit, 500))
    jobs = await triggers.store.list_jobs(job_type=type, status=status, limit=limit)
    return [job.to_dict() for job in jobs]


@router.get("/stats")
async def job_stats(triggers: JobTriggers = Depends(get_triggers)) -> dict[str, int]:
    return await triggers.store.stats()


@router.post("/clear-failed")
async def clear_failed(triggers: JobTriggers = Depends(get_triggers)) -> dict[str, int]:
    """Delete all failed and cancelled jobs."""
    deleted = await triggers.store.clear_failed()
    return {"deleted": deleted}


@router.get("/{job_id}")
async def get_job(job_id: str, triggers: JobTriggers = Depends(get_triggers)) -> dict[str, Any]:
    job = await triggers.store.get(job_id)
    return job.to_dict()


@router.post("/{job_id}/cancel")
async def cancel_job(job_id: str, triggers: JobTriggers = Depends(get_triggers)) -> dict[str, Any]:
    """Cancel a pending or running job. Cancelling a finished job changes nothing."""
    cancelled = await triggers.store.cancel(job_id)
    job = await triggers.store.get(job_id)
    return {"id": str(job.id), "status": job.status, "cancelled": cancelled}


@router.delete("/{job_id}")
async def delete_job(job_id: str, triggers: JobTriggers = Depends(get_triggers)) -> dict[str, Any]:
    await triggers.store.delete(job_id)
    return {"id": job_id, "deleted": True}
