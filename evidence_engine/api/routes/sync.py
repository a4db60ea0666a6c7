"""Sync routes: start a GitHub or Jira sync as an agent-sync job."""

import logging
from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from evidence_engine.api.deps import get_triggers
from evidence_engine.core.models.jobs import JobType
from evidence_engine.workers.triggers import JobTriggers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


class AgentSyncRequest(BaseModel):
    agentType: Literal["github", "jira"]
    startDate: str | None = None
    endDate: str | None = None
    username: str | None = None
    repositories: list[str] = Field(default_factory=list)
    projects: list[str] = Field(default_factory=list)
    limit: int | None = None
    dryRun: bool = False
    updateExisting: bool | None = None


@router.post("/agent")
async def start_agent_sync(
    body: AgentSyncRequest,
    triggers: JobTriggers = Depends(get_triggers),
) -> JSONResponse:
    """Create an agent-sync job; an active sync for the same source is reused."""
    job, created = await triggers.create_job(
        JobType.AGENT_SYNC, body.model_dump(exclude_none=True)
    )
    message = (
        f"{body.agentType} sync job created"
        if created
        else f"{body.agentType} sync already in progress"
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content={
            "jobId": str(job.id),
            "status": job.status,
            "type": job.type,
            "message": message,
        },
    )
