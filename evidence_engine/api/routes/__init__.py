"""API routes package."""

from evidence_engine.api.routes.insights import router as insights_router
from evidence_engine.api.routes.jobs import router as jobs_router
from evidence_engine.api.routes.sync import router as sync_router
from evidence_engine.api.routes.workers import router as workers_router

__all__ = [
    "jobs_router",
    "workers_router",
    "sync_router",
    "insights_router",
]
