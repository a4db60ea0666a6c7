"""
FastAPI application: main entry point.

Provides the job queue REST API, the cron trigger for batch polling and
the worker health check.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from evidence_engine.api.deps import reset_triggers
from evidence_engine.api.routes import (
    insights_router,
    jobs_router,
    sync_router,
    workers_router,
)
from evidence_engine.core.services.exceptions import InvalidTransitionError
from evidence_engine.core.storage.exceptions import NotFoundError
from evidence_engine.core.storage.postgres import close_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Starting Evidence Engine API...")

    yield

    logger.info("Shutting down...")
    reset_triggers()
    await close_db()


app = FastAPI(
    title="Evidence Engine",
    description="Durable job queue and GitHub/Jira sync for performance evidence",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(jobs_router)
app.include_router(workers_router)
app.include_router(sync_router)
app.include_router(insights_router)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(
    request: Request, exc: InvalidTransitionError
) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "evidence-engine"}
