"""
Service layer for the evidence engine.

This module exports the job store, its recorder, the worker heartbeat
and the settings service.
"""

from evidence_engine.core.services.exceptions import (
    HandlerFailure,
    InvalidTransitionError,
    JobError,
    UpstreamFailure,
)
from evidence_engine.core.services.heartbeat import Heartbeat
from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.core.services.jobs import JobStore, get_job_store
from evidence_engine.core.services.settings import SettingsService

__all__ = [
    "JobStore",
    "get_job_store",
    "JobRecorder",
    "Heartbeat",
    "SettingsService",
    "JobError",
    "InvalidTransitionError",
    "HandlerFailure",
    "UpstreamFailure",
]
