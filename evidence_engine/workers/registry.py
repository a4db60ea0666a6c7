"""
Job handler interface and the registry the dispatcher routes through.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.services.job_recorder import JobRecorder

logger = logging.getLogger(__name__)


class JobHandler(ABC):
    """
    Type-specific procedure that performs a job's work.

    run() returns the job's result payload; raising marks the job failed.
    Handlers report progress and log lines through the recorder and should
    poll recorder.is_cancelled() between units of work when they loop.
    """

    job_type: JobType

    @abstractmethod
    async def run(
        self,
        job_id: uuid.UUID,
        config: dict[str, Any],
        recorder: JobRecorder,
    ) -> dict[str, Any]:
        """Do the work and return the result payload."""


class HandlerRegistry:
    """Maps job type strings to handler instances."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, handler: JobHandler, job_type: JobType | str | None = None) -> None:
        """
        Register a handler under its job_type (or an explicit one).

        Raises:
            ValueError: If the type is not a JobType.
        """
        resolved = JobType(job_type if job_type is not None else handler.job_type)
        if resolved.value in self._handlers:
            logger.warning(f"Replacing handler for job type {resolved.value}")
        self._handlers[resolved.value] = handler

    def get(self, job_type: str) -> JobHandler | None:
        return self._handlers.get(job_type)

    def types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
