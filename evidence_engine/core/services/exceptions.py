"""
Exceptions raised by the job engine and its handlers.

NotFoundError lives with the storage exceptions and is re-exported here
so callers can import the whole job error taxonomy from one place.
"""

from evidence_engine.core.storage.exceptions import ConfigurationError, NotFoundError


class JobError(Exception):
    """Base exception for job engine errors."""

    pass


class InvalidTransitionError(JobError):
    """A job state change was attempted from a status that does not allow it."""

    def __init__(self, job_id: object, current_status: str, attempted: str):
        self.job_id = job_id
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Job {job_id} cannot move to '{attempted}' from '{current_status}'"
        )


class HandlerFailure(JobError):
    """A handler's own business logic failed; the job ends up failed."""

    pass


class UpstreamFailure(JobError):
    """A remote API or LLM call made on behalf of a job failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


__all__ = [
    "JobError",
    "InvalidTransitionError",
    "HandlerFailure",
    "UpstreamFailure",
    "NotFoundError",
    "ConfigurationError",
]
