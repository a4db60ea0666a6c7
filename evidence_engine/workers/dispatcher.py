"""
Job dispatcher: claims a job, runs its handler, records the outcome.

The compare-and-set in JobStore.transition_to_running() is the only
guard against double processing. Whoever loses the claim skips quietly.
"""

import enum
import logging

from evidence_engine.core.models.jobs import Job
from evidence_engine.core.services.exceptions import InvalidTransitionError
from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.core.services.jobs import JobStore
from evidence_engine.core.storage.exceptions import NotFoundError
from evidence_engine.workers.registry import HandlerRegistry

logger = logging.getLogger(__name__)


class DispatchOutcome(str, enum.Enum):
    """What happened to one job in one dispatch attempt."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class Dispatcher:
    """
    Routes jobs to their handlers and turns handler outcomes into job state.

    dispatch() never raises: a broken handler fails its own job and
    nothing else.
    """

    def __init__(self, store: JobStore, registry: HandlerRegistry) -> None:
        self.store = store
        self.registry = registry

    async def dispatch(self, job: Job) -> DispatchOutcome:
        """Run one job to a terminal state, or skip it if someone else owns it."""
        try:
            return await self._dispatch(job)
        except Exception as e:
            # A store failure after the claim leaves the job running; polls never reclaim it
            logger.error(
                f"Dispatch of job {job.id} aborted: {e}. The job may be stuck in running; "
                f"cancel or delete it once the store is reachable",
                exc_info=True,
            )
            return DispatchOutcome.FAILED

    async def _dispatch(self, job: Job) -> DispatchOutcome:
        handler = self.registry.get(job.type)
        if handler is None:
            logger.error(f"No handler registered for job {job.id} of type '{job.type}'")
            failed = await self.store.fail(job.id, f"Unknown job type: {job.type}")
            return DispatchOutcome.FAILED if failed else DispatchOutcome.SKIPPED

        try:
            running = await self.store.transition_to_running(job.id)
        except (InvalidTransitionError, NotFoundError) as e:
            logger.debug(f"Skipping job {job.id}: {e}")
            return DispatchOutcome.SKIPPED

        recorder = JobRecorder(running.id, self.store)
        await recorder.info(f"Started {running.type} job")

        try:
            result = await handler.run(running.id, dict(running.config or {}), recorder)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Job {running.id} ({running.type}) failed: {message}", exc_info=True)
            await recorder.error(f"Job failed: {message}")
            await self.store.fail(running.id, message)
            return DispatchOutcome.FAILED

        if not await self.store.complete(running.id, result if result is not None else {}):
            # Cancelled while the handler ran; its result is discarded
            logger.info(f"Job {running.id} finished after it was cancelled")
            return DispatchOutcome.SKIPPED

        return DispatchOutcome.COMPLETED
