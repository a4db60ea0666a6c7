"""
Trigger layer: every way a job gets dispatched.

- poll_once(): batch poll of all pending jobs (the worker loop and the
  cron endpoint call this)
- trigger_immediately(): best-effort run right after creation
- run_by_id(): operator re-run of one pending job
- create_job(): creation with dedup of in-flight work

All of them end in the same Dispatcher.dispatch() call.
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any

from evidence_engine.core.config.loader import get_worker_config
from evidence_engine.core.models.jobs import Job, JobStatus, JobType
from evidence_engine.core.services.exceptions import InvalidTransitionError
from evidence_engine.core.services.heartbeat import Heartbeat
from evidence_engine.core.services.jobs import JobStore
from evidence_engine.core.storage.postgres import Database
from evidence_engine.workers.dispatcher import DispatchOutcome, Dispatcher
from evidence_engine.workers.registry import HandlerRegistry

logger = logging.getLogger(__name__)

# Job types that may only have one live instance per value of this config key
DEDUP_KEYS: dict[JobType, str] = {
    JobType.PERIODIC_INSIGHT: "month",
    JobType.AGENT_SYNC: "agentType",
}

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class TriggerConfig:
    """Settings shared by the worker loop, the CLI and the HTTP triggers."""

    interval_seconds: float = 2.0
    max_concurrency: int = 1
    process_immediately: bool = False
    log_level: str = "INFO"
    stale_multiple: float = 5.0


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def load_trigger_config() -> TriggerConfig:
    """
    Load trigger settings from workers.job_worker, overridden by environment.

    Environment variables: WORKER_INTERVAL_SECONDS, WORKER_MAX_CONCURRENCY,
    WORKER_LOG_LEVEL, PROCESS_JOBS_IMMEDIATELY.
    """
    worker_config = get_worker_config("job_worker")

    return TriggerConfig(
        interval_seconds=float(
            os.environ.get(
                "WORKER_INTERVAL_SECONDS",
                worker_config.get("interval_seconds", 2),
            )
        ),
        max_concurrency=max(
            1,
            int(
                os.environ.get(
                    "WORKER_MAX_CONCURRENCY",
                    worker_config.get("max_concurrency", 1),
                )
            ),
        ),
        process_immediately=_as_bool(
            os.environ.get(
                "PROCESS_JOBS_IMMEDIATELY",
                worker_config.get("process_immediately", False),
            )
        ),
        log_level=os.environ.get(
            "WORKER_LOG_LEVEL",
            worker_config.get("log_level", "INFO"),
        ),
        stale_multiple=float(worker_config.get("stale_multiple", 5)),
    )


class JobTriggers:
    """
    Entry points that cause dispatch to run.

    The heartbeat is injected so tests (and alternative deployments) can
    supply their own cell; poll_once() writes it every cycle.
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: Dispatcher,
        heartbeat: Heartbeat,
        config: TriggerConfig | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.heartbeat = heartbeat
        self.config = config or TriggerConfig()

    async def poll_once(self) -> dict[str, int]:
        """
        Dispatch every pending job, oldest first.

        Up to config.max_concurrency jobs run at once; concurrent pollers
        are safe because each job can only be claimed once.

        Returns:
            {"processed", "successful", "failed", "skipped"}
        """
        try:
            await self.heartbeat.beat()
        except Exception as e:
            logger.warning(f"Failed to write heartbeat: {e}")

        pending = await self.store.list_pending()
        counts = {"processed": 0, "successful": 0, "failed": 0, "skipped": 0}
        if not pending:
            return counts

        logger.info(f"Found {len(pending)} pending jobs")
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def run_one(job: Job) -> DispatchOutcome:
            async with semaphore:
                return await self.dispatcher.dispatch(job)

        outcomes = await asyncio.gather(*(run_one(job) for job in pending))

        for outcome in outcomes:
            counts["processed"] += 1
            if outcome == DispatchOutcome.COMPLETED:
                counts["successful"] += 1
            elif outcome == DispatchOutcome.FAILED:
                counts["failed"] += 1
            else:
                counts["skipped"] += 1

        logger.info(
            f"Poll complete: processed={counts['processed']}, successful={counts['successful']}, "
            f"failed={counts['failed']}, skipped={counts['skipped']}"
        )
        return counts

    async def run_by_id(self, job_id: uuid.UUID | str) -> DispatchOutcome:
        """
        Dispatch one specific job now.

        Raises:
            NotFoundError: If the job does not exist.
            InvalidTransitionError: If the job is not pending.
        """
        job = await self.store.get(job_id)
        if job.status != JobStatus.PENDING.value:
            raise InvalidTransitionError(job.id, job.status, JobStatus.RUNNING.value)

        outcome = await self.dispatcher.dispatch(job)
        logger.info(f"Manual run of job {job.id}: {outcome.value}")
        return outcome

    async def trigger_immediately(self, job_id: uuid.UUID | str) -> DispatchOutcome | None:
        """
        Best-effort dispatch right after creation.

        Any failure is logged and swallowed: the job is already stored and
        the next poll will pick it up.
        """
        try:
            job = await self.store.get(job_id)
            return await self.dispatcher.dispatch(job)
        except Exception as e:
            logger.warning(f"Immediate dispatch of job {job_id} failed, leaving it for the poller: {e}")
            return None

    async def create_job(
        self,
        job_type: JobType | str,
        config: dict[str, Any] | None = None,
    ) -> tuple[Job, bool]:
        """
        Create a job, or return the live duplicate for dedup-keyed types.

        Returns:
            (job, created): created is False when an existing pending or
            running job was returned instead.
        """
        job_type = JobType(job_type)
        config = config if config is not None else {}

        dedup_key = DEDUP_KEYS.get(job_type)
        if dedup_key is not None:
            existing = await self.store.find_active(job_type, {dedup_key: config.get(dedup_key)})
            if existing is not None:
                logger.info(
                    f"Reusing active {job_type.value} job {existing.id} "
                    f"for {dedup_key}={config.get(dedup_key)!r}"
                )
                return existing, False

        job = await self.store.create(job_type, config)

        if self.config.process_immediately:
            await self.trigger_immediately(job.id)
            job = await self.store.get(job.id)

        return job, True


def build_triggers(
    db: Database | None = None,
    registry: HandlerRegistry | None = None,
    config: TriggerConfig | None = None,
) -> JobTriggers:
    """Wire store, registry, dispatcher and heartbeat into a JobTriggers."""
    from evidence_engine.workers.handlers import build_default_registry

    store = JobStore(db)
    dispatcher = Dispatcher(store, registry or build_default_registry(db))
    return JobTriggers(store, dispatcher, Heartbeat(db), config or load_trigger_config())
