"""
Durable job store and lifecycle state machine.

Every state change is a single conditional UPDATE guarded by the current
status, so the database row is the only authority on where a job is.
A process that crashes mid-job loses nothing: on restart the trigger
layer simply re-reads pending jobs.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from evidence_engine.core.models.jobs import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Job,
    JobStatus,
    JobType,
)
from evidence_engine.core.services.exceptions import InvalidTransitionError
from evidence_engine.core.storage.exceptions import NotFoundError
from evidence_engine.core.storage.postgres import Database, get_db
from evidence_engine.core.utils.time import utcnow, utcnow_naive

logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warn", "error")

CANCELLED_MESSAGE = "Job cancelled"

_ACTIVE = [s.value for s in ACTIVE_STATUSES]
_TERMINAL = [s.value for s in TERMINAL_STATUSES]


def make_log_entry(level: str, message: str) -> dict[str, str]:
    """Build one {timestamp, level, message} log entry."""
    if level not in LOG_LEVELS:
        level = "info"
    return {
        "timestamp": utcnow().isoformat().replace("+00:00", "Z"),
        "level": level,
        "message": message,
    }


def _coerce_id(job_id: uuid.UUID | str) -> uuid.UUID:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError as e:
        raise NotFoundError(f"Job not found: {job_id}") from e


class JobStore:
    """
    Read/write contract for the jobs table.

    Writes made while a handler runs (logs, progress, status message) each
    use their own short transaction, so readers polling a job see them
    immediately and never block the writer.
    """

    def __init__(self, db: Database | None = None) -> None:
        """Initialize with a database instance, or None to use get_db() lazily."""
        self._db = db

    async def _get_db(self) -> Database:
        """Get the database instance, resolving lazily if needed."""
        if self._db is None:
            self._db = await get_db()
        return self._db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def create(self, job_type: JobType | str, config: dict[str, Any] | None = None) -> Job:
        """
        Create a pending job.

        Args:
            job_type: One of JobType (or its string value).
            config: Type-specific input payload, stored as-is.

        Returns:
            The new Job in status pending with progress 0.

        Raises:
            ValueError: If job_type is not a known JobType.
        """
        job_type = JobType(job_type)
        job = Job(
            type=job_type.value,
            status=JobStatus.PENDING.value,
            progress=0,
            config=config if config is not None else {},
            logs=[make_log_entry("info", f"Job created: {job_type.value}")],
        )

        db = await self._get_db()
        async with db.session() as session:
            session.add(job)
            await session.flush()
            await session.refresh(job)

        logger.info(f"Job created: {job_type.value} ({job.id})")
        return job

    async def get(self, job_id: uuid.UUID | str) -> Job:
        """
        Get a job by id.

        Raises:
            NotFoundError: If no job has this id.
        """
        job_uuid = _coerce_id(job_id)
        db = await self._get_db()
        async with db.session() as session:
            job = await session.get(Job, job_uuid)

        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return job

    async def list_jobs(
        self,
        job_type: JobType | str | None = None,
        status: JobStatus | str | None = None,
        limit: int = 50,
    ) -> list[Job]:
        """List jobs newest first, optionally filtered by type and status."""
        stmt = select(Job).order_by(Job.created_at.desc()).limit(limit)
        if job_type is not None:
            stmt = stmt.where(Job.type == JobType(job_type).value)
        if status is not None:
            stmt = stmt.where(Job.status == JobStatus(status).value)

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_pending(self, limit: int | None = None) -> list[Job]:
        """List pending jobs oldest first, the order the poller runs them in."""
        stmt = (
            select(Job)
            .where(Job.status == JobStatus.PENDING.value)
            .order_by(Job.created_at.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_active(
        self,
        job_type: JobType | str,
        config_match: dict[str, Any] | None = None,
    ) -> Job | None:
        """
        Find the oldest pending or running job of a type whose config matches.

        Args:
            job_type: Job type to look for.
            config_match: Keys that must be equal in the job's config. An
                empty or missing dict matches any active job of the type.

        Returns:
            The matching Job, or None.
        """
        stmt = (
            select(Job)
            .where(Job.type == JobType(job_type).value, Job.status.in_(_ACTIVE))
            .order_by(Job.created_at.asc())
        )

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            candidates = result.scalars().all()

        # Active jobs are few; comparing in Python keeps this portable across JSON dialects
        match = config_match or {}
        for job in candidates:
            config = job.config or {}
            if all(config.get(key) == value for key, value in match.items()):
                return job
        return None

    async def stats(self) -> dict[str, int]:
        """Count jobs per status, plus a total."""
        stmt = select(Job.status, func.count(Job.id)).group_by(Job.status)

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            counts = {status: count for status, count in result.all()}

        stats = {status.value: counts.get(status.value, 0) for status in JobStatus}
        stats["total"] = sum(counts.values())
        return stats

    async def is_cancelled(self, job_id: uuid.UUID | str) -> bool:
        """
        Return True if the job was cancelled.

        A job that no longer exists also counts as cancelled so that a
        handler whose job was deleted from under it stops at the next check.
        """
        job_uuid = _coerce_id(job_id)
        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(select(Job.status).where(Job.id == job_uuid))
            status = result.scalar_one_or_none()

        return status is None or status == JobStatus.CANCELLED.value

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def transition_to_running(self, job_id: uuid.UUID | str) -> Job:
        """
        Claim a pending job for execution.

        Compare-and-set on status: exactly one caller can move a given job
        from pending to running.

        Returns:
            The job, now running.

        Raises:
            NotFoundError: If the job does not exist.
            InvalidTransitionError: If the job is not pending.
        """
        job_uuid = _coerce_id(job_id)
        now = utcnow_naive()
        stmt = (
            update(Job)
            .where(Job.id == job_uuid, Job.status == JobStatus.PENDING.value)
            .values(status=JobStatus.RUNNING.value, started_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                await self._raise_for_missed_transition(
                    session, job_uuid, JobStatus.RUNNING
                )
            job = await self._load(session, job_uuid)

        logger.info(f"Job claimed: {job.type} ({job.id})")
        return job

    async def complete(self, job_id: uuid.UUID | str, result: dict[str, Any] | None = None) -> bool:
        """
        Mark a job completed with its result payload.

        Returns:
            True if this call completed the job, False if it was already terminal.

        Raises:
            NotFoundError: If the job does not exist.
        """
        now = utcnow_naive()
        applied = await self._finish(
            job_id,
            {
                "status": JobStatus.COMPLETED.value,
                "result": result if result is not None else {},
                "progress": 100,
                "completed_at": now,
                "updated_at": now,
            },
        )
        if applied:
            logger.info(f"Job completed: {job_id}")
        return applied

    async def fail(self, job_id: uuid.UUID | str, error: str) -> bool:
        """
        Mark a job failed with an error message.

        Returns:
            True if this call failed the job, False if it was already terminal.

        Raises:
            NotFoundError: If the job does not exist.
        """
        now = utcnow_naive()
        applied = await self._finish(
            job_id,
            {
                "status": JobStatus.FAILED.value,
                "error": error,
                "completed_at": now,
                "updated_at": now,
            },
        )
        if applied:
            logger.warning(f"Job failed: {job_id}: {error}")
        return applied

    async def cancel(self, job_id: uuid.UUID | str) -> bool:
        """
        Cancel a pending or running job.

        A pending job will never be dispatched. A running job's handler
        keeps executing until it next checks is_cancelled(); its eventual
        complete/fail call is then a no-op.

        Returns:
            True if this call cancelled the job, False if it was already terminal.

        Raises:
            NotFoundError: If the job does not exist.
        """
        now = utcnow_naive()
        applied = await self._finish(
            job_id,
            {
                "status": JobStatus.CANCELLED.value,
                "status_message": CANCELLED_MESSAGE,
                "completed_at": now,
                "updated_at": now,
            },
            log_entry=make_log_entry("warn", CANCELLED_MESSAGE),
        )
        if applied:
            logger.info(f"Job cancelled: {job_id}")
        return applied

    async def delete(self, job_id: uuid.UUID | str) -> None:
        """
        Delete a job.

        Pending and running jobs are cancelled first. Completed jobs are
        kept as the record of work done.

        Raises:
            NotFoundError: If the job does not exist.
            InvalidTransitionError: If the job is completed.
        """
        job = await self.get(job_id)
        if JobStatus(job.status) in ACTIVE_STATUSES:
            await self.cancel(job.id)
            job = await self.get(job.id)

        if job.status == JobStatus.COMPLETED.value:
            raise InvalidTransitionError(job.id, job.status, "deleted")

        db = await self._get_db()
        async with db.session() as session:
            await session.execute(
                delete(Job)
                .where(
                    Job.id == job.id,
                    Job.status.in_([JobStatus.FAILED.value, JobStatus.CANCELLED.value]),
                )
                .execution_options(synchronize_session=False)
            )

        logger.info(f"Job deleted: {job.id}")

    async def clear_failed(self) -> int:
        """Delete every failed or cancelled job. Returns how many were removed."""
        stmt = (
            delete(Job)
            .where(Job.status.in_([JobStatus.FAILED.value, JobStatus.CANCELLED.value]))
            .execution_options(synchronize_session=False)
        )

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            deleted = result.rowcount or 0

        logger.info(f"Cleared {deleted} failed/cancelled jobs")
        return deleted

    async def cleanup_completed(self, older_than_days: int = 7) -> int:
        """Delete terminal jobs that finished more than older_than_days ago."""
        cutoff = utcnow_naive() - timedelta(days=older_than_days)
        stmt = (
            delete(Job)
            .where(Job.status.in_(_TERMINAL), Job.completed_at < cutoff)
            .execution_options(synchronize_session=False)
        )

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            deleted = result.rowcount or 0

        logger.info(f"Cleaned up {deleted} jobs older than {older_than_days} days")
        return deleted

    # ------------------------------------------------------------------
    # Writes while running
    # ------------------------------------------------------------------

    async def append_log(self, job_id: uuid.UUID | str, level: str, message: str) -> bool:
        """
        Append one entry to a running job's log.

        Returns:
            False (and writes nothing) when the job is not running.
        """
        job_uuid = _coerce_id(job_id)
        entry = make_log_entry(level, message)

        db = await self._get_db()
        async with db.session() as session:
            # Touching the row first takes the write lock, so the
            # read-modify-write below cannot lose a concurrent append
            claimed = await session.execute(
                update(Job)
                .where(Job.id == job_uuid, Job.status == JobStatus.RUNNING.value)
                .values(updated_at=utcnow_naive())
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                return False

            job = await self._load(session, job_uuid)
            job.logs = [*(job.logs or []), entry]

        return True

    async def set_progress(
        self,
        job_id: uuid.UUID | str,
        percent: int | float,
        message: str | None = None,
    ) -> bool:
        """
        Raise a running job's progress gauge, optionally with a status message.

        The value is clamped to 0..100 and never lowers the stored progress.

        Returns:
            False (and writes nothing) when the job is not running.
        """
        job_uuid = _coerce_id(job_id)
        clamped = max(0, min(100, int(percent)))
        values: dict[str, Any] = {
            "progress": case((Job.progress < clamped, clamped), else_=Job.progress),
            "updated_at": utcnow_naive(),
        }
        if message is not None:
            values["status_message"] = message[:500]

        return await self._update_running(job_uuid, values)

    async def set_status_message(self, job_id: uuid.UUID | str, message: str) -> bool:
        """
        Replace a running job's status message.

        Returns:
            False (and writes nothing) when the job is not running.
        """
        job_uuid = _coerce_id(job_id)
        return await self._update_running(
            job_uuid, {"status_message": message[:500], "updated_at": utcnow_naive()}
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _update_running(self, job_uuid: uuid.UUID, values: dict[str, Any]) -> bool:
        stmt = (
            update(Job)
            .where(Job.id == job_uuid, Job.status == JobStatus.RUNNING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def _finish(
        self,
        job_id: uuid.UUID | str,
        values: dict[str, Any],
        log_entry: dict[str, str] | None = None,
    ) -> bool:
        """Move an active job to a terminal status; False if it is already terminal."""
        job_uuid = _coerce_id(job_id)
        stmt = (
            update(Job)
            .where(Job.id == job_uuid, Job.status.in_(_ACTIVE))
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                exists = await session.execute(select(Job.id).where(Job.id == job_uuid))
                if exists.scalar_one_or_none() is None:
                    raise NotFoundError(f"Job not found: {job_id}")
                return False

            if log_entry is not None:
                job = await self._load(session, job_uuid)
                job.logs = [*(job.logs or []), log_entry]

        return True

    async def _load(self, session: AsyncSession, job_uuid: uuid.UUID) -> Job:
        result = await session.execute(
            select(Job).where(Job.id == job_uuid).execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _raise_for_missed_transition(
        self, session: AsyncSession, job_uuid: uuid.UUID, attempted: JobStatus
    ) -> None:
        result = await session.execute(select(Job.status).where(Job.id == job_uuid))
        current = result.scalar_one_or_none()
        if current is None:
            raise NotFoundError(f"Job not found: {job_uuid}")
        raise InvalidTransitionError(job_uuid, current, attempted.value)


# Singleton instance for convenience
_job_store: JobStore | None = None


def get_job_store() -> JobStore:
    """Get the global job store instance."""
    global _job_store
    if _job_store is None:
        _job_store = JobStore()
    return _job_store
