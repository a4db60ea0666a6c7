"""
Per-job log and progress recorder handed to job handlers.

Handlers report through the recorder instead of the store so that a
failed log write can never take the handler down with it.
"""

import logging
import uuid

from evidence_engine.core.services.jobs import JobStore

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class JobRecorder:
    """
    Structured log, progress gauge and status message for one job.

    Every entry is also mirrored to the process logger. Store errors are
    logged and swallowed: recording is best-effort, the handler's work is not.
    """

    def __init__(self, job_id: uuid.UUID | str, store: JobStore) -> None:
        self.job_id = job_id
        self._store = store

    async def log(self, level: str, message: str) -> None:
        """Append a log entry at the given level (debug, info, warn, error)."""
        logger.log(_LOG_LEVELS.get(level, logging.INFO), f"[job {self.job_id}] {message}")
        try:
            await self._store.append_log(self.job_id, level, message)
        except Exception as e:
            logger.warning(f"Failed to record log for job {self.job_id}: {e}")

    async def debug(self, message: str) -> None:
        await self.log("debug", message)

    async def info(self, message: str) -> None:
        await self.log("info", message)

    async def warn(self, message: str) -> None:
        await self.log("warn", message)

    async def error(self, message: str) -> None:
        await self.log("error", message)

    async def progress(self, percent: int | float, message: str | None = None) -> None:
        """Raise the progress gauge (clamped to 0..100, never lowered)."""
        try:
            await self._store.set_progress(self.job_id, percent, message)
        except Exception as e:
            logger.warning(f"Failed to record progress for job {self.job_id}: {e}")

    async def status(self, message: str) -> None:
        """Replace the short status message."""
        try:
            await self._store.set_status_message(self.job_id, message)
        except Exception as e:
            logger.warning(f"Failed to record status for job {self.job_id}: {e}")

    async def is_cancelled(self) -> bool:
        """
        Cooperative cancellation check for long handlers.

        A store error reads as "not cancelled" so a flaky read never aborts work.
        """
        try:
            return await self._store.is_cancelled(self.job_id)
        except Exception as e:
            logger.warning(f"Failed to check cancellation for job {self.job_id}: {e}")
            return False
