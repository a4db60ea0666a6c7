"""
Tests for JobRecorder.

Recording is best-effort: store failures are logged, never raised.
"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.services.job_recorder import JobRecorder


class TestJobRecorderWithStore:
    """Recorder writes land on a running job."""

    @pytest.mark.asyncio
    async def test_levels_are_recorded(self, store) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)
        recorder = JobRecorder(job.id, store)

        await recorder.debug("Query built")
        await recorder.info("Fetched 3 items")
        await recorder.warn("Rate limited")
        await recorder.error("Item 2 failed")

        levels = [entry["level"] for entry in (await store.get(job.id)).logs]
        assert levels[-4:] == ["debug", "info", "warn", "error"]

    @pytest.mark.asyncio
    async def test_progress_and_status(self, store) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)
        recorder = JobRecorder(job.id, store)

        await recorder.progress(30, "Processing 1/3")
        await recorder.status("Analyzing")

        updated = await store.get(job.id)
        assert updated.progress == 30
        assert updated.status_message == "Analyzing"

    @pytest.mark.asyncio
    async def test_is_cancelled(self, store) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)
        recorder = JobRecorder(job.id, store)

        assert await recorder.is_cancelled() is False
        await store.cancel(job.id)
        assert await recorder.is_cancelled() is True

    @pytest.mark.asyncio
    async def test_entries_mirror_to_logger(self, store, caplog) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)

        with caplog.at_level(logging.WARNING, logger="evidence_engine.core.services.job_recorder"):
            await JobRecorder(job.id, store).warn("Rate limited")

        assert "Rate limited" in caplog.text


class TestJobRecorderStoreFailures:
    """A broken store never breaks the handler."""

    def _broken_store(self) -> MagicMock:
        store = MagicMock()
        store.append_log = AsyncMock(side_effect=RuntimeError("db down"))
        store.set_progress = AsyncMock(side_effect=RuntimeError("db down"))
        store.set_status_message = AsyncMock(side_effect=RuntimeError("db down"))
        store.is_cancelled = AsyncMock(side_effect=RuntimeError("db down"))
        return store

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self) -> None:
        recorder = JobRecorder("job-1", self._broken_store())

        await recorder.info("still fine")
        await recorder.progress(50)
        await recorder.status("still fine")

    @pytest.mark.asyncio
    async def test_failed_cancel_check_reads_as_not_cancelled(self) -> None:
        recorder = JobRecorder("job-1", self._broken_store())
        assert await recorder.is_cancelled() is False
