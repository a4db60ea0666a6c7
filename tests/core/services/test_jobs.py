"""
Tests for JobStore.

Run against SQLite so every conditional UPDATE goes through a real database.
"""

import asyncio
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import update

from evidence_engine.core.models.jobs import Job, JobStatus, JobType
from evidence_engine.core.services.exceptions import InvalidTransitionError
from evidence_engine.core.services.jobs import CANCELLED_MESSAGE, JobStore, make_log_entry
from evidence_engine.core.storage.exceptions import NotFoundError
from evidence_engine.core.utils.time import utcnow_naive


class TestMakeLogEntry:
    """Tests for log entry construction."""

    def test_entry_fields(self) -> None:
        entry = make_log_entry("warn", "Rate limited")

        assert entry["level"] == "warn"
        assert entry["message"] == "Rate limited"
        assert entry["timestamp"].endswith("Z")

    def test_unknown_level_falls_back_to_info(self) -> None:
        assert make_log_entry("verbose", "x")["level"] == "info"


class TestJobCreation:
    """Tests for creating and reading jobs."""

    @pytest.mark.asyncio
    async def test_create_pending_job(self, store: JobStore) -> None:
        job = await store.create(JobType.PERIODIC_INSIGHT, {"month": "2024-05"})

        assert job.status == JobStatus.PENDING.value
        assert job.progress == 0
        assert job.config == {"month": "2024-05"}
        assert job.started_at is None
        assert len(job.logs) == 1

    @pytest.mark.asyncio
    async def test_create_accepts_string_type(self, store: JobStore) -> None:
        job = await store.create("agent-sync")
        assert job.type == "agent-sync"
        assert job.config == {}

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_type(self, store: JobStore) -> None:
        with pytest.raises(ValueError):
            await store.create("bogus-type")

    @pytest.mark.asyncio
    async def test_get_roundtrip(self, store: JobStore) -> None:
        created = await store.create(JobType.REPORT_GENERATION, {"reportType": "quarterly"})
        fetched = await store.get(str(created.id))

        assert fetched.id == created.id
        assert fetched.config == {"reportType": "quarterly"}

    @pytest.mark.asyncio
    async def test_get_missing_job(self, store: JobStore) -> None:
        with pytest.raises(NotFoundError):
            await store.get(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_get_malformed_id(self, store: JobStore) -> None:
        with pytest.raises(NotFoundError):
            await store.get("not-a-uuid")


class TestJobListing:
    """Tests for list_jobs, list_pending, find_active and stats."""

    @pytest.mark.asyncio
    async def test_list_filters(self, store: JobStore) -> None:
        await store.create(JobType.AGENT_SYNC, {"agentType": "github"})
        insight = await store.create(JobType.PERIODIC_INSIGHT, {"month": "2024-05"})
        await store.cancel(insight.id)

        syncs = await store.list_jobs(job_type=JobType.AGENT_SYNC)
        cancelled = await store.list_jobs(status="cancelled")

        assert [j.type for j in syncs] == ["agent-sync"]
        assert [j.id for j in cancelled] == [insight.id]

    @pytest.mark.asyncio
    async def test_list_invalid_status(self, store: JobStore) -> None:
        with pytest.raises(ValueError):
            await store.list_jobs(status="exploded")

    @pytest.mark.asyncio
    async def test_list_pending_oldest_first(self, store: JobStore) -> None:
        first = await store.create(JobType.AGENT_SYNC)
        second = await store.create(JobType.REPORT_GENERATION)
        third = await store.create(JobType.GOAL_PROGRESS)
        await store.transition_to_running(second.id)

        pending = await store.list_pending()

        assert [j.id for j in pending] == [first.id, third.id]

    @pytest.mark.asyncio
    async def test_find_active_matches_config(self, store: JobStore) -> None:
        may = await store.create(JobType.PERIODIC_INSIGHT, {"month": "2024-05"})
        await store.create(JobType.PERIODIC_INSIGHT, {"month": "2024-06"})

        found = await store.find_active(JobType.PERIODIC_INSIGHT, {"month": "2024-05"})
        missing = await store.find_active(JobType.PERIODIC_INSIGHT, {"month": "2024-07"})

        assert found is not None and found.id == may.id
        assert missing is None

    @pytest.mark.asyncio
    async def test_find_active_ignores_terminal_jobs(self, store: JobStore) -> None:
        job = await store.create(JobType.PERIODIC_INSIGHT, {"month": "2024-05"})
        await store.fail(job.id, "boom")

        assert await store.find_active(JobType.PERIODIC_INSIGHT, {"month": "2024-05"}) is None

    @pytest.mark.asyncio
    async def test_stats(self, store: JobStore) -> None:
        a = await store.create(JobType.AGENT_SYNC)
        await store.create(JobType.AGENT_SYNC)
        await store.cancel(a.id)

        stats = await store.stats()

        assert stats["pending"] == 1
        assert stats["cancelled"] == 1
        assert stats["running"] == 0
        assert stats["total"] == 2


class TestStateMachine:
    """Tests for lifecycle transitions."""

    @pytest.mark.asyncio
    async def test_happy_path(self, store: JobStore) -> None:
        job = await store.create(JobType.REPORT_GENERATION)

        running = await store.transition_to_running(job.id)
        assert running.status == "running"
        assert running.started_at is not None

        assert await store.complete(job.id, {"reportId": "r1"}) is True
        done = await store.get(job.id)
        assert done.status == "completed"
        assert done.result == {"reportId": "r1"}
        assert done.progress == 100
        assert done.completed_at is not None

    @pytest.mark.asyncio
    async def test_claim_twice_is_rejected(self, store: JobStore) -> None:
        job = await store.create(JobType.REPORT_GENERATION)
        await store.transition_to_running(job.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await store.transition_to_running(job.id)
        assert exc_info.value.current_status == "running"

    @pytest.mark.asyncio
    async def test_concurrent_claims_have_one_winner(self, store: JobStore) -> None:
        job = await store.create(JobType.REPORT_GENERATION)

        results = await asyncio.gather(
            *(store.transition_to_running(job.id) for _ in range(5)),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, Job)]
        losers = [r for r in results if isinstance(r, InvalidTransitionError)]
        assert len(winners) == 1
        assert len(losers) == 4

    @pytest.mark.asyncio
    async def test_claim_missing_job(self, store: JobStore) -> None:
        with pytest.raises(NotFoundError):
            await store.transition_to_running(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_terminal_calls_are_idempotent(self, store: JobStore) -> None:
        job = await store.create(JobType.REPORT_GENERATION)
        await store.transition_to_running(job.id)
        await store.fail(job.id, "first error")

        assert await store.fail(job.id, "second error") is False
        assert await store.complete(job.id, {"late": True}) is False
        assert await store.cancel(job.id) is False

        final = await store.get(job.id)
        assert final.status == "failed"
        assert final.error == "first error"
        assert final.result is None

    @pytest.mark.asyncio
    async def test_pending_job_can_fail_directly(self, store: JobStore) -> None:
        job = await store.create(JobType.REPORT_GENERATION)
        assert await store.fail(job.id, "Unknown job type") is True
        assert (await store.get(job.id)).status == "failed"

    @pytest.mark.asyncio
    async def test_cancel_running_job(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)

        assert await store.cancel(job.id) is True

        cancelled = await store.get(job.id)
        assert cancelled.status == "cancelled"
        assert cancelled.status_message == CANCELLED_MESSAGE
        assert cancelled.logs[-1]["level"] == "warn"
        assert await store.is_cancelled(job.id) is True

    @pytest.mark.asyncio
    async def test_completion_after_cancel_is_discarded(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)
        await store.cancel(job.id)

        assert await store.complete(job.id, {"processed": 3}) is False
        assert (await store.get(job.id)).result is None

    @pytest.mark.asyncio
    async def test_cancelled_pending_job_is_never_claimed(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.cancel(job.id)

        with pytest.raises(InvalidTransitionError):
            await store.transition_to_running(job.id)

    @pytest.mark.asyncio
    async def test_terminal_call_on_missing_job(self, store: JobStore) -> None:
        with pytest.raises(NotFoundError):
            await store.complete(uuid.uuid4(), {})

    @pytest.mark.asyncio
    async def test_is_cancelled_for_missing_job(self, store: JobStore) -> None:
        assert await store.is_cancelled(uuid.uuid4()) is True


class TestRunningWrites:
    """Tests for logs, progress and status messages written by handlers."""

    @pytest.mark.asyncio
    async def test_append_log_only_while_running(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)

        assert await store.append_log(job.id, "info", "too early") is False

        await store.transition_to_running(job.id)
        assert await store.append_log(job.id, "info", "Fetched 3 items") is True

        await store.complete(job.id, {})
        assert await store.append_log(job.id, "info", "too late") is False

        messages = [entry["message"] for entry in (await store.get(job.id)).logs]
        assert "Fetched 3 items" in messages
        assert "too early" not in messages
        assert "too late" not in messages

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)

        await asyncio.gather(*(store.append_log(job.id, "info", f"line {i}") for i in range(10)))

        messages = {entry["message"] for entry in (await store.get(job.id)).logs}
        assert {f"line {i}" for i in range(10)} <= messages

    @pytest.mark.asyncio
    async def test_progress_is_clamped_and_monotonic(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)

        await store.set_progress(job.id, 40, "Processing 2/5")
        await store.set_progress(job.id, 20)
        assert (await store.get(job.id)).progress == 40

        await store.set_progress(job.id, 250)
        updated = await store.get(job.id)
        assert updated.progress == 100
        assert updated.status_message == "Processing 2/5"

    @pytest.mark.asyncio
    async def test_progress_ignored_when_not_running(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        assert await store.set_progress(job.id, 50) is False
        assert (await store.get(job.id)).progress == 0

    @pytest.mark.asyncio
    async def test_status_message(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)

        assert await store.set_status_message(job.id, "Analyzing") is True
        assert (await store.get(job.id)).status_message == "Analyzing"


class TestJobDeletion:
    """Tests for delete, clear_failed and cleanup_completed."""

    @pytest.mark.asyncio
    async def test_delete_pending_cancels_then_deletes(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.delete(job.id)

        with pytest.raises(NotFoundError):
            await store.get(job.id)

    @pytest.mark.asyncio
    async def test_delete_completed_is_refused(self, store: JobStore) -> None:
        job = await store.create(JobType.AGENT_SYNC)
        await store.transition_to_running(job.id)
        await store.complete(job.id, {})

        with pytest.raises(InvalidTransitionError):
            await store.delete(job.id)
        assert (await store.get(job.id)).status == "completed"

    @pytest.mark.asyncio
    async def test_clear_failed(self, store: JobStore) -> None:
        failed = await store.create(JobType.AGENT_SYNC)
        cancelled = await store.create(JobType.AGENT_SYNC)
        kept = await store.create(JobType.AGENT_SYNC)
        await store.fail(failed.id, "boom")
        await store.cancel(cancelled.id)

        assert await store.clear_failed() == 2
        assert [j.id for j in await store.list_jobs()] == [kept.id]

    @pytest.mark.asyncio
    async def test_cleanup_completed(self, store: JobStore, database) -> None:
        old = await store.create(JobType.AGENT_SYNC)
        recent = await store.create(JobType.AGENT_SYNC)
        for job in (old, recent):
            await store.transition_to_running(job.id)
            await store.complete(job.id, {})

        async with database.session() as session:
            await session.execute(
                update(Job)
                .where(Job.id == old.id)
                .values(completed_at=utcnow_naive() - timedelta(days=10))
            )

        assert await store.cleanup_completed(older_than_days=7) == 1
        assert [j.id for j in await store.list_jobs()] == [recent.id]
