"""
Tests for the job dispatcher and handler registry.

Handlers are small in-test JobHandler subclasses; the store is real.
"""

from unittest.mock import AsyncMock

import pytest

from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.services.exceptions import HandlerFailure
from evidence_engine.workers.dispatcher import DispatchOutcome, Dispatcher
from evidence_engine.workers.registry import HandlerRegistry, JobHandler


class EchoHandler(JobHandler):
    """Returns its config as the result, reporting progress on the way."""

    job_type = JobType.REPORT_GENERATION

    def __init__(self) -> None:
        self.calls = []

    async def run(self, job_id, config, recorder):
        self.calls.append((job_id, config))
        await recorder.progress(50, "Halfway")
        await recorder.info("Echoing config")
        return {"echo": config}


class FailingHandler(JobHandler):
    job_type = JobType.GOAL_PROGRESS

    async def run(self, job_id, config, recorder):
        raise HandlerFailure("Goal not found")


class CancellingHandler(JobHandler):
    """Simulates an operator cancelling the job while the handler runs."""

    job_type = JobType.AGENT_SYNC

    def __init__(self, store) -> None:
        self.store = store

    async def run(self, job_id, config, recorder):
        await self.store.cancel(job_id)
        return {"processed": 1}


class TestHandlerRegistry:
    """Tests for HandlerRegistry."""

    def test_register_and_get(self) -> None:
        registry = HandlerRegistry()
        handler = EchoHandler()
        registry.register(handler)

        assert registry.get("report-generation") is handler
        assert "report-generation" in registry
        assert registry.get("goal-progress") is None
        assert len(registry) == 1

    def test_register_explicit_type(self) -> None:
        registry = HandlerRegistry()
        registry.register(EchoHandler(), JobType.REVIEW_ANALYSIS)
        assert registry.types() == ["review-analysis"]

    def test_register_unknown_type(self) -> None:
        with pytest.raises(ValueError):
            HandlerRegistry().register(EchoHandler(), "nightly-build")


class TestDispatcher:
    """Tests for Dispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_completes_job_with_handler_result(self, store, registry) -> None:
        handler = EchoHandler()
        registry.register(handler)
        job = await store.create(JobType.REPORT_GENERATION, {"reportType": "quarterly"})

        outcome = await Dispatcher(store, registry).dispatch(job)

        assert outcome == DispatchOutcome.COMPLETED
        done = await store.get(job.id)
        assert done.status == "completed"
        assert done.result == {"echo": {"reportType": "quarterly"}}
        assert done.progress == 100
        assert [m["message"] for m in done.logs][-2:] == [
            "Started report-generation job",
            "Echoing config",
        ]
        assert handler.calls == [(job.id, {"reportType": "quarterly"})]

    @pytest.mark.asyncio
    async def test_handler_exception_fails_job(self, store, registry) -> None:
        registry.register(FailingHandler())
        job = await store.create(JobType.GOAL_PROGRESS, {"goalId": "x"})

        outcome = await Dispatcher(store, registry).dispatch(job)

        assert outcome == DispatchOutcome.FAILED
        failed = await store.get(job.id)
        assert failed.status == "failed"
        assert failed.error == "Goal not found"
        assert failed.logs[-1]["level"] == "error"

    @pytest.mark.asyncio
    async def test_unknown_type_fails_job(self, store, registry) -> None:
        job = await store.create(JobType.PERIODIC_INSIGHT, {"month": "2024-05"})

        outcome = await Dispatcher(store, registry).dispatch(job)

        assert outcome == DispatchOutcome.FAILED
        failed = await store.get(job.id)
        assert failed.status == "failed"
        assert "Unknown job type" in failed.error

    @pytest.mark.asyncio
    async def test_already_claimed_job_is_skipped(self, store, registry) -> None:
        handler = EchoHandler()
        registry.register(handler)
        job = await store.create(JobType.REPORT_GENERATION)
        await store.transition_to_running(job.id)

        outcome = await Dispatcher(store, registry).dispatch(job)

        assert outcome == DispatchOutcome.SKIPPED
        assert handler.calls == []
        assert (await store.get(job.id)).status == "running"

    @pytest.mark.asyncio
    async def test_cancelled_pending_job_is_skipped(self, store, registry) -> None:
        handler = EchoHandler()
        registry.register(handler)
        job = await store.create(JobType.REPORT_GENERATION)
        await store.cancel(job.id)

        assert await Dispatcher(store, registry).dispatch(job) == DispatchOutcome.SKIPPED
        assert handler.calls == []

    @pytest.mark.asyncio
    async def test_result_after_cancel_is_discarded(self, store, registry) -> None:
        registry.register(CancellingHandler(store))
        job = await store.create(JobType.AGENT_SYNC, {"agentType": "github"})

        outcome = await Dispatcher(store, registry).dispatch(job)

        assert outcome == DispatchOutcome.SKIPPED
        cancelled = await store.get(job.id)
        assert cancelled.status == "cancelled"
        assert cancelled.result is None

    @pytest.mark.asyncio
    async def test_store_failure_never_raises(self, store, registry) -> None:
        registry.register(EchoHandler())
        job = await store.create(JobType.REPORT_GENERATION)
        store.transition_to_running = AsyncMock(side_effect=RuntimeError("db down"))

        assert await Dispatcher(store, registry).dispatch(job) == DispatchOutcome.FAILED

    @pytest.mark.asyncio
    async def test_store_failure_after_claim_leaves_job_running(self, store, registry, caplog) -> None:
        registry.register(EchoHandler())
        job = await store.create(JobType.REPORT_GENERATION)
        store.complete = AsyncMock(side_effect=RuntimeError("db down"))

        with caplog.at_level("ERROR", logger="evidence_engine.workers.dispatcher"):
            outcome = await Dispatcher(store, registry).dispatch(job)

        assert outcome == DispatchOutcome.FAILED
        assert (await store.get(job.id)).status == "running"
        assert "stuck in running" in caplog.text
