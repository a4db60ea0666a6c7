"""
Job handlers, one per job type.

build_default_registry() wires every built-in handler; the dispatcher
routes through it.
"""

from evidence_engine.core.storage.postgres import Database
from evidence_engine.workers.handlers.evidence_analysis import EvidenceAnalysisHandler
from evidence_engine.workers.handlers.goal_progress import GoalProgressHandler
from evidence_engine.workers.handlers.monthly_insight import MonthlyInsightHandler
from evidence_engine.workers.handlers.report_generation import ReportGenerationHandler
from evidence_engine.workers.handlers.review_analysis import ReviewAnalysisHandler
from evidence_engine.workers.handlers.sync import AgentSyncHandler, RemoteSyncHandler
from evidence_engine.workers.registry import HandlerRegistry


def build_default_registry(db: Database | None = None) -> HandlerRegistry:
    """Registry with every built-in handler."""
    registry = HandlerRegistry()
    for handler in (
        RemoteSyncHandler(db),
        AgentSyncHandler(db),
        ReportGenerationHandler(db),
        ReviewAnalysisHandler(db),
        GoalProgressHandler(db),
        MonthlyInsightHandler(db),
        EvidenceAnalysisHandler(db),
    ):
        registry.register(handler)
    return registry


__all__ = [
    "build_default_registry",
    "RemoteSyncHandler",
    "AgentSyncHandler",
    "ReportGenerationHandler",
    "ReviewAnalysisHandler",
    "GoalProgressHandler",
    "MonthlyInsightHandler",
    "EvidenceAnalysisHandler",
]
