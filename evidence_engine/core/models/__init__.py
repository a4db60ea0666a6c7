"""
SQLAlchemy models for the evidence engine.

This module exports all database models used by the application.
"""

from evidence_engine.core.models.insights import Goal, MonthlyInsight, Report, ReviewAnalysis
from evidence_engine.core.models.jobs import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Job,
    JobStatus,
    JobType,
)
from evidence_engine.core.models.settings import Setting
from evidence_engine.core.models.sync import (
    Criterion,
    Evidence,
    EvidenceCriterion,
    GitHubPullRequest,
    JiraTicket,
    PullRequestTicketLink,
)

__all__ = [
    "Job",
    "JobStatus",
    "JobType",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Setting",
    "GitHubPullRequest",
    "JiraTicket",
    "Criterion",
    "Evidence",
    "EvidenceCriterion",
    "PullRequestTicketLink",
    "Goal",
    "Report",
    "ReviewAnalysis",
    "MonthlyInsight",
]
