"""
SQLAlchemy model for durable background jobs.

A Job row is the single source of truth for a unit of deferred work:
its lifecycle status, progress gauge, append-only log and the opaque
config/result payloads exchanged with its handler.
"""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.core.storage.postgres import Base, JSONType
from evidence_engine.core.utils.time import utcnow_naive


class JobType(str, enum.Enum):
    """Closed set of job types the dispatcher knows how to route."""

    REMOTE_SYNC = "remote-sync"
    AGENT_SYNC = "agent-sync"
    REPORT_GENERATION = "report-generation"
    REVIEW_ANALYSIS = "review-analysis"
    GOAL_PROGRESS = "goal-progress"
    PERIODIC_INSIGHT = "periodic-insight"
    EVIDENCE_ANALYSIS = "evidence-analysis"


class JobStatus(str, enum.Enum):
    """
    Job lifecycle status.

    pending -> running -> {completed | failed | cancelled}; a pending job
    may also go straight to a terminal state.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.RUNNING})


class Job(Base):
    """
    A persisted unit of asynchronous work.

    status and type are stored as plain strings so that rows written by a
    newer deployment (with a type this process does not know) still load;
    the dispatcher fails those jobs instead of crashing on them.
    """

    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status_message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    logs: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive
    )

    __table_args__ = (
        Index("ix_jobs_status_created_at", "status", "created_at"),
        Index("ix_jobs_type", "type"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the full record for API responses."""
        return {
            "id": str(self.id),
            "type": self.type,
            "status": self.status,
            "progress": self.progress,
            "statusMessage": self.status_message,
            "error": self.error,
            "logs": list(self.logs or []),
            "config": self.config,
            "result": self.result,
            "createdAt": _isoformat(self.created_at),
            "startedAt": _isoformat(self.started_at),
            "completedAt": _isoformat(self.completed_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Job(id='{self.id}', type='{self.type}', status='{self.status}')>"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
