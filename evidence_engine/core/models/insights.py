"""
SQLAlchemy models for records produced by the analysis job handlers.

Goals, generated reports, review-text analyses and monthly insights.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.core.storage.postgres import Base, JSONType
from evidence_engine.core.utils.time import utcnow_naive


class Goal(Base):
    """A performance goal whose progress is estimated from evidence."""

    __tablename__ = "goals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    progress_evidence_ids: Mapped[list[str]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    progress_updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive
    )

    def __repr__(self) -> str:
        return f"<Goal(title='{self.title}', progress={self.progress_percent})>"


class Report(Base):
    """A generated performance report over a date window."""

    __tablename__ = "reports"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    report_type: Mapped[str] = mapped_column(String(50), nullable=False, default="summary")
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive
    )


class ReviewAnalysis(Base):
    """Structured analysis of pasted review text."""

    __tablename__ = "review_analyses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    review_type: Mapped[str] = mapped_column(String(50), nullable=False, default="peer")
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    analysis: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive
    )


class MonthlyInsight(Base):
    """Aggregated metrics plus a narrative for one calendar month (YYYY-MM)."""

    __tablename__ = "monthly_insights"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    month: Mapped[str] = mapped_column(String(7), unique=True, nullable=False)
    metrics: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    narrative: Mapped[str | None] = mapped_column(Text, nullable=True)
    highlights: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive
    )

    def __repr__(self) -> str:
        return f"<MonthlyInsight(month='{self.month}')>"
