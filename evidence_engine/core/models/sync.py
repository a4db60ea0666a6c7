"""
SQLAlchemy models for records written by the sync pipeline.

Every table here is keyed by the external natural key of the item it
mirrors, so re-syncing the same pull request or ticket updates one row
in place instead of adding another.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from evidence_engine.core.storage.postgres import Base, JSONType
from evidence_engine.core.utils.time import utcnow_naive


class GitHubPullRequest(Base):
    """A pull request authored by the tracked account, keyed by (repo, number)."""

    __tablename__ = "github_pull_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    repo: Mapped[str] = mapped_column(String(200), nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    author: Mapped[str | None] = mapped_column(String(100), nullable=True)
    additions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deletions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    changed_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    components: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    merged_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive
    )

    __table_args__ = (
        UniqueConstraint("repo", "number", name="uq_github_pull_requests_repo_number"),
    )

    def __repr__(self) -> str:
        return f"<GitHubPullRequest(repo='{self.repo}', number={self.number})>"


class JiraTicket(Base):
    """A Jira issue keyed by its ticket key (PROJ-123)."""

    __tablename__ = "jira_tickets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    key: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    project_key: Mapped[str] = mapped_column(String(50), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    issue_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(50), nullable=True)
    story_points: Mapped[float | None] = mapped_column(Float, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    components: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive
    )

    __table_args__ = (Index("ix_jira_tickets_project_key", "project_key"),)

    def __repr__(self) -> str:
        return f"<JiraTicket(key='{self.key}')>"


class Criterion(Base):
    """A performance criterion that evidence can be matched against."""

    __tablename__ = "criteria"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    area: Mapped[str] = mapped_column(String(100), nullable=False)
    subarea: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    pr_detectable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Criterion(id={self.id}, area='{self.area}', subarea='{self.subarea}')>"


class Evidence(Base):
    """
    One piece of performance evidence.

    References at most one pull request and at most one ticket; each remote
    item backs at most one Evidence row.
    """

    __tablename__ = "evidence"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")
    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    scope: Mapped[str | None] = mapped_column(String(20), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive
    )
    links: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    pull_request_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("github_pull_requests.id", ondelete="CASCADE"),
        unique=True, nullable=True,
    )
    jira_ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("jira_tickets.id", ondelete="CASCADE"),
        unique=True, nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive
    )

    criteria: Mapped[list["EvidenceCriterion"]] = relationship(
        "EvidenceCriterion", back_populates="evidence", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_evidence_occurred_at", "occurred_at"),)

    def __repr__(self) -> str:
        return f"<Evidence(id='{self.id}', kind='{self.kind}')>"


class EvidenceCriterion(Base):
    """A scored match between an Evidence row and a Criterion."""

    __tablename__ = "evidence_criteria"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    evidence_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
    )
    criterion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("criteria.id", ondelete="CASCADE"), nullable=False
    )
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)

    evidence: Mapped["Evidence"] = relationship("Evidence", back_populates="criteria")

    __table_args__ = (
        UniqueConstraint(
            "evidence_id", "criterion_id", name="uq_evidence_criteria_evidence_criterion"
        ),
    )


class PullRequestTicketLink(Base):
    """Cross-reference between a pull request and a ticket key it mentions."""

    __tablename__ = "pull_request_ticket_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    repo: Mapped[str] = mapped_column(String(200), nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    ticket_key: Mapped[str] = mapped_column(String(50), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="github")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive
    )

    __table_args__ = (
        UniqueConstraint(
            "repo", "number", "ticket_key", name="uq_pull_request_ticket_links_pair"
        ),
        Index("ix_pull_request_ticket_links_ticket_key", "ticket_key"),
    )

    def __repr__(self) -> str:
        return f"<PullRequestTicketLink({self.repo}#{self.number} <-> {self.ticket_key})>"
