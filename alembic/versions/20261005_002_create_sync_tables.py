"""Create tables written by the GitHub/Jira sync.

Revision ID: 002
Revises: 001
Create Date: 2026-10-05
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create remote item, criteria, evidence and link tables."""
    op.create_table(
        "github_pull_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("repo", sa.String(200), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("state", sa.String(20), nullable=False, server_default="open"),
        sa.Column("author", sa.String(100), nullable=True),
        sa.Column("additions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deletions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("changed_files", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("components", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("merged_at", sa.DateTime(), nullable=True),
        sa.Column("synced_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("repo", "number", name="uq_github_pull_requests_repo_number"),
    )

    op.create_table(
        "jira_tickets",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("key", sa.String(50), nullable=False, unique=True),
        sa.Column("project_key", sa.String(50), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("issue_type", sa.String(50), nullable=True),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("priority", sa.String(50), nullable=True),
        sa.Column("story_points", sa.Float(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("components", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("synced_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_jira_tickets_project_key", "jira_tickets", ["project_key"])

    op.create_table(
        "criteria",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("area", sa.String(100), nullable=False),
        sa.Column("subarea", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("pr_detectable", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "evidence",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("category", sa.String(20), nullable=True),
        sa.Column("scope", sa.String(20), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("links", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column(
            "pull_request_id",
            UUID(as_uuid=True),
            sa.ForeignKey("github_pull_requests.id", ondelete="CASCADE"),
            nullable=True,
            unique=True,
        ),
        sa.Column(
            "jira_ticket_id",
            UUID(as_uuid=True),
            sa.ForeignKey("jira_tickets.id", ondelete="CASCADE"),
            nullable=True,
            unique=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_evidence_occurred_at", "evidence", ["occurred_at"])

    op.create_table(
        "evidence_criteria",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "evidence_id",
            UUID(as_uuid=True),
            sa.ForeignKey("evidence.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "criterion_id",
            sa.Integer(),
            sa.ForeignKey("criteria.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("rationale", sa.Text(), nullable=True),
        sa.UniqueConstraint(
            "evidence_id", "criterion_id", name="uq_evidence_criteria_evidence_criterion"
        ),
    )

    op.create_table(
        "pull_request_ticket_links",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("repo", sa.String(200), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("ticket_key", sa.String(50), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="github"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "repo", "number", "ticket_key", name="uq_pull_request_ticket_links_pair"
        ),
    )
    op.create_index(
        "ix_pull_request_ticket_links_ticket_key",
        "pull_request_ticket_links",
        ["ticket_key"],
    )


def downgrade() -> None:
    """Drop sync tables."""
    op.drop_index(
        "ix_pull_request_ticket_links_ticket_key", table_name="pull_request_ticket_links"
    )
    op.drop_table("pull_request_ticket_links")
    op.drop_table("evidence_criteria")
    op.drop_index("ix_evidence_occurred_at", table_name="evidence")
    op.drop_table("evidence")
    op.drop_table("criteria")
    op.drop_index("ix_jira_tickets_project_key", table_name="jira_tickets")
    op.drop_table("jira_tickets")
    op.drop_table("github_pull_requests")
