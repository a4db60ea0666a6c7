"""
Persistence for synced items.

Every write is an INSERT ... ON CONFLICT DO UPDATE on the item's natural
key, followed by a select on that key to learn the row id. Running the
same sync twice therefore updates rows in place and never duplicates them.
"""

import uuid
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from evidence_engine.core.models.sync import (
    Criterion,
    Evidence,
    EvidenceCriterion,
    GitHubPullRequest,
    JiraTicket,
    PullRequestTicketLink,
)
from evidence_engine.core.storage.postgres import upsert_insert
from evidence_engine.core.sync.types import (
    CriterionScore,
    ExtractedRefs,
    ItemAnalysis,
    RemoteItem,
)
from evidence_engine.core.utils.time import utcnow_naive


async def find_pull_request_id(session: AsyncSession, repo: str, number: int) -> uuid.UUID | None:
    result = await session.execute(
        select(GitHubPullRequest.id).where(
            GitHubPullRequest.repo == repo, GitHubPullRequest.number == number
        )
    )
    return result.scalar_one_or_none()


async def find_jira_ticket_id(session: AsyncSession, key: str) -> uuid.UUID | None:
    result = await session.execute(select(JiraTicket.id).where(JiraTicket.key == key))
    return result.scalar_one_or_none()


async def load_criteria(session: AsyncSession, pr_detectable_only: bool = False) -> list[Criterion]:
    stmt = select(Criterion).order_by(Criterion.id)
    if pr_detectable_only:
        stmt = stmt.where(Criterion.pr_detectable.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def upsert_pull_request(
    session: AsyncSession, item: RemoteItem, components: list[str]
) -> tuple[uuid.UUID, bool]:
    """Upsert a pull request row. Returns (id, created)."""
    existing = await find_pull_request_id(session, item.key.repo, item.key.number)
    values: dict[str, Any] = {
        "title": item.title,
        "body": item.body,
        "url": item.url,
        "state": item.state or "open",
        "author": item.author,
        "additions": item.additions,
        "deletions": item.deletions,
        "changed_files": item.changed_files,
        "components": components,
        "created_at": item.created_at,
        "merged_at": item.completed_at,
        "synced_at": utcnow_naive(),
    }
    stmt = (
        upsert_insert(session, GitHubPullRequest)
        .values(id=existing or uuid.uuid4(), repo=item.key.repo, number=item.key.number, **values)
        .on_conflict_do_update(index_elements=["repo", "number"], set_=values)
    )
    await session.execute(stmt)

    record_id = await find_pull_request_id(session, item.key.repo, item.key.number)
    return record_id, existing is None


async def upsert_jira_ticket(
    session: AsyncSession, item: RemoteItem, components: list[str]
) -> tuple[uuid.UUID, bool]:
    """Upsert a ticket row. Returns (id, created)."""
    key = item.key.ticket_key
    existing = await find_jira_ticket_id(session, key)
    values: dict[str, Any] = {
        "project_key": item.key.project_key,
        "summary": item.title,
        "description": item.body,
        "issue_type": item.issue_type,
        "status": item.state,
        "priority": item.priority,
        "story_points": item.story_points,
        "url": item.url,
        "components": components,
        "created_at": item.created_at,
        "resolved_at": item.completed_at,
        "synced_at": utcnow_naive(),
    }
    stmt = (
        upsert_insert(session, JiraTicket)
        .values(id=existing or uuid.uuid4(), key=key, **values)
        .on_conflict_do_update(index_elements=["key"], set_=values)
    )
    await session.execute(stmt)

    record_id = await find_jira_ticket_id(session, key)
    return record_id, existing is None


async def upsert_evidence(
    session: AsyncSession,
    item: RemoteItem,
    refs: ExtractedRefs,
    analysis: ItemAnalysis,
    *,
    pull_request_id: uuid.UUID | None = None,
    jira_ticket_id: uuid.UUID | None = None,
) -> uuid.UUID:
    """Upsert the Evidence row backed by one remote item."""
    if (pull_request_id is None) == (jira_ticket_id is None):
        raise ValueError("Evidence must reference exactly one pull request or ticket")

    if pull_request_id is not None:
        kind, column, remote_id = "github_pr", "pull_request_id", pull_request_id
    else:
        kind, column, remote_id = "jira", "jira_ticket_id", jira_ticket_id

    occurred_at = item.completed_at or item.updated_at or item.created_at or utcnow_naive()
    values: dict[str, Any] = {
        "title": item.title,
        "summary": analysis.summary,
        "category": analysis.category,
        "scope": analysis.scope,
        "occurred_at": occurred_at,
        "links": refs.to_dict(),
        "updated_at": utcnow_naive(),
    }
    stmt = (
        upsert_insert(session, Evidence)
        .values(id=uuid.uuid4(), kind=kind, **{column: remote_id}, **values)
        .on_conflict_do_update(index_elements=[column], set_=values)
    )
    await session.execute(stmt)

    result = await session.execute(
        select(Evidence.id).where(getattr(Evidence, column) == remote_id)
    )
    return result.scalar_one()


async def upsert_criterion_matches(
    session: AsyncSession, evidence_id: uuid.UUID, matches: list[CriterionScore]
) -> int:
    """
    Make the evidence's criterion matches exactly `matches`.

    Rows for criteria no longer matched are deleted; the rest are upserted
    on (evidence, criterion).
    """
    keep = [match.criterion_id for match in matches]
    stale = delete(EvidenceCriterion).where(EvidenceCriterion.evidence_id == evidence_id)
    if keep:
        stale = stale.where(EvidenceCriterion.criterion_id.not_in(keep))
    await session.execute(stale)

    for match in matches:
        stmt = (
            upsert_insert(session, EvidenceCriterion)
            .values(
                evidence_id=evidence_id,
                criterion_id=match.criterion_id,
                confidence=match.confidence,
                rationale=match.rationale,
            )
            .on_conflict_do_update(
                index_elements=["evidence_id", "criterion_id"],
                set_={"confidence": match.confidence, "rationale": match.rationale},
            )
        )
        await session.execute(stmt)
    return len(matches)


async def upsert_pr_ticket_link(
    session: AsyncSession, repo: str, number: int, ticket_key: str, source: str
) -> None:
    """Record that a pull request and a ticket reference each other."""
    stmt = (
        upsert_insert(session, PullRequestTicketLink)
        .values(repo=repo, number=number, ticket_key=ticket_key, source=source)
        .on_conflict_do_nothing(index_elements=["repo", "number", "ticket_key"])
    )
    await session.execute(stmt)
