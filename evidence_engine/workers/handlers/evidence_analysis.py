"""
Evidence analysis job: re-run analysis and criteria matching on stored evidence.

Items are rebuilt from the linked pull request or ticket rows, so no
remote API is called. Each evidence id succeeds or fails on its own.
"""

import logging
import uuid
from typing import Any

from sqlalchemy import func, select

from evidence_engine.core.llm.base import BaseLLM
from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.models.sync import (
    Criterion,
    Evidence,
    EvidenceCriterion,
    GitHubPullRequest,
    JiraTicket,
)
from evidence_engine.core.services.exceptions import HandlerFailure
from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.core.storage.exceptions import NotFoundError
from evidence_engine.core.sync.analysis import analyze_item, match_criteria
from evidence_engine.core.sync.records import load_criteria, upsert_criterion_matches
from evidence_engine.core.sync.types import NaturalKey, RemoteItem
from evidence_engine.workers.handlers.base import AnalysisJobHandler

logger = logging.getLogger(__name__)


def requested_ids(config: dict[str, Any]) -> list[str]:
    """evidenceId, or else evidenceIds, as a de-duplicated list."""
    if config.get("evidenceId"):
        raw = [config["evidenceId"]]
    else:
        raw = config.get("evidenceIds") or []
        if isinstance(raw, str):
            raw = [raw]
    ids = []
    for value in raw:
        value = str(value).strip()
        if value and value not in ids:
            ids.append(value)
    return ids


def item_from_pull_request(pr: GitHubPullRequest) -> RemoteItem:
    return RemoteItem(
        key=NaturalKey.pull_request(pr.repo, pr.number),
        title=pr.title,
        body=pr.body or "",
        url=pr.url,
        state=pr.state,
        author=pr.author,
        created_at=pr.created_at,
        completed_at=pr.merged_at,
        additions=pr.additions,
        deletions=pr.deletions,
        changed_files=pr.changed_files,
        components=list(pr.components or []),
    )


def item_from_ticket(ticket: JiraTicket) -> RemoteItem:
    return RemoteItem(
        key=NaturalKey.ticket(ticket.key),
        title=ticket.summary,
        body=ticket.description or "",
        url=ticket.url,
        state=ticket.status,
        created_at=ticket.created_at,
        completed_at=ticket.resolved_at,
        issue_type=ticket.issue_type,
        priority=ticket.priority,
        story_points=ticket.story_points,
        components=list(ticket.components or []),
    )


class EvidenceAnalysisHandler(AnalysisJobHandler):
    """
    Config: evidenceId or evidenceIds (one is required), forceReanalysis.

    Evidence that already has criterion matches is skipped unless
    forceReanalysis is set. Pull request evidence is only matched against
    PR-detectable criteria, as in sync.
    """

    job_type = JobType.EVIDENCE_ANALYSIS
    llm_task = "evidence_analysis"

    async def run(
        self,
        job_id: uuid.UUID,
        config: dict[str, Any],
        recorder: JobRecorder,
    ) -> dict[str, Any]:
        ids = requested_ids(config)
        if not ids:
            raise HandlerFailure("Either evidenceId or evidenceIds is required in job config")
        force = bool(config.get("forceReanalysis", False))

        await recorder.progress(10, "Loading performance criteria")
        db = await self._get_db()
        async with db.session() as session:
            criteria = await load_criteria(session)
        llm = self._get_llm()

        results: list[dict[str, Any]] = []
        total = len(ids)
        for index, evidence_id in enumerate(ids):
            if await recorder.is_cancelled():
                await recorder.warn(f"Cancelled after {index}/{total} evidence items")
                break

            await recorder.progress(
                15 + index / total * 70, f"Analyzing evidence {index + 1}/{total}"
            )
            try:
                results.append(await self._analyze(llm, evidence_id, criteria, force))
            except Exception as e:
                logger.debug(f"Evidence {evidence_id} failed", exc_info=True)
                await recorder.error(f"Failed to analyze evidence {evidence_id}: {e}")
                results.append({"evidenceId": evidence_id, "success": False, "error": str(e)})

        succeeded = [r for r in results if r["success"]]
        skipped = [r for r in succeeded if r.get("skipped")]
        failed = len(results) - len(succeeded)
        await recorder.info(
            f"Evidence analysis finished: {len(succeeded) - len(skipped)} analyzed, "
            f"{len(skipped)} skipped, {failed} failed"
        )
        return {
            "totalItems": total,
            "successCount": len(succeeded),
            "skippedCount": len(skipped),
            "failedCount": failed,
            "results": results,
        }

    async def _analyze(
        self,
        llm: BaseLLM,
        evidence_id: str,
        criteria: list[Criterion],
        force: bool,
    ) -> dict[str, Any]:
        try:
            key = uuid.UUID(evidence_id)
        except ValueError as e:
            raise HandlerFailure(f"Invalid evidence id: {evidence_id}") from e

        db = await self._get_db()
        async with db.session() as session:
            evidence = await session.get(Evidence, key)
            if evidence is None:
                raise NotFoundError(f"Evidence {evidence_id} not found")

            existing = (
                await session.execute(
                    select(func.count())
                    .select_from(EvidenceCriterion)
                    .where(EvidenceCriterion.evidence_id == key)
                )
            ).scalar_one()
            if existing and not force:
                return {
                    "evidenceId": evidence_id,
                    "success": True,
                    "skipped": True,
                    "summary": evidence.summary,
                }

            if evidence.pull_request_id is not None:
                pr = await session.get(GitHubPullRequest, evidence.pull_request_id)
                item = item_from_pull_request(pr)
                candidates = [c for c in criteria if c.pr_detectable]
            elif evidence.jira_ticket_id is not None:
                ticket = await session.get(JiraTicket, evidence.jira_ticket_id)
                item = item_from_ticket(ticket)
                candidates = criteria
            else:
                raise HandlerFailure(
                    f"Evidence {evidence_id} has no pull request or ticket to analyze"
                )
            current_summary = evidence.summary or ""

        analysis = await analyze_item(llm, item)
        matches = await match_criteria(llm, item, analysis, candidates)

        async with db.session() as session:
            evidence = await session.get(Evidence, key)
            if evidence is None:
                raise NotFoundError(f"Evidence {evidence_id} was deleted during analysis")
            # Keep the stored summary unless the new one says more
            if len(analysis.summary) > len(current_summary):
                evidence.summary = analysis.summary
            evidence.category = analysis.category
            evidence.scope = analysis.scope
            await upsert_criterion_matches(session, key, matches)

        logger.info(f"Evidence {evidence_id} analyzed: {len(matches)} criteria matched")
        return {
            "evidenceId": evidence_id,
            "success": True,
            "summary": evidence.summary,
            "category": analysis.category,
            "scope": analysis.scope,
            "matches": [
                {"criterionId": m.criterion_id, "confidence": m.confidence, "rationale": m.rationale}
                for m in matches
            ],
        }
