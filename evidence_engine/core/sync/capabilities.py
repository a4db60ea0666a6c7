"""
Sync capabilities: the discrete, independently retryable steps of a sync.

Each method is one capability with a fixed contract (CAPABILITY_CONTRACTS).
Only persist() and cross_link() write, and both upsert on natural keys,
so any driver may call any step again without double-applying it.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from evidence_engine.core.llm.base import BaseLLM
from evidence_engine.core.models.sync import Criterion
from evidence_engine.core.storage.postgres import Database, get_db
from evidence_engine.core.sync import analysis, records
from evidence_engine.core.sync.extraction import extract_refs
from evidence_engine.core.sync.github import GitHubClient, repo_from_repository_url
from evidence_engine.core.sync.jira import ISSUE_FIELDS, STORY_POINTS_FIELD, JiraClient, adf_to_text, build_jql
from evidence_engine.core.sync.types import (
    CriterionScore,
    ExtractedRefs,
    ItemAnalysis,
    NaturalKey,
    PersistResult,
    RemoteItem,
    SyncScope,
)
from evidence_engine.core.utils.time import parse_remote_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilityContract:
    """Description of one capability for drivers and operators."""

    name: str
    input: str
    output: str
    idempotency: str
    writes: bool = False


CAPABILITY_CONTRACTS: dict[str, CapabilityContract] = {
    contract.name: contract
    for contract in (
        CapabilityContract(
            "discover",
            "SyncScope (account, repos/projects, since/until, limit)",
            "list[NaturalKey]",
            "side-effect free",
        ),
        CapabilityContract(
            "dedup_check",
            "NaturalKey",
            "existing record id or None",
            "side-effect free; call before enrich",
        ),
        CapabilityContract(
            "enrich", "NaturalKey", "RemoteItem", "side-effect free; safe to re-run"
        ),
        CapabilityContract(
            "extract",
            "RemoteItem",
            "ExtractedRefs (ticket keys, PR refs, links, components, parsed title)",
            "pure",
        ),
        CapabilityContract(
            "analyze",
            "RemoteItem",
            "ItemAnalysis (summary, category, scope)",
            "side-effect free; calls the LLM",
        ),
        CapabilityContract(
            "match_criteria",
            "RemoteItem + ItemAnalysis",
            "list[CriterionScore] (at most 3, best first)",
            "side-effect free; calls the LLM",
        ),
        CapabilityContract(
            "persist",
            "RemoteItem + ExtractedRefs + ItemAnalysis + list[CriterionScore]",
            "PersistResult (remote record, Evidence, EvidenceCriterion rows)",
            "upsert keyed by natural key",
            writes=True,
        ),
        CapabilityContract(
            "cross_link",
            "RemoteItem + ExtractedRefs",
            "number of PR<->ticket links",
            "upsert keyed by (repo, number, ticket key)",
            writes=True,
        ),
    )
}


class SyncCapabilities(ABC):
    """
    Capability set for one remote source.

    Subclasses supply the source-specific steps (discover, dedup_check,
    enrich, persist, cross_link); extract, analyze and match_criteria are
    shared.
    """

    source: str = ""

    def __init__(self, llm: BaseLLM, db: Database | None = None) -> None:
        self.llm = llm
        self._db = db
        self._criteria: list[Criterion] | None = None

    async def _get_db(self) -> Database:
        if self._db is None:
            self._db = await get_db()
        return self._db

    @abstractmethod
    async def discover(self, scope: SyncScope) -> list[NaturalKey]:
        """Enumerate natural keys of items in scope."""

    @abstractmethod
    async def dedup_check(self, key: NaturalKey) -> uuid.UUID | None:
        """Return the stored record id for key, or None."""

    @abstractmethod
    async def enrich(self, key: NaturalKey) -> RemoteItem:
        """Fetch the full remote item."""

    @abstractmethod
    async def persist(
        self,
        item: RemoteItem,
        refs: ExtractedRefs,
        item_analysis: ItemAnalysis,
        matches: list[CriterionScore],
    ) -> PersistResult:
        """Upsert the remote record, its Evidence and criterion matches."""

    @abstractmethod
    async def cross_link(self, item: RemoteItem, refs: ExtractedRefs) -> int:
        """Upsert PR<->ticket links; returns how many pairs were linked."""

    def extract(self, item: RemoteItem) -> ExtractedRefs:
        return extract_refs(item)

    async def analyze(self, item: RemoteItem) -> ItemAnalysis:
        return await analysis.analyze_item(self.llm, item)

    async def match_criteria(
        self,
        item: RemoteItem,
        item_analysis: ItemAnalysis,
        criteria: list[Criterion] | None = None,
    ) -> list[CriterionScore]:
        if criteria is None:
            criteria = await self.load_criteria()
        return await analysis.match_criteria(self.llm, item, item_analysis, criteria)

    async def load_criteria(self) -> list[Criterion]:
        """Criteria are loaded once per capability set and reused for every item."""
        if self._criteria is None:
            db = await self._get_db()
            async with db.session() as session:
                self._criteria = await records.load_criteria(
                    session, pr_detectable_only=self.source == "github"
                )
        return self._criteria

    async def close(self) -> None:
        """Release remote client connections."""


class GitHubCapabilities(SyncCapabilities):
    """Capabilities over merged pull requests authored or reviewed by one account."""

    source = "github"

    def __init__(
        self,
        client: GitHubClient,
        llm: BaseLLM,
        db: Database | None = None,
        username: str | None = None,
    ) -> None:
        super().__init__(llm, db)
        self.client = client
        self.username = username

    async def _resolve_username(self, scope: SyncScope) -> str:
        if scope.account:
            return scope.account
        if self.username is None:
            self.username = await self.client.get_authenticated_user()
        return self.username

    @staticmethod
    def _date_filter(scope: SyncScope) -> str:
        if scope.since and scope.until:
            return f" merged:{scope.since.isoformat()}..{scope.until.isoformat()}"
        if scope.since:
            return f" merged:>={scope.since.isoformat()}"
        if scope.until:
            return f" merged:<={scope.until.isoformat()}"
        return ""

    async def discover(self, scope: SyncScope) -> list[NaturalKey]:
        username = await self._resolve_username(scope)
        date_filter = self._date_filter(scope)
        keys: dict[NaturalKey, NaturalKey] = {}

        # Authored first so a PR both authored and reviewed keeps the author role
        for role, qualifier in (("author", "author"), ("reviewer", "reviewed-by")):
            base_query = f"is:pr is:merged {qualifier}:{username}{date_filter}"
            queries = [f"{base_query} repo:{repo}" for repo in scope.repos] or [base_query]

            for query in queries:
                remaining = scope.limit - len(keys) if scope.limit else None
                if remaining is not None and remaining <= 0:
                    break
                for entry in await self.client.search_pull_requests(query, limit=remaining):
                    key = NaturalKey.pull_request(
                        repo_from_repository_url(entry["repository_url"]),
                        entry["number"],
                        role=role,
                    )
                    keys.setdefault(key, key)

        discovered = list(keys.values())
        if scope.limit:
            discovered = discovered[: scope.limit]
        logger.info(f"GitHub discovery for {username}: {len(discovered)} pull requests")
        return discovered

    async def dedup_check(self, key: NaturalKey) -> uuid.UUID | None:
        db = await self._get_db()
        async with db.session() as session:
            return await records.find_pull_request_id(session, key.repo, key.number)

    async def enrich(self, key: NaturalKey) -> RemoteItem:
        pr, files, reviews = await asyncio.gather(
            self.client.get_pull_request(key.repo, key.number),
            self.client.list_pull_request_files(key.repo, key.number),
            self.client.list_pull_request_reviews(key.repo, key.number),
        )

        reviewers = list(
            dict.fromkeys(
                review["user"]["login"] for review in reviews if review.get("user")
            )
        )
        if pr.get("merged_at"):
            state = "merged"
        else:
            state = pr.get("state") or "open"

        return RemoteItem(
            key=key,
            title=pr.get("title") or "",
            body=pr.get("body") or "",
            url=pr.get("html_url"),
            state=state,
            author=(pr.get("user") or {}).get("login"),
            created_at=parse_remote_timestamp(pr.get("created_at")),
            updated_at=parse_remote_timestamp(pr.get("updated_at")),
            completed_at=parse_remote_timestamp(pr.get("merged_at")),
            additions=pr.get("additions") or 0,
            deletions=pr.get("deletions") or 0,
            changed_files=pr.get("changed_files") or 0,
            files=[f["filename"] for f in files],
            reviewers=reviewers,
        )

    async def persist(
        self,
        item: RemoteItem,
        refs: ExtractedRefs,
        item_analysis: ItemAnalysis,
        matches: list[CriterionScore],
    ) -> PersistResult:
        db = await self._get_db()
        async with db.session() as session:
            record_id, created = await records.upsert_pull_request(session, item, refs.components)
            evidence_id = await records.upsert_evidence(
                session, item, refs, item_analysis, pull_request_id=record_id
            )
            await records.upsert_criterion_matches(session, evidence_id, matches)

        return PersistResult(record_id=record_id, evidence_id=evidence_id, created=created)

    async def cross_link(self, item: RemoteItem, refs: ExtractedRefs) -> int:
        if not refs.ticket_keys:
            return 0

        db = await self._get_db()
        async with db.session() as session:
            for ticket_key in refs.ticket_keys:
                await records.upsert_pr_ticket_link(
                    session, item.key.repo, item.key.number, ticket_key, source="github"
                )
        return len(refs.ticket_keys)

    async def close(self) -> None:
        await self.client.close()


class JiraCapabilities(SyncCapabilities):
    """Capabilities over Jira tickets assigned to one account."""

    source = "jira"

    def __init__(
        self,
        client: JiraClient,
        llm: BaseLLM,
        db: Database | None = None,
        account: str | None = None,
    ) -> None:
        super().__init__(llm, db)
        self.client = client
        self.account = account or client.email

    async def discover(self, scope: SyncScope) -> list[NaturalKey]:
        jql = build_jql(
            scope.account or self.account,
            scope.projects,
            since=scope.since.isoformat() if scope.since else None,
            until=scope.until.isoformat() if scope.until else None,
        )
        issues = await self.client.search_issues(jql, fields=["summary"], limit=scope.limit)

        keys = list(dict.fromkeys(NaturalKey.ticket(issue["key"]) for issue in issues if issue.get("key")))
        logger.info(f"Jira discovery ({jql}): {len(keys)} tickets")
        return keys

    async def dedup_check(self, key: NaturalKey) -> uuid.UUID | None:
        db = await self._get_db()
        async with db.session() as session:
            return await records.find_jira_ticket_id(session, key.ticket_key)

    async def enrich(self, key: NaturalKey) -> RemoteItem:
        issue = await self.client.get_issue(key.ticket_key, fields=ISSUE_FIELDS)
        fields = issue.get("fields") or {}

        comments = [
            adf_to_text(comment.get("body")).strip()
            for comment in (fields.get("comment") or {}).get("comments", [])
        ]
        story_points = fields.get(STORY_POINTS_FIELD)

        return RemoteItem(
            key=key,
            title=fields.get("summary") or "",
            body=adf_to_text(fields.get("description")).strip(),
            url=self.client.browse_url(key.ticket_key),
            state=(fields.get("status") or {}).get("name"),
            author=(fields.get("assignee") or {}).get("displayName"),
            created_at=parse_remote_timestamp(fields.get("created")),
            updated_at=parse_remote_timestamp(fields.get("updated")),
            completed_at=parse_remote_timestamp(fields.get("resolutiondate")),
            issue_type=(fields.get("issuetype") or {}).get("name"),
            priority=(fields.get("priority") or {}).get("name"),
            story_points=float(story_points) if story_points is not None else None,
            comments=[c for c in comments if c],
            components=[c["name"] for c in fields.get("components") or [] if c.get("name")],
        )

    async def persist(
        self,
        item: RemoteItem,
        refs: ExtractedRefs,
        item_analysis: ItemAnalysis,
        matches: list[CriterionScore],
    ) -> PersistResult:
        db = await self._get_db()
        async with db.session() as session:
            record_id, created = await records.upsert_jira_ticket(session, item, refs.components)
            evidence_id = await records.upsert_evidence(
                session, item, refs, item_analysis, jira_ticket_id=record_id
            )
            await records.upsert_criterion_matches(session, evidence_id, matches)

        return PersistResult(record_id=record_id, evidence_id=evidence_id, created=created)

    async def cross_link(self, item: RemoteItem, refs: ExtractedRefs) -> int:
        if not refs.pr_refs:
            return 0

        db = await self._get_db()
        async with db.session() as session:
            for repo, number in refs.pr_refs:
                await records.upsert_pr_ticket_link(
                    session, repo, number, item.key.ticket_key, source="jira"
                )
        return len(refs.pr_refs)

    async def close(self) -> None:
        await self.client.close()
