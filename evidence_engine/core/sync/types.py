"""
Data passed between sync capabilities.

These are plain dataclasses: capabilities exchange them in memory and
only persist() turns them into rows.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

CATEGORIES = ("feature", "bug", "refactor", "devex", "docs", "test", "other")
SCOPES = ("small", "medium", "large")

MAX_CRITERIA_MATCHES = 3


@dataclass(frozen=True)
class NaturalKey:
    """
    Externally stable identity of a remote item.

    GitHub pull requests are (repo, number); Jira tickets are the ticket
    key. role records how the account relates to the item and does not
    take part in equality.
    """

    source: str
    repo: str | None = None
    number: int | None = None
    ticket_key: str | None = None
    role: str = field(default="author", compare=False)

    @classmethod
    def pull_request(cls, repo: str, number: int, role: str = "author") -> "NaturalKey":
        return cls(source="github", repo=repo, number=int(number), role=role)

    @classmethod
    def ticket(cls, ticket_key: str, role: str = "assignee") -> "NaturalKey":
        return cls(source="jira", ticket_key=ticket_key, role=role)

    @property
    def project_key(self) -> str | None:
        if self.ticket_key is None:
            return None
        return self.ticket_key.rsplit("-", 1)[0]

    def __str__(self) -> str:
        if self.source == "github":
            return f"{self.repo}#{self.number}"
        return str(self.ticket_key)


@dataclass
class SyncScope:
    """What to discover: whose work, where, and over which window."""

    account: str | None = None
    repos: list[str] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)
    since: date | None = None
    until: date | None = None
    limit: int | None = None


@dataclass
class RemoteItem:
    """Full content of a pull request or ticket, as returned by enrich()."""

    key: NaturalKey
    title: str
    body: str = ""
    url: str | None = None
    state: str | None = None
    author: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    # Pull request only
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    files: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)
    # Ticket only
    issue_type: str | None = None
    priority: str | None = None
    story_points: float | None = None
    comments: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Title, body and comments as one block, for extraction and prompts."""
        parts = [self.title, self.body, *self.comments]
        return "\n\n".join(part for part in parts if part)

    @property
    def lines_changed(self) -> int:
        return self.additions + self.deletions


@dataclass
class ParsedTitle:
    """A PR title split into ticket key, conventional-commit type, scope and text."""

    ticket_key: str | None
    commit_type: str | None
    scope: str | None
    description: str


@dataclass
class ExtractedRefs:
    """References found in an item's text and metadata."""

    ticket_keys: list[str] = field(default_factory=list)
    pr_refs: list[tuple[str, int]] = field(default_factory=list)
    links: dict[str, list[str]] = field(default_factory=dict)
    components: list[str] = field(default_factory=list)
    parsed_title: ParsedTitle | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticketKeys": list(self.ticket_keys),
            "prRefs": [f"{repo}#{number}" for repo, number in self.pr_refs],
            "links": {kind: list(urls) for kind, urls in self.links.items() if urls},
            "components": list(self.components),
            "parsedTitle": asdict(self.parsed_title) if self.parsed_title else None,
        }


@dataclass
class ItemAnalysis:
    """Short summary plus category and scope estimate for one item."""

    summary: str
    category: str = "other"
    scope: str = "small"


@dataclass
class CriterionScore:
    """One ranked criterion match."""

    criterion_id: int
    confidence: float
    rationale: str = ""


@dataclass
class PersistResult:
    """Row ids written by persist()."""

    record_id: Any
    evidence_id: Any
    created: bool


@dataclass
class SyncResult:
    """Counters reported as the job result of a sync run."""

    discovered: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    linked: int = 0
    cancelled: bool = False
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "discovered": self.discovered,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "linked": self.linked,
            "cancelled": self.cancelled,
            "dryRun": self.dry_run,
        }
