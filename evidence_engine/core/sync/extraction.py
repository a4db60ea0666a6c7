"""
Pure extraction helpers: ticket keys, PR references, links, components.

Nothing here does I/O; the extract capability is a composition of these.
"""

import re

from evidence_engine.core.sync.types import ExtractedRefs, ParsedTitle, RemoteItem

TICKET_KEY_PATTERN = re.compile(r"\b([A-Z][A-Z0-9]+-\d+)\b")
URL_PATTERN = re.compile(r"https?://[^\s<>\[\]\"'`)]+", re.IGNORECASE)
TRAILING_PUNCTUATION = re.compile(r"[.,;:!?)]+$")

# https://github.com/org/repo/pull/12
PR_URL_PATTERN = re.compile(r"github\.com/([\w.-]+/[\w.-]+)/pull/(\d+)")
# org/repo#12
PR_SHORTHAND_PATTERN = re.compile(r"(?<![\w/.-])([\w.-]+/[\w.-]+)#(\d+)\b")

TITLE_TICKET_PREFIX = re.compile(r"^\[?[A-Z][A-Z0-9]+-\d+\]?:?\s*", re.IGNORECASE)
TITLE_TICKET = re.compile(r"\[?([A-Z][A-Z0-9]+-\d+)\]?:?\s*")
CONVENTIONAL_PREFIX = re.compile(
    r"^(feat|fix|docs|style|refactor|perf|test|build|ci|chore|revert)(\(.+?\))?:\s*",
    re.IGNORECASE,
)

LINK_KINDS = ("figma", "confluence", "google", "github", "slack", "other")

# Top-level folders whose first child names the component
COMPONENT_ROOTS = ("src", "lib", "packages", "apps")
MAX_COMPONENTS = 5

# Checked in order; first keyword hit wins
_TITLE_KEYWORD_TYPES = [
    (("fix", "bug"), "fix"),
    (("refactor", "clean"), "refactor"),
    (("test",), "test"),
    (("doc",), "docs"),
    (("add", "create", "implement"), "feat"),
    (("update", "upgrade", "bump"), "chore"),
]


def _dedupe(values: list) -> list:
    return list(dict.fromkeys(values))


def extract_ticket_keys(text: str) -> list[str]:
    """Return ticket keys (PROJ-123) in order of first appearance."""
    if not text:
        return []
    return _dedupe(TICKET_KEY_PATTERN.findall(text))


def extract_pr_refs(text: str) -> list[tuple[str, int]]:
    """Return (repo, number) pairs from PR URLs and org/repo#N shorthand."""
    if not text:
        return []

    refs = [(repo, int(number)) for repo, number in PR_URL_PATTERN.findall(text)]
    refs.extend((repo, int(number)) for repo, number in PR_SHORTHAND_PATTERN.findall(text))
    return _dedupe(refs)


def categorize_link(url: str) -> str:
    """Bucket one URL into figma, confluence, google, github, slack or other."""
    lowered = url.lower()
    if "figma.com" in lowered:
        return "figma"
    if "atlassian.net/wiki" in lowered or "confluence" in lowered:
        return "confluence"
    if any(host in lowered for host in ("docs.google.com", "drive.google.com", "sheets.google.com")):
        return "google"
    if "github.com" in lowered:
        return "github"
    if "slack.com" in lowered:
        return "slack"
    return "other"


def extract_links(text: str) -> dict[str, list[str]]:
    """Find URLs in text and group them by kind, deduplicated."""
    links: dict[str, list[str]] = {kind: [] for kind in LINK_KINDS}
    if not text:
        return links

    for url in URL_PATTERN.findall(text):
        clean = TRAILING_PUNCTUATION.sub("", url)
        links[categorize_link(clean)].append(clean)

    return {kind: _dedupe(urls) for kind, urls in links.items()}


def extract_components(files: list[str]) -> list[str]:
    """
    Derive touched components from file paths.

    src/billing/api.py -> billing; docs/intro.md -> docs. Files at the
    repository root contribute nothing. At most five components.
    """
    components: list[str] = []
    for path in files:
        parts = [part for part in path.split("/") if part]
        if len(parts) >= 3 and parts[0] in COMPONENT_ROOTS:
            components.append(parts[1])
        elif len(parts) >= 2:
            components.append(parts[0])

    return _dedupe(components)[:MAX_COMPONENTS]


def parse_pr_title(title: str) -> ParsedTitle:
    """
    Split a PR title like "[PROJ-12] feat(api): add search".

    When there is no conventional-commit prefix the type is guessed from
    keywords in the remaining text.
    """
    match = TITLE_TICKET.search(title)
    ticket_key = match.group(1) if match else None

    description = TITLE_TICKET_PREFIX.sub("", title, count=1).strip()
    commit_type: str | None = None
    scope: str | None = None

    conventional = CONVENTIONAL_PREFIX.match(description)
    if conventional:
        commit_type = conventional.group(1).lower()
        if conventional.group(2):
            scope = conventional.group(2).strip("()") or None
        description = description[conventional.end():].strip()
    else:
        lowered = description.lower()
        for keywords, guessed in _TITLE_KEYWORD_TYPES:
            if any(keyword in lowered for keyword in keywords):
                commit_type = guessed
                break

    return ParsedTitle(
        ticket_key=ticket_key,
        commit_type=commit_type,
        scope=scope,
        description=description,
    )


def extract_refs(item: RemoteItem) -> ExtractedRefs:
    """Run every extractor over one enriched item."""
    text = item.text
    own_ticket = item.key.ticket_key

    ticket_keys = [key for key in extract_ticket_keys(text) if key != own_ticket]

    pr_refs = extract_pr_refs(text)
    if item.key.source == "github":
        own_pr = (item.key.repo, item.key.number)
        pr_refs = [ref for ref in pr_refs if ref != own_pr]

    components = item.components or extract_components(item.files)

    parsed_title = parse_pr_title(item.title) if item.key.source == "github" else None

    return ExtractedRefs(
        ticket_keys=ticket_keys,
        pr_refs=pr_refs,
        links=extract_links(text),
        components=components,
        parsed_title=parsed_title,
    )
