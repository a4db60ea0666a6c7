"""
Jira Cloud REST client used by the sync capabilities.

Discovery goes through the enhanced JQL search endpoint
(/rest/api/3/search/jql), which pages with nextPageToken; the old
offset-based /search endpoint is gone.
"""

import logging
from typing import Any

import httpx

from evidence_engine.core.sync.http import ClientConfig, RemoteAPIClient

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

# Story points live in a custom field; this id is the Jira Cloud default
STORY_POINTS_FIELD = "customfield_10028"

ISSUE_FIELDS = [
    "summary",
    "description",
    "status",
    "issuetype",
    "priority",
    "assignee",
    "created",
    "updated",
    "resolutiondate",
    "comment",
    "components",
    STORY_POINTS_FIELD,
]


def adf_to_text(node: Any) -> str:
    """
    Flatten an Atlassian Document Format tree into plain text.

    Plain strings pass through; block nodes are separated by newlines.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(adf_to_text(child) for child in node)
    if not isinstance(node, dict):
        return str(node)

    node_type = node.get("type")
    if node_type == "text":
        return node.get("text", "")
    if node_type == "hardBreak":
        return "\n"
    if node_type in ("mention", "emoji"):
        attrs = node.get("attrs", {})
        return attrs.get("text") or attrs.get("shortName", "")
    if node_type == "inlineCard":
        return node.get("attrs", {}).get("url", "")

    inner = adf_to_text(node.get("content", []))
    if node_type in ("paragraph", "heading", "listItem", "codeBlock", "blockquote", "rule"):
        return f"{inner}\n"
    return inner


def build_jql(
    account: str | None,
    projects: list[str],
    since: str | None = None,
    until: str | None = None,
) -> str:
    """Build the discovery JQL for tickets assigned to account."""
    parts: list[str] = []
    if account:
        parts.append(f'assignee = "{account}"')
    if projects:
        parts.append(f"project IN ({', '.join(projects)})")
    if since:
        parts.append(f'updated >= "{since}"')
    if until:
        parts.append(f'updated <= "{until}"')

    clause = " AND ".join(parts) if parts else "assignee = currentUser()"
    return f"{clause} ORDER BY updated DESC"


class JiraClient(RemoteAPIClient):
    """Jira Cloud client using email + API token basic auth."""

    service_name = "Jira"

    def __init__(
        self,
        host: str,
        email: str,
        api_token: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        base_url = host if host.startswith("http") else f"https://{host}"
        config = ClientConfig(
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
            headers={"Accept": "application/json"},
        )
        super().__init__(config, client=client, auth=(email, api_token))
        self.host = base_url
        self.email = email

    def browse_url(self, key: str) -> str:
        return f"{self.host.rstrip('/')}/browse/{key}"

    async def search_issues(
        self,
        jql: str,
        fields: list[str] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Run a JQL search, following nextPageToken until exhausted or limit is hit."""
        issues: list[dict[str, Any]] = []
        next_page_token: str | None = None
        max_results = min(PAGE_SIZE, limit) if limit else PAGE_SIZE

        while True:
            body: dict[str, Any] = {
                "jql": jql,
                "maxResults": max_results,
                "fields": fields or ["summary"],
            }
            if next_page_token:
                body["nextPageToken"] = next_page_token

            data = await self.post("/rest/api/3/search/jql", json=body)
            batch = data.get("issues") or []
            issues.extend(batch)

            if limit and len(issues) >= limit:
                return issues[:limit]

            next_page_token = data.get("nextPageToken")
            if not batch or not next_page_token:
                break

        logger.debug(f"Jira search returned {len(issues)} issues")
        return issues

    async def get_issue(self, key: str, fields: list[str] | None = None) -> dict[str, Any]:
        params = {"fields": ",".join(fields or ISSUE_FIELDS)}
        return await self.get(f"/rest/api/3/issue/{key}", params=params)
