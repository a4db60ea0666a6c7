"""Tests for the Jira client and its ADF/JQL helpers."""

import json

import httpx
import pytest

from evidence_engine.core.sync.jira import JiraClient, adf_to_text, build_jql


def _client(handler) -> JiraClient:
    return JiraClient(
        "acme.atlassian.net",
        "me@example.com",
        "api-token",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_delay=0,
    )


class TestAdfToText:
    """Tests for Atlassian Document Format flattening."""

    def test_paragraphs_and_marks(self) -> None:
        doc = {
            "type": "doc",
            "content": [
                {"type": "paragraph", "content": [{"type": "text", "text": "Build search"}]},
                {
                    "type": "paragraph",
                    "content": [
                        {"type": "mention", "attrs": {"text": "@ana"}},
                        {"type": "text", "text": " see "},
                        {"type": "inlineCard", "attrs": {"url": "https://figma.com/file/x"}},
                    ],
                },
            ],
        }

        assert adf_to_text(doc) == "Build search\n@ana see https://figma.com/file/x\n"

    def test_plain_values(self) -> None:
        assert adf_to_text(None) == ""
        assert adf_to_text("already text") == "already text"


class TestBuildJql:
    """Tests for discovery JQL."""

    def test_full_scope(self) -> None:
        jql = build_jql("me@example.com", ["PROJ", "OPS"], since="2024-01-01", until="2024-03-31")

        assert jql == (
            'assignee = "me@example.com" AND project IN (PROJ, OPS) AND '
            'updated >= "2024-01-01" AND updated <= "2024-03-31" ORDER BY updated DESC'
        )

    def test_empty_scope(self) -> None:
        assert build_jql(None, []) == "assignee = currentUser() ORDER BY updated DESC"


class TestJiraClient:
    """Tests for search paging and issue fetch."""

    @pytest.mark.asyncio
    async def test_search_follows_next_page_token(self) -> None:
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            bodies.append(body)
            if "nextPageToken" not in body:
                return httpx.Response(
                    200, json={"issues": [{"key": "PROJ-1"}], "nextPageToken": "t2"}
                )
            return httpx.Response(200, json={"issues": [{"key": "PROJ-2"}]})

        async with _client(handler) as client:
            issues = await client.search_issues("project = PROJ")

        assert [i["key"] for i in issues] == ["PROJ-1", "PROJ-2"]
        assert bodies[1]["nextPageToken"] == "t2"

    @pytest.mark.asyncio
    async def test_search_stops_at_limit(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            keys = [{"key": f"PROJ-{i}"} for i in range(5)]
            return httpx.Response(200, json={"issues": keys, "nextPageToken": "more"})

        async with _client(handler) as client:
            issues = await client.search_issues("project = PROJ", limit=3)

        assert len(issues) == 3

    @pytest.mark.asyncio
    async def test_basic_auth_and_issue_path(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization", "")
            seen["fields"] = request.url.params["fields"]
            return httpx.Response(200, json={"key": "PROJ-1", "fields": {}})

        async with _client(handler) as client:
            await client.get_issue("PROJ-1", fields=["summary", "status"])

        assert seen["path"] == "/rest/api/3/issue/PROJ-1"
        assert seen["auth"].startswith("Basic ")
        assert seen["fields"] == "summary,status"

    def test_browse_url(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={}))
        assert client.browse_url("PROJ-1") == "https://acme.atlassian.net/browse/PROJ-1"
