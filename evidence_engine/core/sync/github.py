"""
GitHub REST client used by the sync capabilities.

Only the handful of endpoints the pipeline needs: issue search (for
discovering merged pull requests), pull request details, files, reviews
and the authenticated user.
"""

import logging
from typing import Any

import httpx

from evidence_engine.core.sync.http import ClientConfig, RemoteAPIClient

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
PAGE_SIZE = 100
# GitHub search never returns more than 1000 results per query
SEARCH_RESULT_CAP = 1000


def repo_from_repository_url(repository_url: str) -> str:
    """https://api.github.com/repos/org/repo -> org/repo"""
    owner, name = repository_url.rstrip("/").split("/")[-2:]
    return f"{owner}/{name}"


class GitHubClient(RemoteAPIClient):
    """GitHub API client authenticated with a personal access token."""

    service_name = "GitHub"

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        config = ClientConfig(
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )
        super().__init__(config, client=client)

    async def get_authenticated_user(self) -> str:
        """Login of the token's owner."""
        data = await self.get("/user")
        return data["login"]

    async def search_pull_requests(self, query: str, limit: int | None = None) -> list[dict[str, Any]]:
        """
        Run an issue search and return the raw items, newest updated first.

        Args:
            query: GitHub search syntax; "is:pr" is expected to be included.
            limit: Stop after this many items.
        """
        items: list[dict[str, Any]] = []
        page = 1
        cap = min(limit, SEARCH_RESULT_CAP) if limit else SEARCH_RESULT_CAP
        per_page = min(PAGE_SIZE, cap)

        while len(items) < cap:
            data = await self.get(
                "/search/issues",
                params={
                    "q": query,
                    "per_page": per_page,
                    "page": page,
                    "sort": "updated",
                    "order": "desc",
                },
            )
            batch = data.get("items", [])
            items.extend(batch[: cap - len(items)])

            if len(batch) < per_page:
                break
            page += 1

        logger.debug(f"GitHub search '{query}' returned {len(items)} items")
        return items

    async def get_pull_request(self, repo: str, number: int) -> dict[str, Any]:
        return await self.get(f"/repos/{repo}/pulls/{number}")

    async def list_pull_request_files(self, repo: str, number: int) -> list[dict[str, Any]]:
        return await self.get(
            f"/repos/{repo}/pulls/{number}/files", params={"per_page": PAGE_SIZE}
        )

    async def list_pull_request_reviews(self, repo: str, number: int) -> list[dict[str, Any]]:
        return await self.get(
            f"/repos/{repo}/pulls/{number}/reviews", params={"per_page": PAGE_SIZE}
        )
