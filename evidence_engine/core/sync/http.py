"""
Shared HTTP plumbing for the GitHub and Jira clients.

Transport errors, 429 and 5xx responses are retried with a linear backoff,
or after the Retry-After delay when a rate-limited response sends one.
Anything still failing (and every other 4xx) becomes UpstreamFailure.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from evidence_engine.core.services.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)

# Upper bound on a server-requested Retry-After wait, in seconds
MAX_RETRY_AFTER = 60.0


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


@dataclass
class ClientConfig:
    """Connection settings for a remote API."""
    base_url: str
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    headers: dict[str, str] = field(default_factory=dict)


class RemoteAPIClient:
    """
    Thin JSON-over-HTTP client around httpx.AsyncClient.

    Pass an httpx.AsyncClient to reuse a connection pool or to inject an
    httpx.MockTransport in tests; otherwise one is created on first use.

    Usage:
        async with GitHubClient(token) as client:
            user = await client.get_authenticated_user()
    """

    service_name = "remote"

    def __init__(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
    ) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._auth = auth

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "RemoteAPIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.config.base_url.rstrip('/')}{path}"

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            UpstreamFailure: On other 4xx, on 429/5xx/transport errors after retries,
                or when the body is not JSON.
        """
        client = self._get_client()
        headers = {**self.config.headers, **kwargs.pop("headers", {})}
        if self._auth is not None:
            kwargs.setdefault("auth", self._auth)

        last_error: str = ""
        last_status: int | None = None

        for attempt in range(self.config.max_retries):
            response: httpx.Response | None = None
            try:
                response = await client.request(
                    method, self._url(path), headers=headers, **kwargs
                )
            except httpx.TimeoutException as e:
                last_error = f"timeout: {e}"
                logger.warning(f"{self.service_name} timeout on {method} {path}, attempt {attempt + 1}")
            except httpx.RequestError as e:
                last_error = str(e)
                logger.warning(f"{self.service_name} error on {method} {path}: {e}, attempt {attempt + 1}")
            else:
                if response.status_code < 400:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise UpstreamFailure(
                            f"{self.service_name} returned non-JSON body for {path}",
                            status_code=response.status_code,
                        ) from e

                last_status = response.status_code
                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                if not _is_retryable(response.status_code):
                    break
                logger.warning(
                    f"{self.service_name} {response.status_code} on {method} {path}, "
                    f"attempt {attempt + 1}"
                )

            if attempt < self.config.max_retries - 1:
                await asyncio.sleep(self._retry_delay(attempt, response))

        raise UpstreamFailure(
            f"{self.service_name} {method} {path} failed: {last_error}",
            status_code=last_status,
        )

    def _retry_delay(self, attempt: int, response: httpx.Response | None) -> float:
        """Seconds to wait before the next attempt."""
        backoff = self.config.retry_delay * (attempt + 1)
        if response is None or response.status_code != 429:
            return backoff
        retry_after = response.headers.get("Retry-After", "")
        try:
            return min(max(float(retry_after), 0.0), MAX_RETRY_AFTER)
        except ValueError:
            return backoff

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)
