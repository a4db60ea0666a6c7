"""
Sync job handlers.

remote-sync and agent-sync both run the capability pipeline over GitHub
or Jira. remote-sync takes an explicit scope and date window (scope,
since, until); agent-sync names its source in "agentType" and falls back
to the stored repo and project selection. agent-sync is the type the sync
API creates and the one deduplicated per source.
"""

import logging
import re
import uuid
from typing import Any, Callable

from evidence_engine.core.config.loader import get_sync_config
from evidence_engine.core.llm.base import BaseLLM
from evidence_engine.core.llm.router import get_llm
from evidence_engine.core.models.jobs import JobType
from evidence_engine.core.services.exceptions import ConfigurationError, HandlerFailure
from evidence_engine.core.services.job_recorder import JobRecorder
from evidence_engine.core.services.settings import SettingsService
from evidence_engine.core.storage.postgres import Database
from evidence_engine.core.sync.capabilities import (
    GitHubCapabilities,
    JiraCapabilities,
    SyncCapabilities,
)
from evidence_engine.core.sync.github import GitHubClient
from evidence_engine.core.sync.jira import JiraClient
from evidence_engine.core.sync.pipeline import SyncPipeline
from evidence_engine.core.sync.types import SyncScope
from evidence_engine.core.utils.time import parse_date
from evidence_engine.workers.registry import JobHandler

logger = logging.getLogger(__name__)

SOURCES = ("github", "jira")

# Jira project keys: "PROJ", "OPS2", "DATA_ENG"
PROJECT_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]+$")

CapabilitiesFactory = Callable[[str, dict[str, Any], BaseLLM], SyncCapabilities]


def _as_limit(value: Any) -> int | None:
    return int(value) if value else None


def infer_source(entries: list[str]) -> str | None:
    """
    Tell the source from remote-sync scope entries.

    "owner/repo" names mean github, bare project keys mean jira; an empty
    or mixed list gives None.
    """
    if not entries:
        return None
    if all("/" in entry for entry in entries):
        return "github"
    if all(PROJECT_KEY_PATTERN.match(entry) for entry in entries):
        return "jira"
    return None


def build_capabilities(
    source: str,
    credentials: dict[str, Any],
    llm: BaseLLM,
    db: Database | None = None,
) -> SyncCapabilities:
    """
    Build the capability set for a source from its sync config section.

    Raises:
        ConfigurationError: If required credentials are missing.
    """
    if source == "github":
        token = credentials.get("token")
        if not token:
            raise ConfigurationError("GitHub token not configured (sync.github.token)")
        client = GitHubClient(
            token,
            base_url=credentials.get("api_url") or "https://api.github.com",
            timeout=float(credentials.get("timeout", 30.0)),
        )
        return GitHubCapabilities(client, llm, db, username=credentials.get("username") or None)

    host = credentials.get("host")
    email = credentials.get("email")
    api_token = credentials.get("api_token")
    if not (host and email and api_token):
        raise ConfigurationError(
            "Jira credentials not configured (sync.jira.host, email, api_token)"
        )
    client = JiraClient(host, email, api_token, timeout=float(credentials.get("timeout", 30.0)))
    return JiraCapabilities(client, llm, db)


class SyncJobHandler(JobHandler):
    """
    Runs SyncPipeline for one source.

    Config keys: <source_key> ("github" | "jira"), startDate, endDate,
    username, repositories, projects, limit, dryRun, updateExisting.
    Repositories and projects fall back to the selected_repos and
    selected_projects settings when the job names none.
    """

    source_key = "source"

    def __init__(
        self,
        db: Database | None = None,
        settings: SettingsService | None = None,
        capabilities_factory: CapabilitiesFactory | None = None,
        llm_factory: Callable[..., BaseLLM] = get_llm,
    ) -> None:
        self._db = db
        self.settings = settings or SettingsService(db)
        self.capabilities_factory = capabilities_factory
        self.llm_factory = llm_factory

    def _source(self, config: dict[str, Any]) -> str:
        source = str(config.get(self.source_key) or "").lower()
        if source not in SOURCES:
            raise HandlerFailure(
                f"Config '{self.source_key}' must be one of {', '.join(SOURCES)}, got {source!r}"
            )
        return source

    def _requested_scope(self, source: str, config: dict[str, Any]) -> SyncScope:
        """Scope exactly as the job config states it."""
        return SyncScope(
            account=config.get("username") or None,
            repos=list(config.get("repositories") or []),
            projects=list(config.get("projects") or []),
            since=parse_date(config.get("startDate")),
            until=parse_date(config.get("endDate")),
            limit=_as_limit(config.get("limit")),
        )

    async def _build_scope(self, source: str, config: dict[str, Any]) -> SyncScope:
        scope = self._requested_scope(source, config)
        if source == "github" and not scope.repos:
            scope.repos = list(await self.settings.get("selected_repos") or [])
        if source == "jira" and not scope.projects:
            scope.projects = list(await self.settings.get("selected_projects") or [])
        return scope

    async def _build_capabilities(self, source: str) -> SyncCapabilities:
        provider = await self.settings.get("analysis_provider")
        tier = await self.settings.get("analysis_tier")
        llm = self.llm_factory(task="sync_analysis", provider=provider, tier=tier)

        credentials = get_sync_config(source)
        if self.capabilities_factory is not None:
            return self.capabilities_factory(source, credentials, llm)
        return build_capabilities(source, credentials, llm, self._db)

    async def run(
        self,
        job_id: uuid.UUID,
        config: dict[str, Any],
        recorder: JobRecorder,
    ) -> dict[str, Any]:
        source = self._source(config)
        scope = await self._build_scope(source, config)

        update_existing = config.get("updateExisting")
        if update_existing is None:
            update_existing = await self.settings.get("sync_update_existing")

        capabilities = await self._build_capabilities(source)
        await recorder.info(
            f"Syncing {source}: repos={scope.repos or '-'}, projects={scope.projects or '-'}, "
            f"since={scope.since or '-'}, until={scope.until or '-'}"
        )

        pipeline = SyncPipeline(
            capabilities,
            recorder,
            update_existing=bool(update_existing),
            dry_run=bool(config.get("dryRun", False)),
        )
        try:
            result = await pipeline.run(scope)
        finally:
            await capabilities.close()

        payload = result.to_dict()
        payload["source"] = source
        return payload


class RemoteSyncHandler(SyncJobHandler):
    """
    Explicit-scope sync.

    Config keys: scope (owner/repo names or Jira project keys), since,
    until, source (optional, inferred from scope when absent), account,
    limit, dryRun, updateExisting.
    """

    job_type = JobType.REMOTE_SYNC
    source_key = "source"

    @staticmethod
    def _scope_entries(config: dict[str, Any]) -> list[str]:
        scope = config.get("scope") or []
        if isinstance(scope, str):
            scope = [scope]
        return [str(entry).strip() for entry in scope if str(entry).strip()]

    def _source(self, config: dict[str, Any]) -> str:
        if config.get(self.source_key):
            return super()._source(config)

        source = infer_source(self._scope_entries(config))
        if source is None:
            raise HandlerFailure(
                "Cannot tell the source from config 'scope'; set 'source' to github or jira"
            )
        return source

    def _requested_scope(self, source: str, config: dict[str, Any]) -> SyncScope:
        entries = self._scope_entries(config)
        return SyncScope(
            account=config.get("account") or None,
            repos=entries if source == "github" else [],
            projects=entries if source == "jira" else [],
            since=parse_date(config.get("since")),
            until=parse_date(config.get("until")),
            limit=_as_limit(config.get("limit")),
        )


class AgentSyncHandler(SyncJobHandler):
    job_type = JobType.AGENT_SYNC
    source_key = "agentType"
