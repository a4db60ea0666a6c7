"""
GitHub/Jira sync pipeline.

Usage:
    caps = GitHubCapabilities(GitHubClient(token), llm)
    result = await SyncPipeline(caps, recorder).run(SyncScope(repos=["org/repo"]))
"""

from evidence_engine.core.sync.capabilities import (
    CAPABILITY_CONTRACTS,
    CapabilityContract,
    GitHubCapabilities,
    JiraCapabilities,
    SyncCapabilities,
)
from evidence_engine.core.sync.github import GitHubClient
from evidence_engine.core.sync.jira import JiraClient
from evidence_engine.core.sync.pipeline import DRY_RUN_LIMIT, SyncPipeline
from evidence_engine.core.sync.types import (
    CriterionScore,
    ExtractedRefs,
    ItemAnalysis,
    NaturalKey,
    PersistResult,
    RemoteItem,
    SyncResult,
    SyncScope,
)

__all__ = [
    "CAPABILITY_CONTRACTS",
    "CapabilityContract",
    "SyncCapabilities",
    "GitHubCapabilities",
    "JiraCapabilities",
    "GitHubClient",
    "JiraClient",
    "SyncPipeline",
    "DRY_RUN_LIMIT",
    "NaturalKey",
    "SyncScope",
    "RemoteItem",
    "ExtractedRefs",
    "ItemAnalysis",
    "CriterionScore",
    "PersistResult",
    "SyncResult",
]
