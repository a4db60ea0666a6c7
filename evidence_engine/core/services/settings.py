"""
Settings service for runtime configuration.

Provides a high-level interface for reading and writing settings
with default value fallbacks. Sync handlers read their default scope
from here when a job does not name one.
"""

import logging
from typing import Any

from sqlalchemy import select

from evidence_engine.core.models import Setting
from evidence_engine.core.storage.postgres import Database, get_db, upsert_insert
from evidence_engine.core.utils.time import utcnow_naive

logger = logging.getLogger(__name__)


class SettingsService:
    """
    Service for managing runtime settings.

    Settings are stored in the database but fall back to defaults when
    not set.
    """

    # Valid values for constrained settings
    VALID_PROVIDERS = ["anthropic", "openai", "google", "ollama"]
    VALID_TIERS = ["fast", "smart", "smartest"]

    # Default values for all settings
    DEFAULTS: dict[str, Any] = {
        "selected_repos": [],
        "selected_projects": [],
        "sync_update_existing": False,
        "analysis_provider": "anthropic",
        "analysis_tier": "fast",
    }

    DESCRIPTIONS: dict[str, str] = {
        "selected_repos": "GitHub repositories (owner/name) synced when a job names none",
        "selected_projects": "Jira project keys synced when a job names none",
        "sync_update_existing": "Re-analyze items that were already synced",
        "analysis_provider": "LLM provider for sync analysis (anthropic, openai, google, ollama)",
        "analysis_tier": "LLM model tier for sync analysis (fast, smart, smartest)",
    }

    TYPES: dict[str, str] = {
        "selected_repos": "list",
        "selected_projects": "list",
        "sync_update_existing": "boolean",
        "analysis_provider": "text",
        "analysis_tier": "text",
    }

    def __init__(self, db: Database | None = None) -> None:
        self._db = db

    async def _get_db(self) -> Database:
        if self._db is None:
            self._db = await get_db()
        return self._db

    async def get(self, key: str) -> Any:
        """
        Get a setting value by key.

        Args:
            key: The setting key.

        Returns:
            The setting value, or the default if not set.

        Raises:
            KeyError: If the key is not a valid setting.
        """
        if key not in self.DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")

        db = await self._get_db()
        async with db.session() as session:
            stmt = select(Setting).where(Setting.key == key)
            result = await session.execute(stmt)
            setting = result.scalar_one_or_none()

            if setting is not None:
                # Value is stored as {"value": actual_value}
                return setting.value.get("value", self.DEFAULTS[key])

            return self.DEFAULTS[key]

    async def set(self, key: str, value: Any) -> None:
        """
        Set a setting value (upsert).

        Raises:
            KeyError: If the key is not a valid setting.
            ValueError: If the value is invalid.
        """
        if key not in self.DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")

        self._validate_value(key, value)

        db = await self._get_db()
        async with db.session() as session:
            now = utcnow_naive()
            stmt = (
                upsert_insert(session, Setting)
                .values(key=key, value={"value": value}, updated_at=now)
                .on_conflict_do_update(
                    index_elements=["key"],
                    set_={"value": {"value": value}, "updated_at": now},
                )
            )
            await session.execute(stmt)

        logger.info(f"Setting '{key}' updated to: {value}")

    async def get_all(self) -> dict[str, dict[str, Any]]:
        """Get all settings with their current value, default and description."""
        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(
                select(Setting).where(Setting.key.in_(list(self.DEFAULTS)))
            )
            db_settings = {s.key: s.value.get("value") for s in result.scalars().all()}

        settings = {}
        for key, default in self.DEFAULTS.items():
            settings[key] = {
                "value": db_settings.get(key, default),
                "default": default,
                "description": self.DESCRIPTIONS.get(key, ""),
                "type": self.TYPES.get(key, "text"),
                "is_default": key not in db_settings,
            }

        return settings

    async def reset(self, key: str) -> None:
        """
        Reset a setting to its default value.

        Raises:
            KeyError: If the key is not a valid setting.
        """
        if key not in self.DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")

        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(select(Setting).where(Setting.key == key))
            setting = result.scalar_one_or_none()

            if setting is not None:
                await session.delete(setting)
                logger.info(f"Setting '{key}' reset to default")

    def _validate_value(self, key: str, value: Any) -> None:
        """
        Validate a setting value.

        Raises:
            ValueError: If the value is invalid.
        """
        setting_type = self.TYPES.get(key, "text")

        if setting_type == "list":
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ValueError(f"{key} must be a list of strings")
            if key == "selected_repos":
                for repo in value:
                    owner, _, name = repo.partition("/")
                    if not owner or not name:
                        raise ValueError(f"Invalid repository '{repo}', expected owner/name")

        elif setting_type == "boolean":
            if not isinstance(value, bool):
                raise ValueError(f"{key} must be a boolean")

        elif setting_type == "text":
            if not isinstance(value, str):
                raise ValueError(f"{key} must be a string")
            if key == "analysis_provider" and value not in self.VALID_PROVIDERS:
                raise ValueError(
                    f"Invalid provider '{value}'. "
                    f"Must be one of: {', '.join(self.VALID_PROVIDERS)}"
                )
            if key == "analysis_tier" and value not in self.VALID_TIERS:
                raise ValueError(
                    f"Invalid tier '{value}'. "
                    f"Must be one of: {', '.join(self.VALID_TIERS)}"
                )
