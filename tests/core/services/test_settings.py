"""
Tests for SettingsService.

Integration tests run against the SQLite test database.
"""

import pytest

from evidence_engine.core.services.settings import SettingsService


class TestSettingsServiceDefaults:
    """Tests for SettingsService default values."""

    def test_defaults_defined(self) -> None:
        """All sync settings have defaults."""
        service = SettingsService()

        assert "selected_repos" in service.DEFAULTS
        assert "selected_projects" in service.DEFAULTS
        assert "sync_update_existing" in service.DEFAULTS
        assert "analysis_tier" in service.DEFAULTS

    def test_default_values(self) -> None:
        service = SettingsService()

        assert service.DEFAULTS["selected_repos"] == []
        assert service.DEFAULTS["sync_update_existing"] is False
        assert service.DEFAULTS["analysis_provider"] == "anthropic"
        assert service.DEFAULTS["analysis_tier"] == "fast"

    def test_types_and_descriptions_defined(self) -> None:
        """All settings have a type and a description."""
        service = SettingsService()

        for key in service.DEFAULTS:
            assert key in service.TYPES, f"Missing type for {key}"
            assert key in service.DESCRIPTIONS, f"Missing description for {key}"


class TestSettingsServiceValidation:
    """Tests for SettingsService value validation."""

    def test_validate_repos(self) -> None:
        """Repositories must be owner/name strings."""
        service = SettingsService()

        service._validate_value("selected_repos", ["org/api", "org/web"])
        service._validate_value("selected_repos", [])

        with pytest.raises(ValueError):
            service._validate_value("selected_repos", "org/api")

        with pytest.raises(ValueError):
            service._validate_value("selected_repos", ["no-slash"])

    def test_validate_boolean(self) -> None:
        service = SettingsService()

        service._validate_value("sync_update_existing", True)

        with pytest.raises(ValueError):
            service._validate_value("sync_update_existing", "true")

    def test_validate_provider_and_tier(self) -> None:
        service = SettingsService()

        service._validate_value("analysis_provider", "ollama")
        service._validate_value("analysis_tier", "smart")

        with pytest.raises(ValueError):
            service._validate_value("analysis_provider", "cohere")

        with pytest.raises(ValueError):
            service._validate_value("analysis_tier", "huge")


class TestSettingsServiceIntegration:
    """Integration tests for SettingsService with a real database."""

    @pytest.mark.asyncio
    async def test_get_returns_default_when_not_set(self, database) -> None:
        service = SettingsService(database)
        assert await service.get("analysis_tier") == "fast"

    @pytest.mark.asyncio
    async def test_set_updates_existing(self, database) -> None:
        service = SettingsService(database)

        await service.set("selected_repos", ["org/api"])
        await service.set("selected_repos", ["org/api", "org/web"])

        assert await service.get("selected_repos") == ["org/api", "org/web"]

    @pytest.mark.asyncio
    async def test_reset_removes_setting(self, database) -> None:
        """Reset removes the row so the default is used again."""
        service = SettingsService(database)

        await service.set("sync_update_existing", True)
        assert await service.get("sync_update_existing") is True

        await service.reset("sync_update_existing")
        assert await service.get("sync_update_existing") is False

    @pytest.mark.asyncio
    async def test_get_all_returns_all_settings(self, database) -> None:
        service = SettingsService(database)
        await service.set("analysis_tier", "smart")

        settings = await service.get_all()

        assert settings["analysis_tier"]["value"] == "smart"
        assert settings["analysis_tier"]["is_default"] is False
        assert settings["selected_projects"]["value"] == []
        assert settings["selected_projects"]["is_default"] is True

    @pytest.mark.asyncio
    async def test_heartbeat_row_is_not_listed(self, database) -> None:
        """The worker heartbeat shares the table but is not a user setting."""
        from evidence_engine.core.services.heartbeat import Heartbeat

        await Heartbeat(database).beat()
        settings = await SettingsService(database).get_all()

        assert "worker_heartbeat" not in settings

    @pytest.mark.asyncio
    async def test_unknown_key_raises(self, database) -> None:
        service = SettingsService(database)

        with pytest.raises(KeyError):
            await service.get("unknown_key")

        with pytest.raises(KeyError):
            await service.set("unknown_key", "value")
