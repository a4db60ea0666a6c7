"""Tests for the worker heartbeat cell."""

from datetime import datetime, timedelta, timezone

import pytest

from evidence_engine.core.services.heartbeat import Heartbeat


class TestHeartbeat:
    """Tests for beat() and check()."""

    @pytest.mark.asyncio
    async def test_never_beaten_is_unhealthy(self, database) -> None:
        health = await Heartbeat(database).check()

        assert health["healthy"] is False
        assert health["lastHeartbeat"] is None
        assert health["secondsSinceHeartbeat"] is None
        assert "never" in health["message"]

    @pytest.mark.asyncio
    async def test_recent_beat_is_healthy(self, database) -> None:
        heartbeat = Heartbeat(database)
        beat_at = datetime(2024, 5, 1, 12, 0, 0)
        await heartbeat.beat(now=beat_at)

        health = await heartbeat.check(now=beat_at + timedelta(seconds=4))

        assert health["healthy"] is True
        assert health["secondsSinceHeartbeat"] == 4.0
        assert health["message"] == "Worker is running"

    @pytest.mark.asyncio
    async def test_stale_beat_is_unhealthy(self, database) -> None:
        heartbeat = Heartbeat(database)
        beat_at = datetime(2024, 5, 1, 12, 0, 0)
        await heartbeat.beat(now=beat_at)

        health = await heartbeat.check(
            interval_seconds=2, multiple=5, now=beat_at + timedelta(seconds=30)
        )

        assert health["healthy"] is False
        assert health["message"] == "No heartbeat for 30s (threshold 10s)"

    @pytest.mark.asyncio
    async def test_beat_overwrites_previous(self, database) -> None:
        heartbeat = Heartbeat(database)
        await heartbeat.beat(now=datetime(2024, 5, 1, 12, 0, 0))
        await heartbeat.beat(now=datetime(2024, 5, 1, 12, 0, 2))

        assert await heartbeat.last_beat() == datetime(2024, 5, 1, 12, 0, 2)

    @pytest.mark.asyncio
    async def test_aware_timestamps_are_stored_as_utc(self, database) -> None:
        heartbeat = Heartbeat(database)
        plus_two = timezone(timedelta(hours=2))
        await heartbeat.beat(now=datetime(2024, 5, 1, 14, 0, 0, tzinfo=plus_two))

        assert await heartbeat.last_beat() == datetime(2024, 5, 1, 12, 0, 0)

    @pytest.mark.asyncio
    async def test_separate_keys_are_independent(self, database) -> None:
        await Heartbeat(database, key="other_worker").beat()

        assert await Heartbeat(database).last_beat() is None
