"""
Worker liveness heartbeat.

One shared cell in the settings table: the poller writes it every cycle,
health checks read it. Single writer, many readers, no locking beyond the
row upsert itself.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select

from evidence_engine.core.models.settings import Setting
from evidence_engine.core.storage.postgres import Database, get_db, upsert_insert
from evidence_engine.core.utils.time import to_naive_utc, utcnow_naive

logger = logging.getLogger(__name__)

HEARTBEAT_KEY = "worker_heartbeat"

# The poller runs every 2s; five missed cycles means it is stalled or dead
DEFAULT_INTERVAL_SECONDS = 2
DEFAULT_STALE_MULTIPLE = 5


class Heartbeat:
    """Read/write access to the worker heartbeat timestamp."""

    def __init__(self, db: Database | None = None, key: str = HEARTBEAT_KEY) -> None:
        self._db = db
        self.key = key

    async def _get_db(self) -> Database:
        if self._db is None:
            self._db = await get_db()
        return self._db

    async def beat(self, now: datetime | None = None) -> datetime:
        """Record that the poller is alive. Returns the stored timestamp."""
        timestamp = to_naive_utc(now) if now is not None else utcnow_naive()
        value = {"value": timestamp.isoformat()}

        db = await self._get_db()
        async with db.session() as session:
            stmt = (
                upsert_insert(session, Setting)
                .values(key=self.key, value=value, updated_at=timestamp)
                .on_conflict_do_update(
                    index_elements=["key"],
                    set_={"value": value, "updated_at": timestamp},
                )
            )
            await session.execute(stmt)

        logger.debug(f"Heartbeat written at {timestamp.isoformat()}")
        return timestamp

    async def last_beat(self) -> datetime | None:
        """Return the last heartbeat, or None if the poller never ran."""
        db = await self._get_db()
        async with db.session() as session:
            result = await session.execute(select(Setting).where(Setting.key == self.key))
            setting = result.scalar_one_or_none()

        if setting is None:
            return None

        raw = (setting.value or {}).get("value")
        if not raw:
            return None
        try:
            return to_naive_utc(datetime.fromisoformat(raw))
        except ValueError:
            logger.warning(f"Unparseable heartbeat value: {raw!r}")
            return None

    async def check(
        self,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        multiple: float = DEFAULT_STALE_MULTIPLE,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Report whether the poller looks alive.

        Unhealthy when no heartbeat was ever written, or when the last one is
        older than interval_seconds * multiple.

        Returns:
            {"healthy", "lastHeartbeat", "secondsSinceHeartbeat", "message"}
        """
        threshold = interval_seconds * multiple
        last = await self.last_beat()

        if last is None:
            return {
                "healthy": False,
                "lastHeartbeat": None,
                "secondsSinceHeartbeat": None,
                "message": "Worker has never reported a heartbeat",
            }

        current = to_naive_utc(now) if now is not None else utcnow_naive()
        age = max(0.0, (current - last).total_seconds())
        healthy = age <= threshold

        if healthy:
            message = "Worker is running"
        else:
            message = f"No heartbeat for {int(age)}s (threshold {threshold:g}s)"

        return {
            "healthy": healthy,
            "lastHeartbeat": last.isoformat(),
            "secondsSinceHeartbeat": round(age, 1),
            "message": message,
        }
