"""Shared FastAPI dependencies."""

from evidence_engine.core.storage.postgres import get_db
from evidence_engine.workers.triggers import JobTriggers, build_triggers

# Global trigger layer, built on first request
_triggers: JobTriggers | None = None


async def get_triggers() -> JobTriggers:
    """Return the process-wide JobTriggers wired to the global database."""
    global _triggers

    if _triggers is None:
        _triggers = build_triggers(await get_db())
    return _triggers


def reset_triggers() -> None:
    """Drop the cached trigger layer (on shutdown)."""
    global _triggers
    _triggers = None
