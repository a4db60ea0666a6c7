"""
Storage module.

Provides access to the relational store used by the job engine and the
sync pipeline.

Usage:
    from evidence_engine.core.storage import get_db

    db = await get_db()
    async with db.session() as session:
        result = await session.execute(query)
"""

from evidence_engine.core.storage.base import BaseDatabase, DatabaseConfig
from evidence_engine.core.storage.exceptions import (
    ConfigurationError,
    ConnectionError,
    NotFoundError,
    StorageError,
)
from evidence_engine.core.storage.postgres import (
    Base,
    Database,
    JSONType,
    close_db,
    get_db,
    upsert_insert,
)

__all__ = [
    "BaseDatabase",
    "DatabaseConfig",
    "StorageError",
    "ConnectionError",
    "NotFoundError",
    "ConfigurationError",
    "Base",
    "Database",
    "JSONType",
    "get_db",
    "close_db",
    "upsert_insert",
]
