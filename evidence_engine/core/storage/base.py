"""
Base interface for the relational store.

The job engine only talks to the database through this contract, so the
PostgreSQL implementation can be pointed at SQLite for tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class DatabaseConfig:
    """
    Configuration for the database.

    When url is set it is used verbatim (e.g. "sqlite+aiosqlite:///jobs.db")
    and the host/port/credential fields are ignored.
    """

    host: str = "localhost"
    port: int = 5432
    database: str = "evidence"
    user: str = "evidence"
    password: str = "evidence"
    pool_size: int = 5
    pool_max_overflow: int = 10
    echo: bool = False
    url: str | None = None


class BaseDatabase(ABC):
    """
    Contract the job store, the settings service and the sync records use.

    connect() must be awaited before session(); session() yields a unit of
    work that commits on clean exit and rolls back when the block raises.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config

    @abstractmethod
    async def connect(self) -> None:
        """Create the engine and verify it can reach the server."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Dispose of the engine and its pooled connections."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True when a trivial query succeeds."""

    @abstractmethod
    def session(self) -> Any:
        """Async context manager yielding a transactional session."""

    @abstractmethod
    async def create_tables(self) -> None:
        """Create every mapped table (tests and local SQLite runs)."""
