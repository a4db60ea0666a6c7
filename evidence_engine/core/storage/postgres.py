"""
PostgreSQL database implementation.

Uses SQLAlchemy with async support. The same class also drives SQLite
(aiosqlite) when DatabaseConfig.url points at it, which is how the test
suite runs without a server.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import JSON, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from evidence_engine.core.config.loader import get_config
from evidence_engine.core.storage.base import BaseDatabase, DatabaseConfig
from evidence_engine.core.storage.exceptions import ConfigurationError, ConnectionError

logger = logging.getLogger(__name__)

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def upsert_insert(session: AsyncSession, model: Any) -> Any:
    """
    Return a dialect-specific INSERT for model that supports on_conflict_do_update.

    PostgreSQL and SQLite share the same ON CONFLICT API in SQLAlchemy, so
    callers can write one upsert for both.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise ConfigurationError(f"Upserts are not supported on dialect '{dialect}'")


class Database(BaseDatabase):
    """
    PostgreSQL database implementation using SQLAlchemy async.

    Usage:
        db = Database(config)
        await db.connect()

        async with db.session() as session:
            result = await session.execute(text("SELECT 1"))
            row = result.scalar()

        await db.disconnect()
    """

    def __init__(self, config: DatabaseConfig):
        """Initialize database with configuration."""
        super().__init__(config)
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    def _build_url(self) -> str:
        """Build database connection URL."""
        if self.config.url:
            return self.config.url
        return (
            f"postgresql+asyncpg://{self.config.user}:{self.config.password}"
            f"@{self.config.host}:{self.config.port}/{self.config.database}"
        )

    async def connect(self) -> None:
        """Establish connection pool to the database."""
        if self._engine is not None:
            return

        try:
            url = self._build_url()
            engine_kwargs: dict[str, Any] = {"echo": self.config.echo}
            if not url.startswith("sqlite"):
                engine_kwargs["pool_size"] = self.config.pool_size
                engine_kwargs["max_overflow"] = self.config.pool_max_overflow

            self._engine = create_async_engine(url, **engine_kwargs)
            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            logger.info(f"Connected to database ({self._engine.dialect.name})")
        except Exception as e:
            raise ConnectionError(f"Failed to connect to database: {e}") from e

    async def disconnect(self) -> None:
        """Close all database connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Disconnected from database")

    async def health_check(self) -> bool:
        """Check if database is reachable by executing a simple query."""
        if self._engine is None:
            return False

        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional session scope.

        Commits on normal exit, rolls back and re-raises on error.
        """
        if self._session_factory is None:
            raise ConnectionError("Database not connected. Call connect() first.")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all tables defined in models."""
        if self._engine is None:
            raise ConnectionError("Database not connected. Call connect() first.")

        # Register every model with Base.metadata before create_all
        import evidence_engine.core.models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created")

    async def drop_tables(self) -> None:
        """Drop all tables. Use with caution."""
        if self._engine is None:
            raise ConnectionError("Database not connected. Call connect() first.")

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            logger.info("Database tables dropped")


def _load_config() -> DatabaseConfig:
    """Load database configuration from config files."""
    config = get_config()
    postgres_config = config.get("postgres", {})

    if not postgres_config:
        raise ConfigurationError("PostgreSQL configuration not found")

    return DatabaseConfig(
        host=postgres_config.get("host", "localhost"),
        port=int(postgres_config.get("port", 5432)),
        database=postgres_config.get("database", "evidence"),
        user=postgres_config.get("user", "evidence"),
        password=postgres_config.get("password", "evidence"),
        pool_size=int(postgres_config.get("pool_size", 5)),
        pool_max_overflow=int(postgres_config.get("pool_max_overflow", 10)),
        echo=bool(postgres_config.get("echo", False)),
        url=postgres_config.get("url") or None,
    )


# Global database instance
_db_instance: Database | None = None


async def get_db() -> Database:
    """
    Get the global database instance.

    Creates and connects the instance on first call.
    Subsequent calls return the same instance.
    """
    global _db_instance

    if _db_instance is None:
        config = _load_config()
        _db_instance = Database(config)
        await _db_instance.connect()

    return _db_instance


async def close_db() -> None:
    """Close the global database instance."""
    global _db_instance

    if _db_instance is not None:
        await _db_instance.disconnect()
        _db_instance = None
