"""
Storage exceptions.

Services translate driver errors into these so that callers (the API,
the CLI and the dispatcher) never depend on SQLAlchemy exception types.
"""


class StorageError(Exception):
    """Base class for database-layer failures."""


class ConnectionError(StorageError):
    """The database is unreachable or connect() was never awaited."""


class NotFoundError(StorageError):
    """No row with the requested id (job, goal or synced record)."""


class ConfigurationError(StorageError):
    """Required configuration (database URL, credentials) is missing or invalid."""
