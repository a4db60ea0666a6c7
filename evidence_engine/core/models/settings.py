"""
SQLAlchemy model for runtime settings.

Key/value rows that can change without a deploy: sync scope defaults,
analysis model selection, and the worker heartbeat cell.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.core.storage.postgres import Base, JSONType
from evidence_engine.core.utils.time import utcnow_naive


class Setting(Base):
    """
    A runtime setting stored as a JSON value.

    Values are wrapped as {"value": actual_value} so that scalars, lists
    and timestamps all fit the same column.
    """

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow_naive, onupdate=utcnow_naive, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Setting(key='{self.key}', value={self.value})>"
