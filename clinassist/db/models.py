"""SQLAlchemy table backing the durable key-value store."""

from __future__ import annotations

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class KeyValueEntry(Base):
    """One JSON document addressed by ``(namespace, key)``."""

    __tablename__ = "kv_entries"

    namespace = sa.Column(String(64), primary_key=True)
    key = sa.Column(String(255), primary_key=True)
    payload = sa.Column(Text, nullable=False)
    updated_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


sa.Index("idx_kv_entries_updated", KeyValueEntry.updated_at)


__all__ = ["Base", "KeyValueEntry"]
