"""Database helpers for the assistant core."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinassist.config import AssistantSettings, get_settings

from .models import Base, KeyValueEntry


def create_engine_from_settings(settings: Optional[AssistantSettings] = None) -> Engine:
    """Return an engine for ``settings.database_url`` with SQLite threading enabled."""

    settings = settings or get_settings()
    options = {}
    if settings.is_sqlite:
        options["connect_args"] = {"check_same_thread": False}
        if settings.database_url in {"sqlite://", "sqlite:///:memory:"}:
            options["poolclass"] = StaticPool
    return sa.create_engine(settings.database_url, **options)


def create_all_tables(engine: Engine) -> None:
    Base.metadata.create_all(engine)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Context manager yielding a SQLAlchemy session bound to *engine*."""

    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "Base",
    "KeyValueEntry",
    "create_engine_from_settings",
    "create_all_tables",
    "session_scope",
]
