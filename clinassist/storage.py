"""Persistent key-value stores for operator profiles, cache entries and usage.

Every backend exposes the same three coroutines.  Durable backends raise
:class:`~clinassist.errors.PersistenceFailure`; the owning component logs the
failure and carries on with its in-memory state.
"""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Dict, Optional, Tuple

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from clinassist.db import KeyValueEntry, create_all_tables, session_scope
from clinassist.errors import PersistenceFailure


logger = structlog.get_logger(__name__)

PROFILE_NAMESPACE = "operator_profile"
CACHE_NAMESPACE = "model_cache"
USAGE_NAMESPACE = "usage"


class KeyValueStore:
    """Interface for durable JSON documents keyed by namespace and key."""

    async def load(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def save(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def delete(self, namespace: str, key: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store used for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._data: Dict[Tuple[str, str], Dict[str, Any]] = {}

    async def load(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get((namespace, key))
        return copy.deepcopy(value) if value is not None else None

    async def save(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        self._data[(namespace, key)] = copy.deepcopy(value)

    async def delete(self, namespace: str, key: str) -> None:
        self._data.pop((namespace, key), None)

    def __len__(self) -> int:
        return len(self._data)


class SQLAlchemyKeyValueStore(KeyValueStore):
    """Store documents in the ``kv_entries`` table.

    Blocking database work runs in a worker thread so the event loop keeps
    serving UI events while a write is outstanding.
    """

    def __init__(self, engine: Engine, *, create_tables: bool = True) -> None:
        self._engine = engine
        if create_tables:
            create_all_tables(engine)

    def _load_sync(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        with session_scope(self._engine) as session:
            entry = session.get(KeyValueEntry, (namespace, key))
            if entry is None:
                return None
            return json.loads(entry.payload)

    def _save_sync(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        payload = json.dumps(value, sort_keys=True)
        with session_scope(self._engine) as session:
            entry = session.get(KeyValueEntry, (namespace, key))
            if entry is None:
                session.add(KeyValueEntry(namespace=namespace, key=key, payload=payload))
            else:
                entry.payload = payload

    def _delete_sync(self, namespace: str, key: str) -> None:
        with session_scope(self._engine) as session:
            entry = session.get(KeyValueEntry, (namespace, key))
            if entry is not None:
                session.delete(entry)

    async def load(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(self._load_sync, namespace, key)
        except (SQLAlchemyError, ValueError) as exc:
            raise PersistenceFailure(f"load {namespace}/{key} failed: {exc}") from exc

    async def save(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._save_sync, namespace, key, value)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            raise PersistenceFailure(f"save {namespace}/{key} failed: {exc}") from exc

    async def delete(self, namespace: str, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete_sync, namespace, key)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"delete {namespace}/{key} failed: {exc}") from exc


__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
    "PROFILE_NAMESPACE",
    "CACHE_NAMESPACE",
    "USAGE_NAMESPACE",
]
