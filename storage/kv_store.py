"""Durable JSON key-value store backed by a local SQLite file."""
from __future__ import annotations

import json
from typing import Any, Callable, List, Optional

from sqlmodel import SQLModel, Session, create_engine, select

from core.settings import KV_DB_PATH
from datetime_utils import utc_now
from models.kv_entry import KeyValueEntry


KV_TABLES = [KeyValueEntry.__table__]

_kv_engine = None


def get_kv_engine():
    """Return (and lazily create) the SQLAlchemy engine for the key-value store."""

    global _kv_engine
    if _kv_engine is None:
        KV_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _kv_engine = create_engine(f"sqlite:///{KV_DB_PATH.as_posix()}", echo=False)
    return _kv_engine


def init_kv_store(engine=None) -> None:
    """Create the key-value table if it does not exist yet."""

    actual_engine = engine or get_kv_engine()
    SQLModel.metadata.create_all(actual_engine, tables=KV_TABLES)


def get_kv_session() -> Session:
    return Session(get_kv_engine())


def _serialise(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _deserialise(payload: Optional[str]) -> Any:
    if payload is None:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return None


class SqlKeyValueStore:
    """Async facade over the ``keyvalueentry`` table.

    Values are any JSON-serialisable object. Reads of a corrupt value return
    ``None``; write errors propagate to the caller.
    """

    def __init__(self, session_factory: Callable[[], Session] = get_kv_session):
        self._session_factory = session_factory

    async def get(self, key: str) -> Any:
        with self._session_factory() as session:
            row = session.get(KeyValueEntry, key)
            return _deserialise(row.value_json if row else None)

    async def set(self, key: str, value: Any) -> None:
        payload = _serialise(value)
        with self._session_factory() as session:
            row = session.get(KeyValueEntry, key)
            if row is None:
                row = KeyValueEntry(key=key, value_json=payload, updated_at=utc_now())
            else:
                row.value_json = payload
                row.updated_at = utc_now()
            session.add(row)
            session.commit()

    async def remove(self, key: str) -> None:
        with self._session_factory() as session:
            row = session.get(KeyValueEntry, key)
            if row is not None:
                session.delete(row)
                session.commit()

    async def list_keys(self) -> List[str]:
        with self._session_factory() as session:
            return list(session.exec(select(KeyValueEntry.key).order_by(KeyValueEntry.key)))


__all__ = [
    "KV_TABLES",
    "SqlKeyValueStore",
    "get_kv_engine",
    "get_kv_session",
    "init_kv_store",
]
