"""Host key/value stores backing the report library's persisted JSON blob."""
from __future__ import annotations

from typing import Dict, Optional, Protocol

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store; records write count for diagnostics and tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.writes += 1

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SQLiteKeyValueStore:
    """Lightweight SQLite gateway storing one text value per key."""

    def __init__(self, database_uri: str, *, echo: bool = False) -> None:
        self._engine: Engine = create_engine(database_uri, echo=echo, future=True)
        self._ensure_schema()

    @property
    def engine(self) -> Engine:
        return self._engine

    def _ensure_schema(self) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                text(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                      key TEXT PRIMARY KEY,
                      value TEXT NOT NULL,
                      updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )
            )

    def get(self, key: str) -> Optional[str]:
        with self._engine.connect() as conn:
            row = conn.execute(text("SELECT value FROM kv_store WHERE key = :key"), {"key": key}).first()
        return None if row is None else row[0]

    def set(self, key: str, value: str) -> None:
        stmt = text(
            """
            INSERT INTO kv_store (key, value, updated_at)
            VALUES (:key, :value, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value=excluded.value,
                updated_at=CURRENT_TIMESTAMP
            """
        )
        with self._engine.begin() as conn:
            conn.execute(stmt, {"key": key, "value": value})

    def delete(self, key: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(text("DELETE FROM kv_store WHERE key = :key"), {"key": key})

    def dispose(self) -> None:
        self._engine.dispose()
