from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

SCHEMA_SQL = """
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS kv (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
"""


class StorageError(Exception):
    """A read or write against the key-value storage failed."""


class QuotaExceededError(StorageError):
    def __init__(self, key: str, needed: int, quota: int) -> None:
        super().__init__(f"Writing {key!r} needs {needed} bytes, quota is {quota}")
        self.key = key
        self.needed = needed
        self.quota = quota


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryStorage:
    def __init__(self, max_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self.max_bytes = max_bytes

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            others = sum(_entry_size(k, v) for k, v in self._items.items() if k != key)
            needed = others + _entry_size(key, value)
            if needed > self.max_bytes:
                raise QuotaExceededError(key, needed, self.max_bytes)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


@contextmanager
def connect(db_path: Path):
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


class SqliteStorage:
    """Key-value storage in a single SQLite table.

    Every call opens its own connection, so the file can be shared by a CLI
    process and the web server.
    """

    def __init__(self, db_path: Path, max_bytes: int | None = None) -> None:
        self.db_path = Path(db_path)
        self.max_bytes = max_bytes
        try:
            with connect(self.db_path) as conn:
                conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open storage at {self.db_path}: {e}") from e

    def get_item(self, key: str) -> str | None:
        try:
            with connect(self.db_path) as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot read {key!r}: {e}") from e
        if not row:
            return None
        return str(row["value"])

    def set_item(self, key: str, value: str) -> None:
        try:
            with connect(self.db_path) as conn:
                if self.max_bytes is not None:
                    row = conn.execute(
                        """
                        SELECT COALESCE(SUM(LENGTH(CAST(key AS BLOB)) + LENGTH(CAST(value AS BLOB))), 0) AS used
                        FROM kv
                        WHERE key != ?
                        """,
                        (key,),
                    ).fetchone()
                    needed = int(row["used"]) + _entry_size(key, value)
                    if needed > self.max_bytes:
                        raise QuotaExceededError(key, needed, self.max_bytes)
                conn.execute(
                    "INSERT INTO kv(key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot write {key!r}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            with connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Cannot remove {key!r}: {e}") from e
