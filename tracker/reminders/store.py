"""Local key-value storage for device-only data.

Holds the persisted auth session, reminder preferences and UI cache entries
in a local SQLite file. Values are JSON strings, mirroring a mobile
AsyncStorage: get_item / set_item / remove_item.
"""

import json
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

from config import LOCAL_STORE_DB
from logger import logger


class LocalStore:
    """SQLite-backed key-value store."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or LOCAL_STORE_DB
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is not None:
            return self._connection

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(self.db_path, timeout=10.0)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA busy_timeout=5000")
        self._init_schema(self._connection)

        logger.info(f"Local store initialized: {self.db_path}")
        return self._connection

    @staticmethod
    def _init_schema(conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            );
        """)
        conn.commit()

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def get_item(self, key: str) -> Optional[str]:
        row = self._get_connection().execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, int(time.time())),
            )

    def remove_item(self, key: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode a JSON value; a corrupt entry is logged and treated as missing."""
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt local entry {key}: {e}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
