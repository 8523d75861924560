"""Durable and session-scoped key/value storage for client-side state."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class LocalStorage:
    """SQLite-backed key/value store that survives process restarts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS local_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def set_item(self, key: str, value: str) -> None:
        if not key:
            raise ValueError("Storage key must not be empty")
        updated_at = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO local_storage (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, updated_at),
            )

    def get_item(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM local_storage WHERE key = ?",
                (key,),
            ).fetchone()
        if not row:
            return None
        return row["value"]

    def remove_item(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))

    def keys_with_prefix(self, prefix: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key FROM local_storage WHERE substr(key, 1, length(?)) = ? ORDER BY key",
                (prefix, prefix),
            ).fetchall()
        return [row["key"] for row in rows]

    def set_json(self, key: str, value: Dict[str, Any]) -> None:
        self.set_item(key, json.dumps(value))

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the decoded JSON object, or None when absent or corrupt."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None


class SessionStorage:
    """In-memory store scoped to the running process, like a browser tab session."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()


__all__ = ["LocalStorage", "SessionStorage"]
