"""SQLite implementation of the progress store."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, Optional

from ..errors import StorageError
from .base import ProgressStore


class SQLiteProgressStore(ProgressStore):
    """Persist progress keys in a single SQLite table."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS progress_entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    # ------------------------------------------------------------------
    # Store API
    async def get(self, key: str) -> Optional[str]:
        try:
            row = await asyncio.to_thread(
                self._fetchone,
                "SELECT value FROM progress_entries WHERE key = ?",
                key,
            )
        except sqlite3.Error as e:
            raise StorageError(f"SQLite read failed for {key}: {e}") from e
        return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                """
                INSERT INTO progress_entries (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                key,
                value,
            )
        except sqlite3.Error as e:
            raise StorageError(f"SQLite write failed for {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                "DELETE FROM progress_entries WHERE key = ?",
                key,
            )
        except sqlite3.Error as e:
            raise StorageError(f"SQLite delete failed for {key}: {e}") from e

    async def close(self) -> None:
        self._conn.close()
