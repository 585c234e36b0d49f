"""PostgreSQL implementation of the progress store."""

from __future__ import annotations

from typing import Optional

import asyncpg

from ..errors import StorageError
from .base import ProgressStore


class PostgresProgressStore(ProgressStore):
    """Persist progress keys using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS progress_entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def get(self, key: str) -> Optional[str]:
        try:
            conn = await self._connect()
            try:
                return await conn.fetchval(
                    "SELECT value FROM progress_entries WHERE key = $1", key
                )
            finally:
                await conn.close()
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Postgres read failed for {key}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            conn = await self._connect()
            try:
                await conn.execute(
                    """
                    INSERT INTO progress_entries (key, value) VALUES ($1, $2)
                    ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
                    """,
                    key,
                    value,
                )
            finally:
                await conn.close()
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Postgres write failed for {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            conn = await self._connect()
            try:
                await conn.execute("DELETE FROM progress_entries WHERE key = $1", key)
            finally:
                await conn.close()
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Postgres delete failed for {key}: {e}") from e
