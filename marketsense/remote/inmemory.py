"""In-memory remote backend for testing."""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import RemoteError, StageInvocationError
from .base import Filters, RemoteBackend

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


def _matches(row: Dict[str, Any], filters: Optional[Filters]) -> bool:
    return all(row.get(column) == value for column, value in (filters or {}).items())


class InMemoryRemoteBackend(RemoteBackend):
    """Tables as lists of dicts plus registered stage and RPC handlers.

    Every call is recorded in ``calls`` as ``(stage_name, payload)`` so tests
    can assert on invocation order.
    """

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.calls: List[tuple[str, Dict[str, Any]]] = []
        self._stages: Dict[str, Handler] = {}
        self._rpcs: Dict[str, Handler] = {}

    # ------------------------------------------------------------------
    def register_stage(self, stage_name: str, handler: Handler) -> None:
        self._stages[stage_name] = handler

    def register_rpc(self, function: str, handler: Handler) -> None:
        self._rpcs[function] = handler

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        self.tables[table].extend(dict(row) for row in rows)

    # ------------------------------------------------------------------
    async def invoke(self, stage_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((stage_name, payload))
        handler = self._stages.get(stage_name)
        if handler is None:
            raise StageInvocationError(stage_name, "function not found")
        return await handler(payload)

    async def count_rows(self, table: str, filters: Filters) -> int:
        return sum(1 for row in self.tables[table] if _matches(row, filters))

    async def fetch_one(
        self,
        table: str,
        filters: Filters,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Dict[str, Any]]:
        rows = await self.fetch_all(table, filters, order, descending)
        return rows[0] if rows else None

    async def fetch_all(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        rows = [dict(row) for row in self.tables[table] if _matches(row, filters)]
        if order:
            rows.sort(key=lambda row: row.get(order) or "", reverse=descending)
        return rows

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = {
            "id": str(uuid.uuid4()),
            "created_at": datetime.now(timezone.utc).isoformat(),
            **row,
        }
        self.tables[table].append(stored)
        return dict(stored)

    async def update(
        self, table: str, values: Dict[str, Any], filters: Filters
    ) -> List[Dict[str, Any]]:
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(values)
                updated.append(dict(row))
        return updated

    async def rpc(self, function: str, args: Dict[str, Any]) -> Any:
        handler = self._rpcs.get(function)
        if handler is None:
            raise RemoteError(f"Function {function} not found")
        return await handler(args)
