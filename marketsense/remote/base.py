"""Interface to the hosted data store and stage functions."""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Optional

Filters = Dict[str, Any]


class RemoteBackend(metaclass=abc.ABCMeta):
    """Abstract remote collaborator.

    ``invoke`` raises :class:`~marketsense.errors.StageInvocationError` on
    failure; the row helpers raise :class:`~marketsense.errors.RemoteError`.
    """

    async def close(self) -> None:
        """Release network resources (no-op by default)."""
        pass

    @abc.abstractmethod
    async def invoke(self, stage_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Call a named one-shot function with a JSON payload."""
        raise NotImplementedError

    @abc.abstractmethod
    async def count_rows(self, table: str, filters: Filters) -> int:
        """Return the number of rows in ``table`` matching ``filters``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def fetch_one(
        self,
        table: str,
        filters: Filters,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Return the first matching row in ``order``, or ``None``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def fetch_all(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        """Return all matching rows, optionally ordered by one column."""
        raise NotImplementedError

    @abc.abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert ``row`` and return it as stored."""
        raise NotImplementedError

    @abc.abstractmethod
    async def update(
        self, table: str, values: Dict[str, Any], filters: Filters
    ) -> List[Dict[str, Any]]:
        """Apply ``values`` to matching rows and return the updated rows."""
        raise NotImplementedError

    @abc.abstractmethod
    async def rpc(self, function: str, args: Dict[str, Any]) -> Any:
        """Call a stored SQL function."""
        raise NotImplementedError
