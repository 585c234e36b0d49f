"""In-memory progress store for testing."""

from __future__ import annotations

from typing import Dict, Optional

from .base import ProgressStore


class InMemoryProgressStore(ProgressStore):
    """Keep progress in a process-local dict.

    Useful for tests or when no store is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)
