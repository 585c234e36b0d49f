"""Base interface for durable progress storage."""

from __future__ import annotations

import abc
from typing import Optional


class ProgressStore(metaclass=abc.ABCMeta):
    """Abstract key-value store holding client-side workflow progress.

    Implementations raise :class:`~marketsense.errors.StorageError` when the
    underlying backend fails.
    """

    async def connect(self) -> None:
        """Open connection to backend (no-op by default)."""
        pass

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
        pass

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or ``None`` when absent."""
        raise NotImplementedError

    @abc.abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        raise NotImplementedError

    @abc.abstractmethod
    async def remove(self, key: str) -> None:
        """Delete ``key``; removing a missing key is not an error."""
        raise NotImplementedError
