"""Remote backend factory."""

from __future__ import annotations

from typing import Optional

from ..config import MarketSenseConfig, load_config
from .base import RemoteBackend
from .inmemory import InMemoryRemoteBackend


def get_backend(config: Optional[MarketSenseConfig] = None) -> RemoteBackend:
    """Return a Supabase backend when configured, otherwise an in-memory one."""

    config = config or load_config()
    supabase = config.supabase
    if supabase.url and supabase.key:
        from .supabase import SupabaseBackend

        return SupabaseBackend(
            url=supabase.url,
            key=supabase.key,
            timeout=supabase.timeout,
            max_retries=supabase.max_retries,
        )
    return InMemoryRemoteBackend()


__all__ = ["RemoteBackend", "InMemoryRemoteBackend", "get_backend"]
