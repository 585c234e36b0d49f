"""Durable progress storage for market analysis runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import MarketSenseConfig, load_config
from .base import ProgressStore
from .inmemory import InMemoryProgressStore
from .sqlite import SQLiteProgressStore

_store_instance: ProgressStore | None = None


def get_store(
    store_url: Optional[str] = None, config: Optional[MarketSenseConfig] = None
) -> ProgressStore:
    """Return the progress store named by a URL.

    ``store_url`` wins over ``MARKETSENSE_STORE_URL``, which wins over
    ``store.url`` in the config file. The scheme picks the backend:
    ``sqlite://<path>``, ``redis://`` or ``rediss://``, ``postgres://`` or
    ``postgresql://``. No URL at all means an in-memory store. Redis and
    Postgres drivers are imported only when their scheme is requested.

    Without arguments the store built by the previous call is reused.
    """
    global _store_instance
    if _store_instance is not None and store_url is None and config is None:
        return _store_instance

    config = config or load_config()
    store_url = (
        store_url
        or os.getenv("MARKETSENSE_STORE_URL")
        or config.store.url
    )

    if not store_url:
        _store_instance = InMemoryProgressStore()
        return _store_instance

    if store_url.startswith("sqlite://"):
        path = store_url.replace("sqlite://", "", 1)
        _store_instance = SQLiteProgressStore(path)
    elif store_url.startswith("redis://") or store_url.startswith("rediss://"):
        from .redis import RedisProgressStore

        _store_instance = RedisProgressStore(store_url)
    elif store_url.startswith("postgres://") or store_url.startswith(
        "postgresql://"
    ):
        from .postgres import PostgresProgressStore

        _store_instance = PostgresProgressStore(store_url)
    else:
        raise ValueError(f"Unsupported store backend: {store_url}")

    return _store_instance


__all__ = [
    "ProgressStore",
    "InMemoryProgressStore",
    "SQLiteProgressStore",
    "get_store",
]
