from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_QUERY_TOTAL, DEFAULT_SOURCE_TOTAL


class StoreConfig(BaseModel):
    """Configuration for the progress store backend."""

    url: Optional[str] = None


class SupabaseConfig(BaseModel):
    """Connection settings for the hosted data store and functions."""

    url: Optional[str] = None
    key: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3


class PipelineSettings(BaseModel):
    """Timing and fallback values for the analysis pipeline."""

    poll_interval: float = 10.0
    settle_delay: float = 3.0
    summarize_delay: float = 1.0
    completion_delay: float = 2.0
    summarize_max_attempts: int = 30
    default_query_total: int = DEFAULT_QUERY_TOTAL
    default_source_total: int = DEFAULT_SOURCE_TOTAL


class MarketSenseConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = StoreConfig()
    supabase: SupabaseConfig = SupabaseConfig()
    pipeline: PipelineSettings = PipelineSettings()


def load_config(path: Optional[str] = None) -> MarketSenseConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to MARKETSENSE_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("MARKETSENSE_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = MarketSenseConfig(**data)
    else:
        config = MarketSenseConfig()

    env_store_url = os.getenv("MARKETSENSE_STORE_URL")
    if env_store_url:
        config.store.url = env_store_url
    env_supabase_url = os.getenv("SUPABASE_URL")
    if env_supabase_url:
        config.supabase.url = env_supabase_url
    env_supabase_key = os.getenv("SUPABASE_KEY")
    if env_supabase_key:
        config.supabase.key = env_supabase_key
    return config
