"""Shared fixtures for marketsense tests."""

import asyncio

import pytest

from marketsense.config import PipelineSettings
from marketsense.constants import (
    REQUIREMENT_ANALYSIS_TABLE,
    REQUIREMENTS_TABLE,
    STAGE_NAMES,
)
from marketsense.remote import InMemoryRemoteBackend
from marketsense.store import InMemoryProgressStore


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays and only yields."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


async def succeed(payload):
    return {"success": True}


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    return PipelineSettings(summarize_max_attempts=5)


@pytest.fixture
def store():
    return InMemoryProgressStore()


@pytest.fixture
def backend():
    """Remote backend with requirement ``REQ-1`` and five succeeding stages."""
    backend = InMemoryRemoteBackend()
    backend.seed(
        REQUIREMENTS_TABLE,
        {
            "id": "REQ-1",
            "project_name": "Budget Buddy",
            "industry_type": "Fintech",
            "req_id": "REQ-2024-001",
        },
    )
    backend.seed(
        REQUIREMENT_ANALYSIS_TABLE,
        {
            "requirement_id": "REQ-1",
            "problem_statement": "Young adults struggle to track spending",
            "proposed_solution": "A budgeting app with automatic categorisation",
            "key_features": "Bank sync, alerts, goals",
        },
    )
    for stage in STAGE_NAMES:
        backend.register_stage(stage, succeed)
    return backend
