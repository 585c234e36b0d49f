"""Load the remote rows behind the market analysis view."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .constants import (
    MARKET_ANALYSIS_TABLE,
    REQUIREMENT_ANALYSIS_TABLE,
    REQUIREMENTS_TABLE,
    SOURCES_TABLE,
    STATUS_KEY_PREFIX,
)
from .contracts import (
    MarketAnalysisState,
    RemoteWorkflowRecord,
    Requirement,
    RequirementAnalysis,
    ResearchSource,
)
from .errors import RemoteError, RequirementNotFoundError, StorageError
from .remote import RemoteBackend
from .store import ProgressStore

logger = logging.getLogger(__name__)

OngoingCallback = Callable[[], Awaitable[Any]]


class RequirementDataLoader:
    """Fetch requirement, analysis and research rows for one requirement."""

    def __init__(self, backend: RemoteBackend, store: Optional[ProgressStore] = None) -> None:
        self._backend = backend
        self._store = store

    async def _has_ongoing_run(self, requirement_id: str) -> bool:
        if self._store is None:
            return False
        try:
            return await self._store.get(STATUS_KEY_PREFIX + requirement_id) == "true"
        except StorageError as e:
            logger.warning(f"Could not read progress flag for {requirement_id}: {e}")
            return False

    async def fetch(
        self,
        requirement_id: str,
        on_ongoing: Optional[OngoingCallback] = None,
    ) -> MarketAnalysisState:
        """Load everything for ``requirement_id``, creating a draft analysis if needed.

        When a run is flagged in progress for the requirement, ``on_ongoing`` is
        awaited first so progress can be restored and reconciled.

        Raises:
            RequirementNotFoundError: No requirement row exists.
            RemoteError: A required row could not be read or the draft insert failed.
        """
        if not requirement_id:
            raise ValueError("requirement_id is required")

        if on_ongoing is not None and await self._has_ongoing_run(requirement_id):
            logger.info(f"Found ongoing analysis process for {requirement_id}")
            await on_ongoing()

        requirement_row = await self._backend.fetch_one(
            REQUIREMENTS_TABLE, {"id": requirement_id}
        )
        if requirement_row is None:
            raise RequirementNotFoundError(requirement_id)

        analysis_row = await self._backend.fetch_one(
            REQUIREMENT_ANALYSIS_TABLE, {"requirement_id": requirement_id}
        )
        market_row = await self._backend.fetch_one(
            MARKET_ANALYSIS_TABLE,
            {"requirement_id": requirement_id},
            order="created_at",
            descending=True,
        )

        state = MarketAnalysisState(
            requirement=Requirement.model_validate(requirement_row),
            requirement_analysis=(
                RequirementAnalysis.model_validate(analysis_row) if analysis_row else None
            ),
        )

        if market_row is None:
            logger.info(f"Creating new market analysis draft for {requirement_id}")
            market_row = await self._backend.insert(
                MARKET_ANALYSIS_TABLE,
                {"requirement_id": requirement_id, "status": "Draft"},
            )
            state.created_draft = True
        else:
            state.research_sources = await self._fetch_sources(requirement_id)

        state.market_analysis = RemoteWorkflowRecord.model_validate(market_row)
        return state

    async def _fetch_sources(self, requirement_id: str) -> List[ResearchSource]:
        try:
            rows = await self._backend.fetch_all(
                SOURCES_TABLE, {"requirement_id": requirement_id}
            )
        except RemoteError as e:
            logger.error(f"Error fetching research sources for {requirement_id}: {e}")
            return []
        return [ResearchSource.model_validate(row) for row in rows]

    async def fetch_all_market_analyses(self) -> List[Dict[str, Any]]:
        """Every market analysis, newest first, joined to its requirement.

        Analyses whose requirement no longer exists are dropped.
        """
        analyses = await self._backend.fetch_all(
            MARKET_ANALYSIS_TABLE, order="created_at", descending=True
        )
        requirement_ids = {
            row["requirement_id"] for row in analyses if row.get("requirement_id")
        }
        if not requirement_ids:
            return []

        requirements = {
            row["id"]: row
            for row in await self._backend.fetch_all(REQUIREMENTS_TABLE)
            if row.get("id") in requirement_ids
        }
        return [
            {**row, "requirements": requirements[row["requirement_id"]]}
            for row in analyses
            if row.get("requirement_id") in requirements
        ]
