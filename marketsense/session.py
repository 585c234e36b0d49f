"""Per-requirement wiring of tracker, orchestrator, poller and loader."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import PipelineSettings
from .contracts import MarketAnalysisState, PipelineContext, PipelineRun, RemoteWorkflowRecord
from .loader import RequirementDataLoader
from .orchestrator import PipelineOrchestrator
from .poller import CompletionPoller
from .remote import RemoteBackend
from .store import ProgressStore
from .tracker import ProgressTracker
from .utils.retry import Sleep

logger = logging.getLogger(__name__)


class AnalysisSession:
    """Everything one market analysis view needs for a single requirement.

    ``state`` holds the last loaded remote rows; ``tracker.progress`` holds the
    local step list.
    """

    def __init__(
        self,
        workflow_id: str,
        store: ProgressStore,
        backend: RemoteBackend,
        settings: Optional[PipelineSettings] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.workflow_id = workflow_id
        self.settings = settings or PipelineSettings()
        self.backend = backend
        self.tracker = ProgressTracker(workflow_id, store)
        self.loader = RequirementDataLoader(backend, store)
        self.orchestrator = PipelineOrchestrator(
            self.tracker, backend, self.settings, sleep=sleep
        )
        self.poller = CompletionPoller(
            self.tracker,
            backend,
            self.settings,
            on_settled=self._on_settled,
            sleep=sleep,
        )
        self.state: Optional[MarketAnalysisState] = None

    async def restore(self) -> bool:
        """Restore persisted progress and reconcile it against the remote record.

        Returns ``True`` when a run is still in progress afterwards. A record
        that is already terminal clears local state instead of resuming.
        """
        if not await self.tracker.restore_if_present():
            return False
        if not self.tracker.in_progress:
            return False

        record = await self._fetch_record()
        if record is not None and record.is_completed():
            logger.info(f"Stale progress for {self.workflow_id}: analysis already completed")
            await self.tracker.mark_all_completed()
            await self.tracker.clear_persisted()
            self.tracker.in_progress = False
            return False
        if record is not None and record.is_failed():
            logger.info(f"Stale progress for {self.workflow_id}: analysis failed remotely")
            await self.tracker.clear_persisted()
            self.tracker.in_progress = False
            return False
        return True

    async def _fetch_record(self) -> Optional[RemoteWorkflowRecord]:
        try:
            return await self.poller.fetch_record()
        except Exception as e:
            logger.warning(f"Reconciliation fetch failed for {self.workflow_id}: {e}")
            return None

    async def refresh(self) -> MarketAnalysisState:
        """Re-run the data fetch for this requirement."""
        self.state = await self.loader.fetch(self.workflow_id, on_ongoing=self.restore)
        return self.state

    async def start_analysis(
        self, context: Optional[PipelineContext] = None
    ) -> PipelineRun:
        """Reset progress, then run the pipeline in this process.

        Persisted keys survive a successful run; the next :meth:`refresh`
        reconciles them against the completed record and clears them.
        """
        if context is None:
            state = self.state or await self.refresh()
            context = state.pipeline_context()

        await self.poller.stop()
        await self.tracker.reset_progress()
        return await self.orchestrator.run_pipeline(self.workflow_id, context)

    async def watch(self) -> None:
        """Poll a run started elsewhere until it settles or stops being in progress."""
        if self.tracker.in_progress:
            await self.poller.start()

    async def reconcile_and_reset(self) -> MarketAnalysisState:
        """Drop all local progress and reload from the remote source of truth.

        In-flight remote calls are abandoned, not cancelled.
        """
        await self.poller.stop()
        await self.tracker.reset_progress()
        return await self.refresh()

    async def _on_settled(self, record: RemoteWorkflowRecord) -> None:
        logger.info(f"Analysis for {self.workflow_id} settled, reloading view data")
        await self.refresh()
