"""Detect remote completion of an analysis run by periodic re-reads."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import PipelineSettings
from .constants import MARKET_ANALYSIS_TABLE
from .contracts import RemoteWorkflowRecord, StepStatus
from .errors import PollError
from .remote import RemoteBackend
from .tracker import ProgressTracker
from .utils.retry import Sleep

logger = logging.getLogger(__name__)

SettledCallback = Callable[[RemoteWorkflowRecord], Awaitable[None]]


class CompletionPoller:
    """Re-fetch the ``market_analysis`` row while a run is in progress.

    On a completed record with content the tracker is marked complete, the
    persisted keys are cleared and, after ``settle_delay``, ``in_progress`` is
    dropped and ``on_settled`` fires exactly once. Fetch failures are logged
    and retried on the next tick at the same flat interval.
    """

    def __init__(
        self,
        tracker: ProgressTracker,
        backend: RemoteBackend,
        settings: Optional[PipelineSettings] = None,
        on_settled: Optional[SettledCallback] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._tracker = tracker
        self._backend = backend
        self._settings = settings or PipelineSettings()
        self._on_settled = on_settled
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._stopped = False
        self.settled_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def fetch_record(self) -> Optional[RemoteWorkflowRecord]:
        try:
            row = await self._backend.fetch_one(
                MARKET_ANALYSIS_TABLE,
                {"requirement_id": self._tracker.workflow_id},
                order="created_at",
                descending=True,
            )
            return RemoteWorkflowRecord.model_validate(row) if row else None
        except Exception as e:
            raise PollError(
                f"Could not fetch market analysis for {self._tracker.workflow_id}: {e}"
            ) from e

    async def check_once(self) -> bool:
        """Run one poll; return ``True`` once the record is terminal."""
        try:
            record = await self.fetch_record()
        except PollError as e:
            logger.warning(str(e))
            return False

        if record is None:
            return False
        if record.is_completed():
            await self._settle(record)
            return True
        if record.is_failed():
            await self._fail(record)
            return True
        return False

    async def _settle(self, record: RemoteWorkflowRecord) -> None:
        if self.settled_count:
            return
        workflow_id = self._tracker.workflow_id
        logger.info(f"Market analysis for {workflow_id} completed remotely")
        await self._tracker.mark_all_completed()
        await self._tracker.clear_persisted()
        await self._sleep(self._settings.settle_delay)
        self._tracker.in_progress = False
        self.settled_count += 1
        if self._on_settled is not None:
            await self._on_settled(record)

    async def _fail(self, record: RemoteWorkflowRecord) -> None:
        workflow_id = self._tracker.workflow_id
        logger.warning(f"Market analysis for {workflow_id} failed remotely")
        index = self._tracker.progress.processing_index()
        if index is not None:
            await self._tracker.update_step_status(index, StepStatus.FAILED)
        await self._tracker.clear_persisted()
        self._tracker.in_progress = False

    async def run(self) -> None:
        """Poll every ``poll_interval`` seconds until the run is no longer active."""
        while self._tracker.in_progress and not self._stopped:
            await self._sleep(self._settings.poll_interval)
            if not self._tracker.in_progress or self._stopped:
                break
            if await self.check_once():
                break
        logger.debug(f"Poller for {self._tracker.workflow_id} stopped")

    def start(self) -> asyncio.Task:
        """Run :meth:`run` in a background task."""
        if self.running:
            return self._task
        self._stopped = False
        self.settled_count = 0
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._stopped = True
        task = self._task
        self._task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
