"""Sequential driver for the five remote market analysis stages."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from .config import PipelineSettings
from .constants import (
    ANALYZE_STAGE,
    GENERATE_QUERIES_STAGE,
    PROCESS_QUERIES_STAGE,
    QUERIES_TABLE,
    SCRAPE_STAGE,
    SOURCES_TABLE,
    SUMMARIZE_STAGE,
)
from .contracts import PipelineContext, PipelineRun, StageResult, StepStatus
from .errors import MarketSenseError, StageInvocationError, StalledError
from .remote import RemoteBackend
from .tracker import ProgressTracker
from .utils.retry import Sleep

logger = logging.getLogger(__name__)

QUERIES_STEP = 1
SCRAPE_STEP = 2
SUMMARIZE_STEP = 3


class PipelineOrchestrator:
    """Runs generate → process → scrape → summarize → analyze for one requirement.

    The tracker is updated and persisted at every stage boundary. A failing
    stage marks its step ``failed`` and aborts the run; later stages are never
    invoked. The orchestrator does not lock: callers reset progress before a
    new run and must not start two runs for the same workflow.
    """

    def __init__(
        self,
        tracker: ProgressTracker,
        backend: RemoteBackend,
        settings: Optional[PipelineSettings] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._tracker = tracker
        self._backend = backend
        self._settings = settings or PipelineSettings()
        self._sleep = sleep

    async def run_pipeline(
        self, workflow_id: str, context: Optional[PipelineContext] = None
    ) -> PipelineRun:
        """Drive all five stages to completion.

        Raises:
            StageInvocationError: A stage raised or returned ``success: false``.
            StalledError: Summarization still reported remaining work after
                ``summarize_max_attempts`` re-invocations.
        """
        if not workflow_id:
            raise ValueError("workflow_id is required")
        if workflow_id != self._tracker.workflow_id:
            raise ValueError(
                f"Tracker belongs to {self._tracker.workflow_id}, not {workflow_id}"
            )
        context = context or PipelineContext()
        run = PipelineRun(workflow_id=workflow_id, steps=[])

        await self._tracker.start_run()
        logger.info(f"Starting market analysis pipeline for {workflow_id}")

        # Stage 1: search queries
        result = await self._run_stage(
            0,
            GENERATE_QUERIES_STAGE,
            {
                "requirementId": workflow_id,
                "industryType": context.industry_type,
                "problemStatement": context.problem_statement,
                "proposedSolution": context.proposed_solution,
                "keyFeatures": context.key_features,
            },
        )
        run.results[GENERATE_QUERIES_STAGE] = result.model_dump()
        total_queries = await self._discover_total(
            QUERIES_TABLE, workflow_id, self._settings.default_query_total
        )
        await self._tracker.update_step_status(
            QUERIES_STEP, StepStatus.PENDING, 0, total_queries
        )
        await self._complete_step(0)

        # Stage 2: run queries to collect research sources
        result = await self._run_stage(
            QUERIES_STEP, PROCESS_QUERIES_STAGE, {"requirementId": workflow_id}
        )
        run.results[PROCESS_QUERIES_STAGE] = result.model_dump()
        total_sources = await self._discover_total(
            SOURCES_TABLE, workflow_id, self._settings.default_source_total
        )
        await self._tracker.update_step_status(
            SCRAPE_STEP, StepStatus.PENDING, 0, total_sources
        )
        await self._tracker.update_step_status(
            SUMMARIZE_STEP, StepStatus.PENDING, 0, total_sources
        )
        await self._complete_step(QUERIES_STEP)

        # Stage 3: scrape sources
        result = await self._run_stage(
            SCRAPE_STEP, SCRAPE_STAGE, {"requirementId": workflow_id}
        )
        run.results[SCRAPE_STAGE] = result.model_dump()
        await self._complete_step(SCRAPE_STEP)

        # Stage 4: summarize until nothing remains
        result, attempts = await self._summarize(workflow_id, total_sources)
        run.results[SUMMARIZE_STAGE] = result.model_dump()
        run.summarize_attempts = attempts
        await self._complete_step(SUMMARIZE_STEP)

        # Stage 5: final analysis
        result = await self._run_stage(
            4,
            ANALYZE_STAGE,
            {
                "requirementId": workflow_id,
                "projectName": context.project_name,
                "industry": context.industry_type,
                "problemStatement": context.problem_statement,
                "proposedSolution": context.proposed_solution,
            },
        )
        run.results[ANALYZE_STAGE] = result.model_dump()
        await self._complete_step(4)

        logger.info(f"Market analysis pipeline finished for {workflow_id}")
        run.steps = [step.model_copy() for step in self._tracker.steps]

        await self._sleep(self._settings.completion_delay)
        await self._tracker.finish_run()
        return run

    # ------------------------------------------------------------------
    async def _invoke(
        self, index: int, stage_name: str, payload: Dict[str, Any]
    ) -> StageResult:
        """Invoke one stage; any failure marks the step failed and ends the run."""
        try:
            body = await self._backend.invoke(stage_name, payload)
            result = StageResult.model_validate(body or {})
        except StageInvocationError as e:
            await self._fail(index, stage_name, e.message)
            raise StageInvocationError(stage_name, e.message, step_index=index) from e
        except Exception as e:
            await self._fail(index, stage_name, str(e))
            raise StageInvocationError(stage_name, str(e), step_index=index) from e

        if not result.success:
            message = result.message or f"Failed to run {stage_name}"
            await self._fail(index, stage_name, message)
            raise StageInvocationError(stage_name, message, step_index=index)
        return result

    async def _run_stage(
        self, index: int, stage_name: str, payload: Dict[str, Any]
    ) -> StageResult:
        await self._tracker.set_current_step(index)
        await self._tracker.update_step_status(index, StepStatus.PROCESSING)
        logger.info(f"Stage {stage_name} started for {self._tracker.workflow_id}")
        return await self._invoke(index, stage_name, payload)

    async def _summarize(
        self, workflow_id: str, total: int
    ) -> tuple[StageResult, int]:
        payload = {"requirementId": workflow_id}
        result = await self._run_stage(SUMMARIZE_STEP, SUMMARIZE_STAGE, payload)
        attempts = 0
        while result.remaining and result.remaining > 0:
            if attempts >= self._settings.summarize_max_attempts:
                message = (
                    f"{result.remaining} items still pending after "
                    f"{attempts} additional attempts"
                )
                await self._fail(SUMMARIZE_STEP, SUMMARIZE_STAGE, message)
                raise StalledError(SUMMARIZE_STAGE, message, step_index=SUMMARIZE_STEP)

            processed = total - result.remaining
            await self._tracker.update_step_status(
                SUMMARIZE_STEP, StepStatus.PROCESSING, processed, total
            )
            logger.debug(
                f"Summarized {processed}/{total} sources for {workflow_id}, "
                f"{result.remaining} remaining"
            )
            await self._sleep(self._settings.summarize_delay)
            attempts += 1
            result = await self._invoke(SUMMARIZE_STEP, SUMMARIZE_STAGE, payload)
        return result, attempts

    async def _complete_step(self, index: int) -> None:
        step = self._tracker.steps[index]
        await self._tracker.update_step_status(
            index, StepStatus.COMPLETED, current=step.total
        )
        await self._tracker.set_current_step(index + 1)

    async def _fail(self, index: int, stage_name: str, message: str) -> None:
        logger.error(
            f"Stage {stage_name} failed for {self._tracker.workflow_id}: {message}"
        )
        await self._tracker.update_step_status(index, StepStatus.FAILED)
        await self._tracker.finish_run(failed=True)

    async def _discover_total(self, table: str, workflow_id: str, fallback: int) -> int:
        """Row count for ``workflow_id`` in ``table``; ``fallback`` if unavailable."""
        try:
            count = await self._backend.count_rows(table, {"requirement_id": workflow_id})
        except MarketSenseError as e:
            logger.warning(f"Count of {table} failed for {workflow_id}: {e}")
            return fallback
        return count or fallback
