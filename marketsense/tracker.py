"""Client-side progress tracking for market analysis runs."""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from .constants import (
    CURRENT_STEP_KEY_PREFIX,
    DEFAULT_STEPS,
    STATUS_KEY_PREFIX,
    STEPS_KEY_PREFIX,
)
from .contracts import STATUS_RANK, Step, StepStatus, WorkflowProgress
from .errors import StorageError
from .store import ProgressStore

logger = logging.getLogger(__name__)

_steps_adapter = TypeAdapter(List[Step])


def _invalid_reason(progress: WorkflowProgress) -> Optional[str]:
    """Why ``progress`` breaks the step model, or ``None`` when it holds."""
    if len(progress.steps) != len(DEFAULT_STEPS):
        return f"expected {len(DEFAULT_STEPS)} steps, got {len(progress.steps)}"
    if not 0 <= progress.current_step_index <= len(progress.steps):
        return f"step index {progress.current_step_index} out of range"
    processing = [s for s in progress.steps if s.status == StepStatus.PROCESSING]
    if len(processing) > 1:
        return f"{len(processing)} steps processing"
    for index, step in enumerate(progress.steps):
        if step.current is not None and step.current < 0:
            return f"step {index} current {step.current} is negative"
        if step.current is not None and step.total is not None and step.current > step.total:
            return f"step {index} current {step.current} exceeds total {step.total}"
    return None


class ProgressTracker:
    """Owns the ordered step list of one workflow and mirrors it to a store.

    Every mutation is written through to ``store`` before the call returns.
    Store failures are logged and swallowed; the in-memory
    :class:`WorkflowProgress` stays authoritative for the rest of the session.
    """

    def __init__(self, workflow_id: str, store: ProgressStore) -> None:
        if not workflow_id:
            raise ValueError("workflow_id is required")
        self.workflow_id = workflow_id
        self._store = store
        self.progress = WorkflowProgress(workflow_id=workflow_id)

    # ------------------------------------------------------------------
    # Keys
    @property
    def status_key(self) -> str:
        return STATUS_KEY_PREFIX + self.workflow_id

    @property
    def steps_key(self) -> str:
        return STEPS_KEY_PREFIX + self.workflow_id

    @property
    def current_step_key(self) -> str:
        return CURRENT_STEP_KEY_PREFIX + self.workflow_id

    # ------------------------------------------------------------------
    # Read accessors
    @property
    def steps(self) -> List[Step]:
        return self.progress.steps

    @property
    def current_step_index(self) -> int:
        return self.progress.current_step_index

    @property
    def in_progress(self) -> bool:
        return self.progress.in_progress

    @in_progress.setter
    def in_progress(self, value: bool) -> None:
        self.progress.in_progress = value

    # ------------------------------------------------------------------
    # Best-effort storage helpers
    async def _write(self, key: str, value: str) -> None:
        try:
            await self._store.set(key, value)
        except StorageError as e:
            logger.warning(f"Progress write skipped for {self.workflow_id}: {e}")

    async def _delete(self, key: str) -> None:
        try:
            await self._store.remove(key)
        except StorageError as e:
            logger.warning(f"Progress delete skipped for {self.workflow_id}: {e}")

    async def _read(self, key: str) -> Optional[str]:
        try:
            return await self._store.get(key)
        except StorageError as e:
            logger.warning(f"Progress read failed for {self.workflow_id}: {e}")
            return None

    def _dump_steps(self) -> str:
        return json.dumps(
            [step.model_dump(mode="json", exclude_none=True) for step in self.steps]
        )

    async def _persist_steps(self) -> None:
        await self._write(self.steps_key, self._dump_steps())

    # ------------------------------------------------------------------
    # Mutations
    async def update_step_status(
        self,
        index: int,
        status: StepStatus | str,
        current: Optional[int] = None,
        total: Optional[int] = None,
    ) -> None:
        """Replace step ``index`` with an updated copy and persist the list.

        ``current``/``total`` are only overwritten when supplied. A step that
        reached ``completed`` or ``failed`` never moves back to a lower status;
        such updates are logged and ignored. ``current`` is clamped to
        ``[0, total]``.
        """
        if not 0 <= index < len(self.steps):
            raise IndexError(f"Step index {index} out of range")
        status = StepStatus(status)

        step = self.steps[index]
        if STATUS_RANK[status] < STATUS_RANK[step.status] or (
            STATUS_RANK[step.status] == 2 and status != step.status
        ):
            logger.warning(
                f"Ignoring {step.status.value} -> {status.value} for step {index} "
                f"of {self.workflow_id}"
            )
            return
        if status == StepStatus.PROCESSING:
            active = self.progress.processing_index()
            if active is not None and active != index:
                logger.warning(
                    f"Ignoring processing for step {index} of {self.workflow_id}: "
                    f"step {active} is still processing"
                )
                return

        changes: dict = {"status": status}
        if total is not None:
            changes["total"] = max(total, 0)
        if current is not None:
            changes["current"] = current

        updated = step.model_copy(update=changes)
        if updated.current is not None:
            bounded = max(updated.current, 0)
            if updated.total is not None and bounded > updated.total:
                logger.debug(
                    f"Clamping step {index} current {updated.current} to total {updated.total}"
                )
                bounded = updated.total
            updated.current = bounded

        self.progress.steps = [
            updated if i == index else s for i, s in enumerate(self.steps)
        ]
        await self._persist_steps()

    async def set_current_step(self, index: int) -> None:
        if not 0 <= index <= len(self.steps):
            raise IndexError(f"Current step {index} out of range")
        self.progress.current_step_index = index
        await self._write(self.current_step_key, str(index))

    async def persist(self) -> None:
        """Write status flag, steps and current step index."""
        await self._write(self.status_key, "true" if self.in_progress else "false")
        await self._persist_steps()
        await self._write(self.current_step_key, str(self.current_step_index))

    async def start_run(self) -> None:
        """Begin a fresh run: default steps, index 0, ``in_progress`` set."""
        self.progress = WorkflowProgress(workflow_id=self.workflow_id, in_progress=True)
        await self.persist()

    async def finish_run(self, failed: bool = False) -> None:
        """End the current run locally; persisted steps are left for display."""
        self.in_progress = False
        if failed:
            await self._write(self.status_key, "false")

    async def mark_all_completed(self) -> None:
        """Show every step completed after the remote record went terminal."""
        self.progress.steps = [
            step.model_copy(
                update={
                    "status": StepStatus.COMPLETED,
                    "current": step.total if step.total is not None else step.current,
                }
            )
            for step in self.steps
        ]
        self.progress.current_step_index = len(self.steps)

    async def clear_persisted(self) -> None:
        for key in (self.status_key, self.steps_key, self.current_step_key):
            await self._delete(key)

    async def reset_progress(self) -> None:
        """Back to pending steps and index 0, with all persisted keys removed."""
        self.progress = WorkflowProgress(
            workflow_id=self.workflow_id,
            steps=[
                Step(
                    name=step.name,
                    total=step.total,
                    current=0 if step.total is not None else None,
                )
                for step in self.steps
            ],
        )
        await self.clear_persisted()

    # ------------------------------------------------------------------
    # Restore
    async def restore_if_present(self) -> bool:
        """Replace in-memory state with the persisted record, if complete.

        All three keys must be present, parse, and describe a valid run: five
        steps, at most one processing, counters within ``[0, total]`` and an
        index in range. Otherwise the current state is left untouched and
        ``False`` is returned.
        """
        status_raw = await self._read(self.status_key)
        steps_raw = await self._read(self.steps_key)
        current_raw = await self._read(self.current_step_key)
        if status_raw is None or steps_raw is None or current_raw is None:
            return False

        try:
            steps = _steps_adapter.validate_json(steps_raw)
            current_step_index = int(current_raw)
            restored = WorkflowProgress(
                workflow_id=self.workflow_id,
                steps=steps,
                current_step_index=current_step_index,
                in_progress=status_raw == "true",
            )
        except (ValidationError, ValueError) as e:
            logger.warning(f"Ignoring unreadable progress for {self.workflow_id}: {e}")
            return False

        reason = _invalid_reason(restored)
        if reason is not None:
            logger.warning(f"Ignoring progress for {self.workflow_id}: {reason}")
            return False

        self.progress = restored
        logger.info(
            f"Restored progress for {self.workflow_id} at step {restored.current_step_index}"
        )
        return True
