"""Requirement flow tracking across the product stages."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .constants import FLOW_TRACKING_TABLE, MARKET_ANALYSIS_TABLE
from .errors import RemoteError
from .remote import RemoteBackend

logger = logging.getLogger(__name__)


class FlowStage(str, Enum):
    REQUIREMENT_CAPTURE = "requirement_capture"
    ANALYSIS = "analysis"
    MARKET_SENSE = "market_sense"
    VALIDATOR = "validator"
    CASE_GENERATOR = "case_generator"
    BRD = "brd"


STAGE_ORDER = list(FlowStage)

# status value that marks each stage done, keyed by stage
STAGE_COMPLETE_STATUS = {
    FlowStage.REQUIREMENT_CAPTURE: ("requirement_capture_status", "complete"),
    FlowStage.ANALYSIS: ("analysis_status", "complete"),
    FlowStage.MARKET_SENSE: ("market_sense_status", "market_complete"),
    FlowStage.VALIDATOR: ("validator_status", "validation_complete"),
    FlowStage.CASE_GENERATOR: ("case_generator_status", "case_complete"),
}

STAGE_DESCRIPTIONS = {
    FlowStage.REQUIREMENT_CAPTURE: "Requirement Capture",
    FlowStage.ANALYSIS: "AI Requirement Analysis",
    FlowStage.MARKET_SENSE: "MarketSenseAI",
    FlowStage.VALIDATOR: "AI Validator",
    FlowStage.CASE_GENERATOR: "AI Case Generator",
    FlowStage.BRD: "SmartSignoff AI",
}


class FlowStatus(BaseModel):
    """A ``requirement_flow_tracking`` row."""

    model_config = ConfigDict(extra="allow")

    requirement_id: str
    current_stage: Optional[str] = None
    requirement_capture_status: Optional[str] = None
    analysis_status: Optional[str] = None
    market_sense_status: Optional[str] = None
    validator_status: Optional[str] = None
    case_generator_status: Optional[str] = None
    brd_status: Optional[str] = None
    updated_at: Optional[str] = None

    def stage(self) -> Optional[FlowStage]:
        try:
            return FlowStage(self.current_stage)
        except ValueError:
            return None


def stage_description(stage: FlowStage | str) -> str:
    try:
        return STAGE_DESCRIPTIONS[FlowStage(stage)]
    except ValueError:
        return "Unknown Stage"


def status_message(status: Optional[FlowStatus]) -> str:
    """User-facing summary of where a requirement is in the flow."""
    if status is None:
        return "Unknown status"

    stage = status.stage()
    if stage is FlowStage.REQUIREMENT_CAPTURE:
        if status.requirement_capture_status == "draft":
            return "Draft requirement - Please complete and submit your requirement"
        return "Requirement complete - Ready for AI analysis"
    if stage is FlowStage.ANALYSIS:
        if status.analysis_status == "draft":
            return "AI analysis in progress - Structuring your requirement"
        return "Analysis complete - Ready for market research"
    if stage is FlowStage.MARKET_SENSE:
        if status.market_sense_status == "market_draft":
            return "Market research in progress - Gathering insights"
        return "Market research complete - Ready for validation"
    if stage is FlowStage.VALIDATOR:
        if status.validator_status == "validation_draft":
            return "Validation in progress - Evaluating market readiness"
        return "Validation complete - Ready for case generation"
    if stage is FlowStage.CASE_GENERATOR:
        if status.case_generator_status == "case_draft":
            return "Case generation in progress - Creating user stories and test cases"
        return "Case generation complete - Ready for BRD creation"
    if stage is FlowStage.BRD:
        return {
            "draft": "BRD creation in progress",
            "ready": "BRD ready for review and signoff",
            "signed_off": "BRD signed off - Process complete",
            "rejected": "BRD rejected - Please review feedback",
        }.get(status.brd_status or "", "Unknown BRD status")
    return "Unknown stage"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RequirementFlowService:
    """Read and advance a requirement through the product flow stages."""

    def __init__(self, backend: RemoteBackend) -> None:
        self._backend = backend

    async def get_status(self, requirement_id: str) -> Optional[FlowStatus]:
        try:
            row = await self._backend.fetch_one(
                FLOW_TRACKING_TABLE, {"requirement_id": requirement_id}
            )
        except RemoteError as e:
            logger.error(f"Error fetching requirement flow status: {e}")
            return None
        return FlowStatus.model_validate(row) if row else None

    async def can_proceed_to_stage(
        self, requirement_id: str, target: FlowStage | str
    ) -> bool:
        """Whether ``target`` is reachable without skipping an unfinished stage."""
        status = await self.get_status(requirement_id)
        if status is None:
            return False
        current = status.stage()
        if current is None:
            return False

        target = FlowStage(target)
        current_index = STAGE_ORDER.index(current)
        target_index = STAGE_ORDER.index(target)

        if target_index > current_index + 1:
            return False
        if target_index > current_index:
            field, done = STAGE_COMPLETE_STATUS.get(current, (None, None))
            return field is not None and getattr(status, field) == done
        return True

    async def complete_stage(self, requirement_id: str, stage: FlowStage | str) -> bool:
        """Mark ``stage`` complete through its SQL function.

        Validator and case generator fall back to a direct row update when the
        function call fails.
        """
        stage = FlowStage(stage)
        try:
            await self._backend.rpc(f"complete_{stage.value}", {"req_id": requirement_id})
            return True
        except RemoteError as e:
            if stage not in (FlowStage.VALIDATOR, FlowStage.CASE_GENERATOR):
                logger.error(f"Error completing {stage.value} for {requirement_id}: {e}")
                return False
            logger.warning(
                f"RPC complete_{stage.value} failed, falling back to direct update: {e}"
            )

        if stage is FlowStage.VALIDATOR:
            values = {
                "validator_status": "validation_complete",
                "current_stage": FlowStage.CASE_GENERATOR.value,
                "case_generator_status": "case_draft",
            }
        else:
            # completing case generation does not advance to the BRD stage
            values = {"case_generator_status": "case_complete"}
        values["updated_at"] = _now()

        try:
            await self._backend.update(
                FLOW_TRACKING_TABLE, values, {"requirement_id": requirement_id}
            )
        except RemoteError as e:
            logger.error(
                f"Error completing {stage.value} (direct update) for {requirement_id}: {e}"
            )
            return False
        return True

    async def navigate_to_stage(self, requirement_id: str, target: FlowStage | str) -> bool:
        """Move the requirement's view to ``target`` if the flow allows it."""
        target = FlowStage(target)
        if not await self.can_proceed_to_stage(requirement_id, target):
            logger.info(
                f"Cannot navigate {requirement_id} to {target.value}: current stage incomplete"
            )
            return False

        if target is FlowStage.MARKET_SENSE:
            await self._enter_market_sense(requirement_id)
        return True

    async def _enter_market_sense(self, requirement_id: str) -> None:
        try:
            existing = await self._backend.fetch_one(
                MARKET_ANALYSIS_TABLE, {"requirement_id": requirement_id}
            )
            if existing is None:
                logger.info(f"Creating new market_analysis record for {requirement_id}")
                await self._backend.insert(
                    MARKET_ANALYSIS_TABLE,
                    {
                        "requirement_id": requirement_id,
                        "status": "Draft",
                        "created_at": _now(),
                        "updated_at": _now(),
                    },
                )
        except RemoteError as e:
            logger.error(f"Error creating market_analysis record: {e}")

        try:
            await self._backend.update(
                FLOW_TRACKING_TABLE,
                {
                    "current_stage": FlowStage.MARKET_SENSE.value,
                    "market_sense_status": "in_progress",
                    "updated_at": _now(),
                },
                {"requirement_id": requirement_id},
            )
        except RemoteError as e:
            logger.error(f"Error updating flow tracking for market_sense: {e}")
