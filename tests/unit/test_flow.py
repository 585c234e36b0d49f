import pytest

from marketsense.constants import FLOW_TRACKING_TABLE, MARKET_ANALYSIS_TABLE
from marketsense.flow import (
    FlowStage,
    FlowStatus,
    RequirementFlowService,
    stage_description,
    status_message,
)


def _seed_flow(backend, **fields):
    backend.seed(FLOW_TRACKING_TABLE, {"requirement_id": "REQ-1", **fields})


@pytest.mark.asyncio
async def test_get_status(backend):
    _seed_flow(backend, current_stage="analysis", analysis_status="complete")
    service = RequirementFlowService(backend)

    status = await service.get_status("REQ-1")

    assert status.stage() is FlowStage.ANALYSIS
    assert status.analysis_status == "complete"
    assert await service.get_status("REQ-404") is None


@pytest.mark.asyncio
async def test_can_proceed_only_after_current_stage_completes(backend):
    _seed_flow(backend, current_stage="analysis", analysis_status="draft")
    service = RequirementFlowService(backend)

    assert await service.can_proceed_to_stage("REQ-1", "requirement_capture") is True
    assert await service.can_proceed_to_stage("REQ-1", "analysis") is True
    assert await service.can_proceed_to_stage("REQ-1", "market_sense") is False
    assert await service.can_proceed_to_stage("REQ-1", "validator") is False

    backend.tables[FLOW_TRACKING_TABLE][0]["analysis_status"] = "complete"
    assert await service.can_proceed_to_stage("REQ-1", FlowStage.MARKET_SENSE) is True
    # stages cannot be skipped
    assert await service.can_proceed_to_stage("REQ-1", FlowStage.VALIDATOR) is False
    assert await service.can_proceed_to_stage("REQ-404", FlowStage.ANALYSIS) is False


@pytest.mark.asyncio
async def test_complete_stage_calls_function(backend):
    _seed_flow(backend, current_stage="market_sense")
    called = []

    async def complete_market_sense(args):
        called.append(args)

    backend.register_rpc("complete_market_sense", complete_market_sense)
    service = RequirementFlowService(backend)

    assert await service.complete_stage("REQ-1", FlowStage.MARKET_SENSE) is True
    assert called == [{"req_id": "REQ-1"}]


@pytest.mark.asyncio
async def test_complete_stage_without_fallback_fails(backend):
    _seed_flow(backend, current_stage="analysis")
    service = RequirementFlowService(backend)

    assert await service.complete_stage("REQ-1", "analysis") is False
    assert backend.tables[FLOW_TRACKING_TABLE][0].get("analysis_status") is None


@pytest.mark.asyncio
async def test_validator_falls_back_to_direct_update(backend):
    _seed_flow(backend, current_stage="validator", validator_status="validation_draft")
    service = RequirementFlowService(backend)

    assert await service.complete_stage("REQ-1", "validator") is True

    row = backend.tables[FLOW_TRACKING_TABLE][0]
    assert row["validator_status"] == "validation_complete"
    assert row["current_stage"] == "case_generator"
    assert row["case_generator_status"] == "case_draft"
    assert row["updated_at"]


@pytest.mark.asyncio
async def test_case_generator_fallback_stays_on_stage(backend):
    _seed_flow(backend, current_stage="case_generator", case_generator_status="case_draft")
    service = RequirementFlowService(backend)

    assert await service.complete_stage("REQ-1", "case_generator") is True

    row = backend.tables[FLOW_TRACKING_TABLE][0]
    assert row["case_generator_status"] == "case_complete"
    assert row["current_stage"] == "case_generator"


@pytest.mark.asyncio
async def test_unknown_stage_is_rejected(backend):
    with pytest.raises(ValueError):
        await RequirementFlowService(backend).complete_stage("REQ-1", "deploy")


@pytest.mark.asyncio
async def test_navigate_to_market_sense_creates_draft(backend):
    _seed_flow(backend, current_stage="analysis", analysis_status="complete")
    service = RequirementFlowService(backend)

    assert await service.navigate_to_stage("REQ-1", "market_sense") is True

    drafts = backend.tables[MARKET_ANALYSIS_TABLE]
    assert len(drafts) == 1
    assert drafts[0]["status"] == "Draft"
    row = backend.tables[FLOW_TRACKING_TABLE][0]
    assert row["current_stage"] == "market_sense"
    assert row["market_sense_status"] == "in_progress"

    # navigating again keeps the single draft
    assert await service.navigate_to_stage("REQ-1", "market_sense") is True
    assert len(backend.tables[MARKET_ANALYSIS_TABLE]) == 1


@pytest.mark.asyncio
async def test_navigate_refused_before_stage_completes(backend):
    _seed_flow(backend, current_stage="analysis", analysis_status="draft")
    service = RequirementFlowService(backend)

    assert await service.navigate_to_stage("REQ-1", "market_sense") is False
    assert backend.tables[MARKET_ANALYSIS_TABLE] == []


def test_status_messages():
    assert status_message(None) == "Unknown status"
    assert (
        status_message(
            FlowStatus(
                requirement_id="REQ-1",
                current_stage="market_sense",
                market_sense_status="market_draft",
            )
        )
        == "Market research in progress - Gathering insights"
    )
    assert (
        status_message(
            FlowStatus(requirement_id="REQ-1", current_stage="brd", brd_status="signed_off")
        )
        == "BRD signed off - Process complete"
    )
    assert status_message(FlowStatus(requirement_id="REQ-1", current_stage="launch")) == (
        "Unknown stage"
    )


def test_stage_descriptions():
    assert stage_description("market_sense") == "MarketSenseAI"
    assert stage_description(FlowStage.BRD) == "SmartSignoff AI"
    assert stage_description("launch") == "Unknown Stage"
