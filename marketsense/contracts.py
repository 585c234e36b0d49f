"""Core data contracts for the market analysis workflow."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_STEPS


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# completed and failed share the terminal rank
STATUS_RANK = {
    StepStatus.PENDING: 0,
    StepStatus.PROCESSING: 1,
    StepStatus.COMPLETED: 2,
    StepStatus.FAILED: 2,
}


class Step(BaseModel):
    """Local progress record mirroring one remote stage."""

    name: str
    status: StepStatus = StepStatus.PENDING
    current: Optional[int] = None
    total: Optional[int] = None


def default_steps() -> List[Step]:
    """Return the five pipeline steps in their initial state."""
    return [
        Step(name=name, current=0 if total is not None else None, total=total)
        for name, total in DEFAULT_STEPS
    ]


class WorkflowProgress(BaseModel):
    """Client-side progress of one analysis run."""

    workflow_id: str
    steps: List[Step] = Field(default_factory=default_steps)
    current_step_index: int = 0
    in_progress: bool = False

    def processing_index(self) -> Optional[int]:
        """Index of the step currently ``processing``, if any."""
        for index, step in enumerate(self.steps):
            if step.status == StepStatus.PROCESSING:
                return index
        return None


class StageResult(BaseModel):
    """Response body of a remote stage function."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    message: Optional[str] = None
    remaining: Optional[int] = None


class PipelineContext(BaseModel):
    """Business fields forwarded to the remote stages."""

    project_name: Optional[str] = None
    industry_type: Optional[str] = None
    problem_statement: Optional[str] = None
    proposed_solution: Optional[str] = None
    key_features: Optional[str] = None


class PipelineRun(BaseModel):
    """Outcome of a completed pipeline run."""

    workflow_id: str
    steps: List[Step]
    summarize_attempts: int = 0
    results: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class RemoteWorkflowRecord(BaseModel):
    """A ``market_analysis`` row as stored remotely."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    requirement_id: str
    status: Optional[str] = None
    market_trends: Optional[str] = None
    target_audience: Optional[str] = None
    demand_insights: Optional[str] = None
    top_competitors: Optional[str] = None
    market_gap_opportunity: Optional[str] = None
    swot_analysis: Optional[str] = None
    industry_benchmarks: Optional[str] = None
    confidence_score: Optional[float] = None
    research_sources: Optional[str] = None
    created_at: Optional[str] = None

    def is_completed(self) -> bool:
        """Terminal success with actual analysis content."""
        return self.status == "Completed" and bool(self.market_trends)

    def is_failed(self) -> bool:
        return self.status == "Failed"


class Requirement(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    project_name: Optional[str] = None
    industry_type: Optional[str] = None
    req_id: Optional[str] = None
    company_name: Optional[str] = None


class RequirementAnalysis(BaseModel):
    model_config = ConfigDict(extra="allow")

    problem_statement: Optional[str] = None
    proposed_solution: Optional[str] = None
    key_features: Optional[str] = None


class ResearchSource(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: Optional[str] = None
    url: Optional[str] = None
    requirement_id: Optional[str] = None
    snippet: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None


class MarketAnalysisState(BaseModel):
    """Everything the market analysis view needs for one requirement."""

    requirement: Requirement
    requirement_analysis: Optional[RequirementAnalysis] = None
    market_analysis: Optional[RemoteWorkflowRecord] = None
    research_sources: List[ResearchSource] = Field(default_factory=list)
    created_draft: bool = False

    def pipeline_context(self) -> PipelineContext:
        """Build the stage payload fields from the loaded rows."""
        analysis = self.requirement_analysis or RequirementAnalysis()
        return PipelineContext(
            project_name=self.requirement.project_name,
            industry_type=self.requirement.industry_type,
            problem_statement=analysis.problem_statement,
            proposed_solution=analysis.proposed_solution,
            key_features=analysis.key_features,
        )
