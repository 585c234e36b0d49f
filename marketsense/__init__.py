"""marketsense: progress-tracked market analysis pipeline for product requirements."""

from .config import MarketSenseConfig, PipelineSettings, load_config
from .contracts import PipelineContext, Step, StepStatus, WorkflowProgress
from .errors import (
    MarketSenseError,
    PollError,
    StageInvocationError,
    StalledError,
    StorageError,
)
from .orchestrator import PipelineOrchestrator
from .poller import CompletionPoller
from .remote import get_backend
from .session import AnalysisSession
from .store import get_store
from .tracker import ProgressTracker

__version__ = "0.1.0"
__all__ = [
    "AnalysisSession",
    "CompletionPoller",
    "MarketSenseConfig",
    "MarketSenseError",
    "PipelineContext",
    "PipelineOrchestrator",
    "PipelineSettings",
    "PollError",
    "ProgressTracker",
    "StageInvocationError",
    "StalledError",
    "Step",
    "StepStatus",
    "StorageError",
    "WorkflowProgress",
    "get_backend",
    "get_store",
    "load_config",
]
