"""Exception hierarchy for marketsense."""

from __future__ import annotations

from typing import Optional


class MarketSenseError(Exception):
    """Base class for all marketsense errors."""


class StageInvocationError(MarketSenseError):
    """A remote stage call raised or reported ``success: false``."""

    def __init__(
        self,
        stage_name: str,
        message: str,
        step_index: Optional[int] = None,
    ) -> None:
        super().__init__(f"{stage_name}: {message}")
        self.stage_name = stage_name
        self.step_index = step_index
        self.message = message


class StalledError(StageInvocationError):
    """The summarize stage kept reporting remaining work past the attempt cap."""


class StorageError(MarketSenseError):
    """Progress store read or write failed."""


class PollError(MarketSenseError):
    """Periodic re-fetch of the remote workflow record failed."""


class RemoteError(MarketSenseError):
    """Row-level request against the remote data store failed."""


class RequirementNotFoundError(MarketSenseError):
    """The requirement row does not exist."""

    def __init__(self, requirement_id: str) -> None:
        super().__init__(f"Requirement {requirement_id} not found")
        self.requirement_id = requirement_id
