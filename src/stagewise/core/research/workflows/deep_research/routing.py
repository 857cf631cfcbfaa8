"""Routing decisions for the deep research state machine.

``route()`` looks only at session data and never at a stored "next step"
pointer, so calling it twice on the same session yields the same decision.
That is what lets a step be retried safely after a crash.

States: ``Init -> Staging -> Reasoning(stage i) -> Reporting -> Done``
plus the terminal error state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from stagewise.core.errors.research import (
    ConfigurationMissingError,
    ResearchEngineError,
    StageIndexInvalidError,
)
from stagewise.core.research.models.deep_research import ResearchSession, Stage
from stagewise.core.research.models.enums import AgentRole


class Action(str, Enum):
    """What the driver should do next."""

    COMPLETE = "complete"
    FAIL = "fail"
    STAGE = "stage"
    ANNOUNCE_STAGES = "announce_stages"
    REASON = "reason"
    ADVANCE = "advance"
    REPORT = "report"
    FINISH = "finish"


# Actions after which the driver stops stepping.
HALTING_ACTIONS = frozenset({Action.COMPLETE, Action.FAIL})

ACTION_AGENTS: dict[Action, AgentRole] = {
    Action.STAGE: AgentRole.STAGING,
    Action.ANNOUNCE_STAGES: AgentRole.REASONING,
    Action.REASON: AgentRole.REASONING,
    Action.ADVANCE: AgentRole.REASONING,
    Action.REPORT: AgentRole.REPORTING,
}


@dataclass(frozen=True)
class RouteDecision:
    """Result of routing one step.

    Attributes:
        action: The action to dispatch
        stage_index: Stage the action targets (the new index for ADVANCE)
        error: Fatal error to surface for ``Action.FAIL``
    """

    action: Action
    stage_index: Optional[int] = None
    error: Optional[ResearchEngineError] = None

    @property
    def halts(self) -> bool:
        return self.action in HALTING_ACTIONS

    @property
    def agent(self) -> Optional[AgentRole]:
        return ACTION_AGENTS.get(self.action)

    def target_stage(self, session: ResearchSession) -> Optional[Stage]:
        if self.stage_index is None or not 0 <= self.stage_index < len(session.stages):
            return None
        return session.stages[self.stage_index]


def route(session: ResearchSession) -> RouteDecision:
    """Decide the next action for ``session``.

    Checks, in order: completion, configuration, staging, stage
    announcement, the current stage's reasoning, stage advance, reporting.
    """
    if session.network_complete:
        return RouteDecision(Action.COMPLETE)

    if session.configuration is None:
        return RouteDecision(Action.FAIL, error=ConfigurationMissingError(session_id=session.id))

    if not session.staging_complete:
        return RouteDecision(Action.STAGE)

    index = session.current_stage_index
    stage = session.current_stage
    if stage is None:
        return RouteDecision(
            Action.FAIL,
            stage_index=index,
            error=StageIndexInvalidError(index, len(session.stages), session_id=session.id),
        )

    if not session.stages_announced:
        return RouteDecision(Action.ANNOUNCE_STAGES, stage_index=index)

    if not stage.reasoning_complete:
        return RouteDecision(Action.REASON, stage_index=index)

    if index < len(session.stages) - 1:
        return RouteDecision(Action.ADVANCE, stage_index=index + 1)

    if session.final_report is None:
        return RouteDecision(Action.REPORT, stage_index=index)

    return RouteDecision(Action.FINISH, stage_index=index)
