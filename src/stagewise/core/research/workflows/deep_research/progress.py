"""Progress estimation for research sessions.

The estimate is a pure function of the session and the action about to run.
Stages share 90 points after a 5 point start; inside a stage, node creation
is worth 20% of the stage weight, node findings 60% and the analysis 20%.
Stage-based estimates stay at or below 95 until the terminal event and never
drop below the previous report.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stagewise.core.research.models.deep_research import ResearchSession
from stagewise.core.research.workflows.deep_research.routing import Action, RouteDecision

INITIAL_PERCENT = 5
STAGE_SPAN = 90
STAGE_CEILING = 95
REPORT_PERCENT = 97
COMPLETE_PERCENT = 100

INITIALIZING_STEP = "Initializing research..."
REPORTING_STEP = "Generating final report..."
COMPLETE_STEP = "Research complete"

# Share of a stage's weight for nodes created, nodes with findings, analysis.
_CREATED_SHARE = 0.2
_FINDINGS_SHARE = 0.6
_ANALYSIS_SHARE = 0.2


@dataclass(frozen=True)
class ProgressEstimate:
    percent: int
    current_step: str


def estimate_progress(
    session: ResearchSession,
    action: Optional[Action] = None,
    previous: int = 0,
) -> ProgressEstimate:
    """Estimate overall progress for ``session``.

    Args:
        session: Session state the estimate is computed from
        action: Action about to run, if any
        previous: Last reported percent for this session

    Returns:
        ProgressEstimate with an integer percent in [0, 100]
    """
    if action == Action.COMPLETE or (action is None and session.network_complete):
        return ProgressEstimate(COMPLETE_PERCENT, COMPLETE_STEP)
    if action == Action.REPORT:
        return ProgressEstimate(REPORT_PERCENT, REPORTING_STEP)

    total = len(session.stages)
    if total == 0:
        return ProgressEstimate(max(INITIAL_PERCENT, previous), INITIALIZING_STEP)

    index = min(max(session.current_stage_index, 0), total - 1)
    stage = session.stages[index]
    stage_weight = STAGE_SPAN / total
    percent = INITIAL_PERCENT + index * stage_weight

    expected = max(1, session.configuration.expected_nodes_per_stage) if session.configuration else 1
    tree = stage.reasoning_tree
    created = len(tree) if tree is not None else 0
    with_findings = tree.nodes_with_findings if tree is not None else 0
    percent += _CREATED_SHARE * stage_weight * min(1.0, created / expected)
    percent += _FINDINGS_SHARE * stage_weight * min(1.0, with_findings / expected)
    if stage.analysis_complete:
        percent += _ANALYSIS_SHARE * stage_weight

    estimate = min(int(round(percent)), STAGE_CEILING)
    return ProgressEstimate(max(estimate, previous), f"Stage {index + 1}/{total}: {stage.name}")


def action_message(session: ResearchSession, decision: RouteDecision) -> str:
    """Human-readable event message for a routing decision."""
    action = decision.action
    if action == Action.STAGE:
        return f"Creating reasoning stages for {session.topic}"
    if action == Action.ANNOUNCE_STAGES:
        return "Research stages created"
    if action == Action.REASON:
        stage = decision.target_stage(session)
        return f"Building reasoning tree for stage: {stage.name if stage else '?'}"
    if action == Action.ADVANCE:
        current = session.current_stage
        following = decision.target_stage(session)
        return (
            f"Completed stage: {current.name if current else '?'}, "
            f"moving to: {following.name if following else '?'}"
        )
    if action == Action.REPORT:
        return REPORTING_STEP
    if action == Action.COMPLETE:
        return COMPLETE_STEP
    if action == Action.FINISH:
        return "Finalizing research"
    if decision.error is not None:
        return str(decision.error)
    return action.value
