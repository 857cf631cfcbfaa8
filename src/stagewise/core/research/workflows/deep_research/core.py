"""Deep Research workflow driver.

Runs a research session as a sequence of discrete steps. Each step:

1. checks the cancellation token
2. deep-copies the session
3. routes the copy (``routing.route``) and emits a progress event
4. runs one component rung against the copy
5. returns the copy, which replaces the session

A step that raises leaves the caller's session untouched, so a retried step
repeats the same decision.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from stagewise.config.research import ResearchConfig
from stagewise.core.errors.research import (
    ResearchCancelledError,
    ResearchEngineError,
    StepLimitExceededError,
)
from stagewise.core.llm_provider import GenerationProvider
from stagewise.core.research.models.deep_research import (
    ResearchConfiguration,
    ResearchRequest,
    ResearchSession,
    Stage,
)
from stagewise.core.research.models.enums import AgentRole, EventType
from stagewise.core.research.models.events import ProgressEvent, ProgressInfo, TreeStats
from stagewise.core.research.providers.base import SearchProvider
from stagewise.core.research.workflows.base import WorkflowResult
from stagewise.core.research.workflows.deep_research.cancellation import CancellationToken
from stagewise.core.research.workflows.deep_research.events import EventSink, MemoryEventSink
from stagewise.core.research.workflows.deep_research.phases import (
    GenerationLifecycleMixin,
    NodeResearchMixin,
    ReasoningPhaseMixin,
    ReportingPhaseMixin,
    StagingPhaseMixin,
)
from stagewise.core.research.workflows.deep_research.phases.reasoning import (
    ReasoningRung,
    ReasoningStepResult,
)
from stagewise.core.research.workflows.deep_research.progress import (
    action_message,
    estimate_progress,
)
from stagewise.core.research.workflows.deep_research.routing import (
    Action,
    RouteDecision,
    route,
)

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """Result of a single step.

    Attributes:
        session: Session state after the step
        decision: Routing decision the step executed
        halted: Whether the session reached its terminal event
    """

    session: ResearchSession
    decision: RouteDecision
    halted: bool = False


def tree_stats(stage: Stage) -> TreeStats:
    tree = stage.reasoning_tree
    if tree is None:
        return TreeStats()
    return TreeStats(
        node_count=len(tree),
        max_depth=max(tree.current_max_depth, 0),
        nodes_with_findings=tree.nodes_with_findings,
    )


class DeepResearchWorkflow(
    StagingPhaseMixin,
    ReasoningPhaseMixin,
    NodeResearchMixin,
    ReportingPhaseMixin,
    GenerationLifecycleMixin,
):
    """Multi-stage deep research workflow.

    Workflow:
    1. STAGE - plan stages and their initial queries
    2. REASON - build each stage's reasoning tree and analysis
    3. REPORT - assemble the final cited report
    4. COMPLETE - emit the terminal event
    """

    def __init__(
        self,
        config: ResearchConfig,
        search: SearchProvider,
        generation: GenerationProvider,
        *,
        sink: Optional[EventSink] = None,
        cancellation: Optional[CancellationToken] = None,
    ):
        """Initialize the workflow.

        Args:
            config: Engine settings (concurrency, limits, timeouts)
            search: Search provider used by node research
            generation: Generation provider used by every phase
            sink: Destination for progress events (default: in-memory)
            cancellation: Token checked at every step boundary
        """
        self.config = config
        self.search = search
        self.generation = generation
        self.sink = sink if sink is not None else MemoryEventSink()
        self.cancellation = cancellation or CancellationToken()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, request: Union[ResearchRequest, Mapping[str, Any]]) -> ResearchSession:
        """Create a session from a request object or its JSON mapping.

        Raises:
            ConfigurationInvalidError: If the configuration is outside bounds
        """
        if not isinstance(request, ResearchRequest):
            data = dict(request)
            configuration = data.pop("configuration", None)
            request = ResearchRequest.model_validate(data)
            if configuration is not None:
                request.configuration = (
                    configuration
                    if isinstance(configuration, ResearchConfiguration)
                    else ResearchConfiguration.from_request(configuration)
                )
        session = ResearchSession.from_request(request)
        logger.info("Created research session %s for topic: %s", session.id, session.topic[:100])
        return session

    def cancel(self, reason: Optional[str] = None) -> None:
        self.cancellation.cancel(reason)

    def _check_cancellation(self, session: ResearchSession) -> None:
        """Raise ResearchCancelledError if cancellation was requested."""
        if self.cancellation.cancelled:
            logger.info("Cancellation detected for research %s at step %d", session.id, session.step_count)
            self.cancellation.raise_if_cancelled(session_id=session.id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def step(self, session: ResearchSession) -> StepOutcome:
        """Run one routing decision against a copy of ``session``.

        Raises:
            ResearchEngineError: On a fatal routing or phase error
        """
        self._check_cancellation(session)
        working = session.model_copy(deep=True)
        decision = route(working)
        logger.debug("Session %s step %d: %s", working.id, working.step_count, decision.action.value)

        if decision.action == Action.FAIL:
            raise decision.error

        if decision.action == Action.COMPLETE:
            working.mark_completed()
            self._emit(
                working,
                decision,
                event_type=EventType.COMPLETE,
                completed=True,
            )
            return StepOutcome(working, decision, halted=True)

        if decision.action == Action.ANNOUNCE_STAGES:
            self._emit(working, decision, stages=[s.summary() for s in working.stages])
            working.stages_announced = True
            await self._reason(working, working.current_stage)
        elif decision.action == Action.ADVANCE:
            self._emit(working, decision)
            working.current_stage_index = decision.stage_index
            await self._reason(working, working.current_stage)
        else:
            self._emit(working, decision)
            if decision.action == Action.STAGE:
                await self._execute_staging_async(working)
            elif decision.action == Action.REASON:
                await self._reason(working, working.current_stage)
            elif decision.action == Action.REPORT:
                await self._execute_reporting_async(working)
            elif decision.action == Action.FINISH:
                working.network_complete = True

        working.step_count += 1
        working.touch()
        return StepOutcome(working, decision)

    async def run(self, request: Union[ResearchSession, ResearchRequest, Mapping[str, Any]]) -> WorkflowResult:
        """Step a session to its terminal state.

        Fatal errors are not raised: the session is marked failed (or
        cancelled), an ``error`` event is emitted and the result reports
        ``success=False``. Unexpected exceptions from a phase or provider are
        handled the same way.

        Raises:
            ConfigurationInvalidError: If ``request`` carries an invalid configuration
        """
        started = time.perf_counter()
        session = request if isinstance(request, ResearchSession) else self.create_session(request)
        max_steps = self.config.max_steps

        try:
            while True:
                if session.step_count >= max_steps:
                    raise StepLimitExceededError(max_steps, session_id=session.id)
                outcome = await self.step(session)
                session = outcome.session
                if outcome.halted:
                    break
        except ResearchEngineError as e:
            self._fail(session, e)
            return self._result(session, started, error=str(e))
        except Exception as e:
            logger.exception("Unexpected error in research %s at step %d", session.id, session.step_count)
            error = ResearchEngineError(f"Unexpected error: {e}", session_id=session.id)
            self._fail(session, error)
            return self._result(session, started, error=str(error))

        logger.info(
            "Research %s complete in %d step(s); %s",
            session.id,
            session.step_count,
            session.token_usage.summary(),
        )
        return self._result(session, started)

    def _fail(self, session: ResearchSession, error: ResearchEngineError) -> None:
        if isinstance(error, ResearchCancelledError):
            session.mark_cancelled(error.reason)
            logger.warning("Research %s cancelled: %s", session.id, error)
        else:
            session.mark_failed(str(error))
            logger.error("Research %s failed: %s", session.id, error)
        self.sink.publish(
            ProgressEvent(
                event_type=EventType.ERROR,
                message=str(error),
                session_id=session.id,
                progress=ProgressInfo(percent=session.last_progress, current_step="Research failed"),
                completed=False,
            )
        )

    def _result(self, session: ResearchSession, started: float, *, error: Optional[str] = None) -> WorkflowResult:
        totals = session.token_usage.total
        return WorkflowResult(
            success=error is None,
            content=session.final_report or "",
            session=session,
            model_used=self.generation.get_model(),
            tokens_used=totals.total_tokens,
            input_tokens=totals.prompt_tokens,
            output_tokens=totals.completion_tokens,
            duration_ms=(time.perf_counter() - started) * 1000,
            metadata={
                "session_id": session.id,
                "status": session.status.value,
                "steps": session.step_count,
                "stages": len(session.stages),
                "sources": len(session.citations),
                "fallback_used": session.fallback_used,
                "cost": totals.cost,
            },
            error=error,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _reason(self, session: ResearchSession, stage: Stage) -> ReasoningStepResult:
        result = await self._execute_reasoning_async(session, stage)
        if result.rung == ReasoningRung.SYNTHESIZE:
            message = f"Completed analysis for stage: {stage.name}"
            analysis = stage.analysis
        else:
            stats = tree_stats(stage)
            message = (
                f"Reasoning tree for stage {stage.name}: {stats.node_count} node(s), "
                f"{stats.nodes_with_findings} with findings"
            )
            analysis = None
        estimate = estimate_progress(session, previous=session.last_progress)
        session.last_progress = estimate.percent
        self.sink.publish(
            ProgressEvent(
                message=message,
                session_id=session.id,
                stage=stage.name,
                agent=AgentRole.REASONING.value,
                progress=ProgressInfo(percent=estimate.percent, current_step=estimate.current_step),
                tree=tree_stats(stage),
                analysis=analysis,
            )
        )
        return result

    def _emit(
        self,
        session: ResearchSession,
        decision: RouteDecision,
        *,
        event_type: EventType = EventType.PROGRESS,
        **fields: Any,
    ) -> None:
        estimate = estimate_progress(session, decision.action, previous=session.last_progress)
        session.last_progress = estimate.percent
        stage = session.current_stage
        agent = decision.agent
        self.sink.publish(
            ProgressEvent(
                event_type=event_type,
                message=action_message(session, decision),
                session_id=session.id,
                stage=stage.name if stage is not None else None,
                agent=agent.value if agent is not None else None,
                progress=ProgressInfo(percent=estimate.percent, current_step=estimate.current_step),
                **fields,
            )
        )
