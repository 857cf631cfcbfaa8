"""Staging phase mixin for DeepResearchWorkflow.

Plans the research: ``stage_count`` stages, each seeded with
``queries_per_stage`` depth-0 reasoning nodes, from one structured call.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from stagewise.core.errors.llm import LLMError
from stagewise.core.errors.research import ConfigurationMissingError
from stagewise.core.research.models.deep_research import (
    ReasoningNode,
    ReasoningTree,
    ResearchConfiguration,
    ResearchSession,
    Stage,
)
from stagewise.core.research.models.enums import AgentRole
from stagewise.core.research.workflows.deep_research.reasoning_modules import (
    AdaptedQuestions,
    ModuleSelection,
    build_adaptation_prompt,
    build_selection_prompt,
    resolve_selection,
    selection_count,
)

if TYPE_CHECKING:
    from stagewise.core.research.workflows.deep_research.core import (
        DeepResearchWorkflow,
    )

logger = logging.getLogger(__name__)

FIRST_FALLBACK_STAGE = "Initial Exploration"
LAST_FALLBACK_STAGE = "Synthesis & Implications"


class PlannedQuery(BaseModel):
    query: str = Field(..., description="A specific research question for this stage")
    reasoning: str = Field(default="", description="Why this query matters for the stage")


class PlannedStage(BaseModel):
    name: str = Field(..., description="Descriptive name of the reasoning stage")
    description: str = Field(default="", description="What this stage explores")
    initial_queries: list[PlannedQuery] = Field(default_factory=list)


class StagePlan(BaseModel):
    """Structured output of the staging call."""

    stages: list[PlannedStage] = Field(default_factory=list)


def fallback_stages(configuration: ResearchConfiguration) -> list[Stage]:
    """Deterministic stage template used when planning fails.

    Trees are empty, so each stage goes straight to synthesis.
    """
    count = configuration.stage_count
    stages = []
    for i in range(count):
        if i == 0:
            name = FIRST_FALLBACK_STAGE
            description = "Establish the scope, background and key concepts of the topic."
        elif i == count - 1:
            name = LAST_FALLBACK_STAGE
            description = "Combine earlier findings and draw out their implications."
        else:
            name = f"Stage {i + 1} Analysis"
            description = f"Examine aspect {i + 1} of the topic in depth."
        stages.append(
            Stage(id=i, name=name, description=description, reasoning_tree=ReasoningTree(), fallback_used=True)
        )
    return stages


def stages_from_plan(plan: StagePlan, topic: str, configuration: ResearchConfiguration) -> list[Stage]:
    """Shape a plan into exactly ``stage_count`` stages of ``queries_per_stage`` nodes.

    Surplus stages and queries are dropped; missing queries are filled with
    ``"{stage name}: {topic}"``. A plan with too few stages is completed from
    the fallback template.
    """
    template = fallback_stages(configuration)
    stages = []
    for i in range(configuration.stage_count):
        planned = plan.stages[i] if i < len(plan.stages) else None
        if planned is None or not planned.name.strip():
            logger.warning("Stage plan is missing stage %d; using template", i)
            name, description = template[i].name, template[i].description
            queries: list[PlannedQuery] = []
        else:
            name, description = planned.name.strip(), planned.description
            queries = [q for q in planned.initial_queries if q.query.strip()]

        queries = queries[: configuration.queries_per_stage]
        while len(queries) < configuration.queries_per_stage:
            queries.append(PlannedQuery(query=f"{name}: {topic}", reasoning=f"General exploration for {name}"))

        tree = ReasoningTree()
        for q in queries:
            tree.append(ReasoningNode(depth=0, query=q.query.strip(), reasoning=q.reasoning))
        stages.append(Stage(id=i, name=name, description=description, reasoning_tree=tree))
    return stages


class StagingPhaseMixin:
    """Staging phase methods. Mixed into DeepResearchWorkflow.

    At runtime, ``self`` is a DeepResearchWorkflow instance providing:
    - config, generation (instance attributes)
    - _generate_structured() (from GenerationLifecycleMixin)
    """

    async def _execute_staging_async(self: DeepResearchWorkflow, session: ResearchSession) -> None:
        """Populate ``session.stages`` and mark staging complete.

        Generation failures fall back to the deterministic stage template.

        Raises:
            ConfigurationMissingError: If the session has no configuration
        """
        configuration = session.configuration
        if configuration is None:
            raise ConfigurationMissingError(session_id=session.id)

        logger.info(
            "Planning %d stage(s) x %d queries for topic: %s",
            configuration.stage_count,
            configuration.queries_per_stage,
            session.topic[:100],
        )

        guiding_questions: list[str] = []
        if self.config.self_discover:
            guiding_questions = await self._discover_guiding_questions(session, configuration)

        prompt = self._build_staging_prompt(session, configuration, guiding_questions)
        try:
            plan = await self._generate_structured(
                session,
                prompt,
                StagePlan,
                agent=AgentRole.STAGING,
                operation="generate-stages",
            )
            stages = stages_from_plan(plan, session.topic, configuration)
        except LLMError as e:
            logger.warning("Stage planning failed, using fallback stages: %s", e)
            stages = fallback_stages(configuration)
            session.fallback_used = True

        session.stages = stages
        session.staging_complete = True
        session.current_stage_index = 0
        logger.info("Created %d stage(s): %s", len(stages), ", ".join(s.name for s in stages))

    async def _discover_guiding_questions(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        configuration: ResearchConfiguration,
    ) -> list[str]:
        """Run self-discover prompting; returns [] when any call fails."""
        count = selection_count(configuration.stage_count, configuration.queries_per_stage)
        try:
            selection = await self._generate_structured(
                session,
                build_selection_prompt(session.topic, count),
                ModuleSelection,
                agent=AgentRole.STAGING,
                operation="select-reasoning-modules",
            )
            modules = resolve_selection(selection, count)
            if not modules:
                return []
            adapted = await self._generate_structured(
                session,
                build_adaptation_prompt(session.topic, modules),
                AdaptedQuestions,
                agent=AgentRole.STAGING,
                operation="adapt-reasoning-modules",
            )
        except LLMError as e:
            logger.warning("Self-discover prompting failed, planning without guidance: %s", e)
            return []
        questions = [q.strip() for q in adapted.adapted_questions if q.strip()]
        return questions or modules

    def _build_staging_prompt(
        self,
        session: ResearchSession,
        configuration: ResearchConfiguration,
        guiding_questions: Optional[list[str]] = None,
    ) -> str:
        lines = [
            "You are an expert academic researcher planning a staged investigation.",
            "",
            f"TOPIC: {session.topic}",
        ]
        if session.context:
            lines.append(f"CONTEXT: {session.context}")
        if guiding_questions:
            lines += ["", "Questions to guide the plan:"]
            lines += [f"QUESTION {i + 1}: {q}" for i, q in enumerate(guiding_questions)]
        lines += [
            "",
            f"1. Design exactly {configuration.stage_count} distinct reasoning stages. Each stage should "
            "take its own perspective, build on the stages before it and cover a different aspect, "
            "moving from fundamentals towards advanced questions.",
            f"2. For each stage, write exactly {configuration.queries_per_stage} research queries. Each "
            "query should be a concrete, searchable question on a different aspect of the stage, with a "
            "short explanation of why it matters.",
        ]
        return "\n".join(lines)
