"""Reasoning phase mixin for DeepResearchWorkflow.

Builds one stage's reasoning tree, advancing one rung per call:

1. research pending depth-0 nodes (at most ``max_breadth``)
2. expand the deepest level with ``max_breadth`` follow-up queries
3. research pending deeper nodes (at most ``max_breadth``)
4. synthesize the stage analysis
5. nothing left to do

Rungs are checked in this order on every call and select work from the tree
itself, so a retried call repeats the same rung.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from stagewise.core.errors.llm import LLMError
from stagewise.core.errors.research import TreeUninitializedError
from stagewise.core.research.models.deep_research import (
    ReasoningNode,
    ReasoningTree,
    ResearchSession,
    Stage,
)
from stagewise.core.research.models.enums import AgentRole
from stagewise.core.research.workflows.deep_research.citations import (
    assign_citation_numbers,
    attach_references,
    collect_stage_findings,
    collect_unique_sources,
    format_numbered_sources,
)
from stagewise.core.research.workflows.deep_research.phases._prompts import (
    build_follow_up_prompt,
    build_stage_synthesis_prompt,
)

if TYPE_CHECKING:
    from stagewise.core.research.workflows.deep_research.core import (
        DeepResearchWorkflow,
    )

logger = logging.getLogger(__name__)

_FOLLOW_UP_TEMPLATES = (
    "Recent developments related to: {query}",
    "Open questions and limitations regarding: {query}",
    "Evidence for and against: {query}",
    "Practical implications of: {query}",
    "Expert disagreement about: {query}",
)


class ReasoningRung(str, Enum):
    RESEARCH_INITIAL = "research_initial"
    EXPAND = "expand"
    RESEARCH_DEEPER = "research_deeper"
    SYNTHESIZE = "synthesize"
    COMPLETE = "complete"


@dataclass
class ReasoningStepResult:
    """What one reasoning call did."""

    rung: ReasoningRung
    nodes_researched: int = 0
    nodes_added: int = 0
    findings_added: int = 0


class FollowUpQuery(BaseModel):
    query: str = Field(..., description="A specific follow-up research question")
    reasoning: str = Field(default="", description="Why this follow-up matters")
    source_numbers: list[int] = Field(default_factory=list, description="Numbers of the sources it builds on")


class FollowUpPlan(BaseModel):
    """Structured output of the follow-up generation call."""

    follow_up_queries: list[FollowUpQuery] = Field(default_factory=list)


def fallback_stage_analysis(stage: Stage, source_count: int) -> str:
    return (
        f"## {stage.name}\n\n"
        f"An analysis for this stage could not be generated. "
        f"{source_count} source(s) were gathered and are listed below."
    )


def template_follow_ups(frontier: list[ReasoningNode], count: int, taken: set[str]) -> list[FollowUpQuery]:
    """Templated follow-ups derived from the frontier's queries."""
    follow_ups: list[FollowUpQuery] = []
    for template in _FOLLOW_UP_TEMPLATES:
        for node in frontier:
            if len(follow_ups) >= count:
                return follow_ups
            query = template.format(query=node.query)
            if query.lower() in taken:
                continue
            taken.add(query.lower())
            follow_ups.append(FollowUpQuery(query=query, reasoning=f"Extends: {node.query}"))
    return follow_ups


class ReasoningPhaseMixin:
    """Reasoning phase methods. Mixed into DeepResearchWorkflow.

    At runtime, ``self`` is a DeepResearchWorkflow instance providing:
    - config (instance attribute)
    - _research_nodes() (from NodeResearchMixin)
    - _generate_text(), _generate_structured() (from GenerationLifecycleMixin)
    """

    async def _execute_reasoning_async(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        stage: Stage,
    ) -> ReasoningStepResult:
        """Advance ``stage`` by one rung.

        Raises:
            TreeUninitializedError: If the stage has no reasoning tree
        """
        if stage.reasoning_complete:
            return ReasoningStepResult(ReasoningRung.COMPLETE)

        tree = stage.reasoning_tree
        if tree is None:
            raise TreeUninitializedError(stage.id, session_id=session.id)

        session.dedup.ensure_stage(stage.id)
        configuration = session.configuration
        max_breadth = configuration.max_breadth
        max_attempts = self.config.node_max_attempts

        initial = tree.pending_nodes(max_attempts, depth=0)
        if initial:
            batch = initial[:max_breadth]
            found = await self._research_nodes(session, stage, batch)
            return ReasoningStepResult(ReasoningRung.RESEARCH_INITIAL, nodes_researched=len(batch), findings_added=found)

        pending = tree.pending_nodes(max_attempts)
        if not pending and len(tree) > 0 and tree.current_max_depth < configuration.max_depth - 1:
            added = await self._expand_frontier(session, stage, tree)
            return ReasoningStepResult(ReasoningRung.EXPAND, nodes_added=added)

        deeper = tree.pending_nodes(max_attempts, deeper=True)
        if deeper:
            batch = deeper[:max_breadth]
            found = await self._research_nodes(session, stage, batch)
            return ReasoningStepResult(ReasoningRung.RESEARCH_DEEPER, nodes_researched=len(batch), findings_added=found)

        await self._synthesize_stage(session, stage)
        return ReasoningStepResult(ReasoningRung.SYNTHESIZE)

    async def _expand_frontier(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        stage: Stage,
        tree: ReasoningTree,
    ) -> int:
        """Append exactly ``max_breadth`` follow-up nodes one level deeper."""
        count = session.configuration.max_breadth
        depth = tree.current_max_depth
        frontier = tree.nodes_at_depth(depth)

        # Numbers come from the stage-wide map so they match the stage analysis.
        citation_map = assign_citation_numbers(collect_unique_sources(collect_stage_findings(stage)))
        frontier_sources = collect_unique_sources(f for n in frontier for f in n.findings)
        owners: dict[str, ReasoningNode] = {}
        for node in frontier:
            for finding in node.findings:
                owners.setdefault(finding.source, node)
        urls_by_number = {number: url for url, number in citation_map.items()}

        prior_queries = [n.query for n in tree.nodes]
        taken = {q.lower() for q in prior_queries}
        prompt = build_follow_up_prompt(
            topic=session.topic,
            stage=stage,
            prior_queries=prior_queries,
            numbered_sources=format_numbered_sources(frontier_sources, citation_map),
            count=count,
        )
        try:
            plan = await self._generate_structured(
                session,
                prompt,
                FollowUpPlan,
                agent=AgentRole.REASONING,
                operation="generate-follow-ups",
                stage=stage,
            )
            candidates = plan.follow_up_queries
        except LLMError as e:
            logger.warning("Follow-up generation failed for stage %d: %s", stage.id, e)
            candidates = []

        follow_ups: list[FollowUpQuery] = []
        for candidate in candidates:
            key = candidate.query.strip().lower()
            if not key or key in taken:
                continue
            taken.add(key)
            follow_ups.append(candidate)
        follow_ups = follow_ups[:count]
        if len(follow_ups) < count:
            logger.info("Padding %d templated follow-up(s) for stage %d", count - len(follow_ups), stage.id)
            follow_ups += template_follow_ups(frontier, count - len(follow_ups), taken)

        for i, follow_up in enumerate(follow_ups):
            parent: Optional[ReasoningNode] = None
            for number in follow_up.source_numbers:
                url = urls_by_number.get(number)
                if url in owners:
                    parent = owners[url]
                    break
            if parent is None:
                parent = frontier[i % len(frontier)]
            tree.append(
                ReasoningNode(
                    parent_id=parent.id,
                    depth=depth + 1,
                    query=follow_up.query.strip(),
                    reasoning=follow_up.reasoning,
                )
            )
        logger.info("Stage %d: added %d follow-up node(s) at depth %d", stage.id, len(follow_ups), depth + 1)
        return len(follow_ups)

    async def _synthesize_stage(self: DeepResearchWorkflow, session: ResearchSession, stage: Stage) -> None:
        """Write the stage analysis with a deterministic references block."""
        unique = collect_unique_sources(collect_stage_findings(stage))
        citation_map = assign_citation_numbers(unique)
        prompt = build_stage_synthesis_prompt(
            topic=session.topic,
            stage=stage,
            numbered_sources=format_numbered_sources(unique, citation_map),
            source_count=len(unique),
        )
        try:
            text = await self._generate_text(
                session,
                prompt,
                agent=AgentRole.REASONING,
                operation="generate-stage-analysis",
                stage=stage,
            )
        except LLMError as e:
            logger.warning("Stage analysis failed for stage %d: %s", stage.id, e)
            text = ""
        if not text.strip():
            text = fallback_stage_analysis(stage, len(unique))

        analysis, stats = attach_references(text, unique, citation_map)
        stage.analysis = analysis
        stage.reasoning_complete = True
        stage.analysis_complete = True
        logger.info(
            "Stage %d analysis complete: %d source(s), %d cited, %d dangling removed",
            stage.id,
            len(unique),
            stats["cited"],
            stats["dangling_removed"],
        )
