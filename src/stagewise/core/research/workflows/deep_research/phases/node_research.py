"""Node research mixin for DeepResearchWorkflow.

Researches a batch of reasoning nodes: search fan-out, a sequential dedup
walk against the stage cache, analysis fan-out, then write-back.

The dedup cache is only read during the walk and only written after the
analysis fan-in, so concurrent branches never share mutable state. Within a
stage no source is analyzed twice: a URL already analyzed is served from the
cache, a URL queued by an earlier node of the same batch shares that pending
analysis, and a URL seen without an analysis is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from stagewise.core.errors.llm import LLMError
from stagewise.core.errors.search import SearchProviderError
from stagewise.core.llm_provider import GenerationResponse
from stagewise.core.research.models.deep_research import (
    Finding,
    ReasoningNode,
    ResearchSession,
    Stage,
    truncate_content,
)
from stagewise.core.research.models.enums import AgentRole
from stagewise.core.research.providers.base import SearchResult
from stagewise.core.research.workflows.deep_research.phases._prompts import (
    build_result_analysis_prompt,
)

if TYPE_CHECKING:
    from stagewise.core.research.workflows.deep_research.core import (
        DeepResearchWorkflow,
    )

logger = logging.getLogger(__name__)


@dataclass
class _NodePlan:
    """Results picked for one node, with the analysis already known for each."""

    node: ReasoningNode
    search_failed: bool = False
    picked: list[tuple[SearchResult, Optional[str]]] = field(default_factory=list)


def fallback_analysis(result: SearchResult) -> str:
    return f"No analysis could be generated for {result.title or result.url}."


def finding_from_result(result: SearchResult, analysis: Optional[str]) -> Finding:
    return Finding(
        source=result.url,
        content=truncate_content(result.text),
        analysis=analysis,
        title=result.title,
        author=result.author,
        published_date=result.published_date.isoformat() if result.published_date else None,
        favicon=result.favicon,
        image=result.image,
    )


class NodeResearchMixin:
    """Node research methods. Mixed into DeepResearchWorkflow.

    At runtime, ``self`` is a DeepResearchWorkflow instance providing:
    - config, search, generation (instance attributes)
    - _with_timeout(), _record_usage() (from GenerationLifecycleMixin)
    """

    async def _research_nodes(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        stage: Stage,
        nodes: list[ReasoningNode],
    ) -> int:
        """Research ``nodes`` and record an attempt on each.

        Returns:
            Number of findings attached across the batch
        """
        if not nodes:
            return 0
        quota = session.configuration.max_breadth
        semaphore = asyncio.Semaphore(self.config.max_concurrent)

        # 1. Search fan-out
        outcomes = await asyncio.gather(*(self._search_node(session, node, quota, semaphore) for node in nodes))

        # 2. Dedup walk, node order
        dedup = session.dedup
        queued: dict[str, tuple[SearchResult, ReasoningNode]] = {}
        plans: list[_NodePlan] = []
        for node, (results, failed) in zip(nodes, outcomes):
            plan = _NodePlan(node=node, search_failed=failed)
            seen: set[str] = set()
            for result in results:
                if len(plan.picked) >= quota:
                    break
                url = result.url
                if not url or not result.text.strip() or url in seen:
                    continue
                cached = dedup.lookup(url)
                if cached is not None:
                    dedup.record_use(url)
                    plan.picked.append((result, cached))
                elif url in queued:
                    dedup.record_use(url)
                    plan.picked.append((result, None))
                elif dedup.is_searched(url):
                    logger.debug("Skipping %s: already visited in stage %d", url, stage.id)
                    continue
                else:
                    dedup.mark_searched(url)
                    queued[url] = (result, node)
                    plan.picked.append((result, None))
                seen.add(url)
            plans.append(plan)

        # 3. Analysis fan-out
        entries = list(queued.items())
        responses = await asyncio.gather(
            *(self._analyze_result(session, stage, node, result, semaphore) for _, (result, node) in entries),
            return_exceptions=True,
        )

        # 4. Write-back after fan-in
        for (url, (result, _node)), response in zip(entries, responses):
            if isinstance(response, LLMError):
                logger.warning("Analysis failed for %s: %s", url, response)
                text = fallback_analysis(result)
            elif isinstance(response, BaseException):
                raise response
            else:
                self._record_usage(session, response, agent=AgentRole.REASONING, operation="analyze-result", stage=stage)
                text = response.text.strip() or fallback_analysis(result)
            dedup.store(url, text)

        total = 0
        for plan in plans:
            findings = [
                finding_from_result(result, cached if cached is not None else dedup.lookup(result.url))
                for result, cached in plan.picked
            ]
            plan.node.record_attempt(findings, search_failed=plan.search_failed)
            total += len(findings)
            logger.info(
                "Node %s (depth %d): %d finding(s)%s",
                plan.node.id,
                plan.node.depth,
                len(findings),
                " after search failure" if plan.search_failed else "",
            )
        return total

    async def _search_node(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        node: ReasoningNode,
        quota: int,
        semaphore: asyncio.Semaphore,
    ) -> tuple[list[SearchResult], bool]:
        """Search for one node; provider failures degrade to no results."""
        query = f"{session.topic} - {node.query}"
        async with semaphore:
            try:
                results = await self.search.search(query, max_results=quota * 2)
            except SearchProviderError as e:
                logger.warning("Search failed for node %s: %s", node.id, e)
                return [], True
            except Exception:
                logger.exception("Unexpected search error for node %s", node.id)
                return [], True
        return list(results), False

    async def _analyze_result(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        stage: Stage,
        node: ReasoningNode,
        result: SearchResult,
        semaphore: asyncio.Semaphore,
    ) -> GenerationResponse:
        prompt = build_result_analysis_prompt(
            topic=session.topic,
            context=session.context,
            stage=stage,
            query=node.query,
            reasoning=node.reasoning,
            url=result.url,
            title=result.title,
            text=result.text,
        )
        async with semaphore:
            return await self._with_timeout(
                "analyze-result",
                self.generation.generate_text(prompt, temperature=self.config.temperature),
            )
