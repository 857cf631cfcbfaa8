"""Reporting phase mixin for DeepResearchWorkflow.

Assembles the final report from the stage analyses: outline, concurrent
section drafts, a deterministic references block, then one edit pass.
Citation numbers are report-scoped; stage analyses are renumbered onto the
report map before they reach any prompt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from stagewise.core.errors.llm import LLMError
from stagewise.core.errors.research import NoStageAnalysesError
from stagewise.core.research.models.deep_research import Finding, ResearchSession, Stage
from stagewise.core.research.models.enums import AgentRole
from stagewise.core.research.workflows.deep_research.citations import (
    assign_citation_numbers,
    build_references_section,
    check_citation_overflow,
    collect_session_findings,
    collect_stage_findings,
    collect_unique_sources,
    format_numbered_sources,
    renumber_citations,
    split_references,
    strip_sources_section,
)
from stagewise.core.research.workflows.deep_research.phases._prompts import (
    build_edit_prompt,
    build_outline_prompt,
    build_section_prompt,
)

if TYPE_CHECKING:
    from stagewise.core.research.workflows.deep_research.core import (
        DeepResearchWorkflow,
    )

logger = logging.getLogger(__name__)

MIN_SECTIONS = 3
MAX_SECTIONS = 8
FALLBACK_SECTION_TITLES = ("Overview and Context", "Key Findings", "Conclusion and Recommendations")


class OutlineSection(BaseModel):
    title: str = Field(..., description="Section heading")
    key_points: list[str] = Field(default_factory=list, description="Points the section should cover")


class ReportOutline(BaseModel):
    """Structured output of the outline call."""

    title: str = Field(..., description="Report title")
    sections: list[OutlineSection] = Field(default_factory=list)


def fallback_section(title: str) -> str:
    return f"## {title}\n\nContent for this section could not be generated."


def normalize_outline(outline: ReportOutline, topic: str) -> ReportOutline:
    """Clamp an outline to 3-8 sections, padding from the fallback titles."""
    sections = [s for s in outline.sections if s.title.strip()][:MAX_SECTIONS]
    existing = {s.title.strip().lower() for s in sections}
    for title in FALLBACK_SECTION_TITLES:
        if len(sections) >= MIN_SECTIONS:
            break
        if title.lower() not in existing:
            sections.append(OutlineSection(title=title))
    return ReportOutline(title=outline.title.strip() or f"Research Report: {topic}", sections=sections)


def fallback_outline(topic: str) -> ReportOutline:
    return ReportOutline(
        title=f"Research Report: {topic}",
        sections=[OutlineSection(title=t) for t in FALLBACK_SECTION_TITLES],
    )


def stage_analysis_for_report(stage: Stage, report_map: dict[str, int]) -> str:
    """Stage analysis body with its citations renumbered onto the report map."""
    body, _ = split_references(stage.analysis or "")
    stage_map = assign_citation_numbers(collect_unique_sources(collect_stage_findings(stage)))
    mapping = {number: report_map[url] for url, number in stage_map.items() if url in report_map}
    return renumber_citations(body, mapping).strip()


class ReportingPhaseMixin:
    """Reporting phase methods. Mixed into DeepResearchWorkflow.

    At runtime, ``self`` is a DeepResearchWorkflow instance providing:
    - config (instance attribute)
    - _generate_text(), _generate_structured() (from GenerationLifecycleMixin)
    """

    async def _execute_reporting_async(self: DeepResearchWorkflow, session: ResearchSession) -> str:
        """Build ``session.final_report`` (and ``draft_report``).

        Raises:
            NoStageAnalysesError: If no stage has an analysis
        """
        analyzed = [s for s in session.stages if s.analysis]
        if not analyzed:
            raise NoStageAnalysesError(session_id=session.id)

        unique = collect_unique_sources(collect_session_findings(session.stages))
        citation_map = assign_citation_numbers(unique)
        session.citations = dict(citation_map)
        references = build_references_section(unique, citation_map)

        analyses = "\n\n".join(
            f"### Stage {s.id + 1}: {s.name}\n{stage_analysis_for_report(s, citation_map)}" for s in analyzed
        )
        logger.info(
            "Assembling report from %d stage analyses and %d source(s)",
            len(analyzed),
            len(unique),
        )

        outline = await self._generate_outline(session, analyses, len(unique))
        sections = await self._generate_sections(session, outline, analyses, unique, citation_map)

        draft = f"# {outline.title}\n\n" + "\n\n".join(sections)
        if references:
            draft += f"\n\n{references}"
        session.draft_report = draft

        session.final_report = await self._edit_report(session, draft, references, len(unique))
        return session.final_report

    async def _generate_outline(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        analyses: str,
        reference_count: int,
    ) -> ReportOutline:
        prompt = build_outline_prompt(
            topic=session.topic,
            context=session.context,
            analyses=analyses,
            reference_count=reference_count,
        )
        try:
            outline = await self._generate_structured(
                session,
                prompt,
                ReportOutline,
                agent=AgentRole.REPORTING,
                operation="generate-outline",
            )
        except LLMError as e:
            logger.warning("Outline generation failed, using fallback outline: %s", e)
            return fallback_outline(session.topic)
        return normalize_outline(outline, session.topic)

    async def _generate_sections(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        outline: ReportOutline,
        analyses: str,
        unique: list[Finding],
        citation_map: dict[str, int],
    ) -> list[str]:
        """Draft every section concurrently; failed sections get placeholder text."""
        semaphore = asyncio.Semaphore(self.config.max_concurrent)
        numbered_sources = format_numbered_sources(unique, citation_map)

        async def _draft(section: OutlineSection) -> str:
            prompt = build_section_prompt(
                topic=session.topic,
                report_title=outline.title,
                section_title=section.title,
                key_points=section.key_points,
                analyses=analyses,
                numbered_sources=numbered_sources,
                reference_count=len(unique),
            )
            async with semaphore:
                return await self._generate_text(
                    session,
                    prompt,
                    agent=AgentRole.REPORTING,
                    operation="generate-section",
                )

        results = await asyncio.gather(*(_draft(s) for s in outline.sections), return_exceptions=True)

        sections: list[str] = []
        for section, result in zip(outline.sections, results):
            if isinstance(result, LLMError):
                logger.warning("Section %r failed: %s", section.title, result)
                sections.append(fallback_section(section.title))
                continue
            if isinstance(result, BaseException):
                raise result
            text = strip_sources_section(result).strip()
            if not text:
                sections.append(fallback_section(section.title))
            elif not text.startswith("#"):
                sections.append(f"## {section.title}\n\n{text}")
            else:
                sections.append(text)
        return sections

    async def _edit_report(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        draft: str,
        references: str,
        reference_count: int,
    ) -> str:
        """Polish the draft once; the deterministic references are re-attached."""
        try:
            edited = await self._generate_text(
                session,
                build_edit_prompt(topic=session.topic, draft=draft),
                agent=AgentRole.REPORTING,
                operation="edit-report",
            )
        except LLMError as e:
            logger.warning("Report edit failed, using draft: %s", e)
            edited = ""
        if not edited.strip():
            edited = draft

        body, _ = split_references(edited)
        body = strip_sources_section(body).rstrip()
        check_citation_overflow(body, reference_count)
        return f"{body}\n\n{references}" if references else body
