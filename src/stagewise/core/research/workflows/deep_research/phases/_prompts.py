"""Prompt builders for the reasoning and reporting phases.

Kept apart from the phase mixins so the control flow stays readable; every
builder is a pure function of its arguments.
"""

from __future__ import annotations

from typing import Optional

from stagewise.core.research.models.deep_research import Stage

# Search result text is cut to this many characters in analysis prompts.
RESULT_TEXT_LIMIT = 2000


def build_result_analysis_prompt(
    *,
    topic: str,
    context: Optional[str],
    stage: Stage,
    query: str,
    reasoning: str,
    url: str,
    title: Optional[str],
    text: str,
) -> str:
    excerpt = text[:RESULT_TEXT_LIMIT] + ("..." if len(text) > RESULT_TEXT_LIMIT else "")
    lines = [
        "You are a research expert analyzing one search result for a research query.",
        "",
        f"TOPIC: {topic}",
    ]
    if context:
        lines.append(f"ADDITIONAL CONTEXT: {context}")
    lines += [
        "",
        f"STAGE: {stage.name}",
        f"STAGE DESCRIPTION: {stage.description}",
        "",
        f"QUERY: {query}",
        f"REASONING BEHIND QUERY: {reasoning or 'Not provided'}",
        "",
        f"RESULT URL: {url}",
        f"RESULT TITLE: {title or 'No title'}",
        "RESULT CONTENT:",
        excerpt or "No content available",
        "",
        "Analyze this single result: extract the information relevant to the query and topic, "
        "judge the credibility and relevance of the source, note the insights or facts it adds, "
        "and point out its limitations or biases. Stay under about 4000 characters.",
    ]
    return "\n".join(lines)


def build_follow_up_prompt(
    *,
    topic: str,
    stage: Stage,
    prior_queries: list[str],
    numbered_sources: str,
    count: int,
) -> str:
    prior = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(prior_queries))
    return "\n".join(
        [
            "You are a research expert writing follow-up queries from earlier findings.",
            "",
            f"TOPIC: {topic}",
            f"STAGE: {stage.name}",
            f"STAGE DESCRIPTION: {stage.description}",
            "",
            "QUERIES ALREADY RESEARCHED:",
            prior or "None",
            "",
            "FINDINGS SO FAR (numbered sources):",
            numbered_sources or "No findings were gathered.",
            "",
            f"Write exactly {count} follow-up queries that deepen the research. Each should address "
            "a gap or open question in the findings, take a distinct angle, be specific enough for a "
            "web search and must not repeat a query listed above. Give the reasoning for each and "
            "cite the sources it builds on by their numbers in source_numbers.",
        ]
    )


def build_stage_synthesis_prompt(
    *,
    topic: str,
    stage: Stage,
    numbered_sources: str,
    source_count: int,
) -> str:
    if source_count:
        citation_rule = (
            f"Cite sources inline as [n] using only the numbers 1 to {source_count} given above. "
            "End with a references section listing the cited sources."
        )
    else:
        citation_rule = (
            "No sources were found for this stage. Say so plainly and reason from the stage "
            "description alone; do not invent citations."
        )
    return "\n".join(
        [
            "You are a research expert writing the analysis of one research stage.",
            "",
            f"TOPIC: {topic}",
            f"STAGE: {stage.name}",
            f"STAGE DESCRIPTION: {stage.description}",
            "",
            "SOURCES:",
            numbered_sources or "None",
            "",
            "Write 6 to 10 paragraphs that synthesize the key insights across the sources, relate "
            "them to each other, identify patterns and consensus, highlight contradictions, "
            "evaluate the strength of the evidence, discuss implications for the topic and note "
            "remaining gaps.",
            citation_rule,
        ]
    )


def build_outline_prompt(*, topic: str, context: Optional[str], analyses: str, reference_count: int) -> str:
    lines = [
        "You are a research editor outlining a final report.",
        "",
        f"TOPIC: {topic}",
    ]
    if context:
        lines.append(f"CONTEXT: {context}")
    lines += [
        "",
        "STAGE ANALYSES:",
        analyses,
        "",
        "Propose a report title and between 3 and 8 sections. Give each section a title and "
        "the key points it should cover, in reading order. Do not include a references section; "
        f"the report has {reference_count} numbered references that will be appended for you.",
    ]
    return "\n".join(lines)


def build_section_prompt(
    *,
    topic: str,
    report_title: str,
    section_title: str,
    key_points: list[str],
    analyses: str,
    numbered_sources: str,
    reference_count: int,
) -> str:
    points = "\n".join(f"- {p}" for p in key_points) or "- Cover the section title"
    return "\n".join(
        [
            "You are a research writer drafting one section of a report.",
            "",
            f"TOPIC: {topic}",
            f"REPORT TITLE: {report_title}",
            f"SECTION: {section_title}",
            "KEY POINTS:",
            points,
            "",
            "STAGE ANALYSES:",
            analyses,
            "",
            "NUMBERED SOURCES:",
            numbered_sources or "None",
            "",
            f'Write the section in markdown starting with the heading "## {section_title}". '
            f"Cite sources inline as [n] reusing only the numbers 1 to {reference_count} above; "
            "never invent new numbers and do not add a references section.",
        ]
    )


def build_edit_prompt(*, topic: str, draft: str) -> str:
    return "\n".join(
        [
            "You are a senior editor polishing a research report.",
            "",
            f"TOPIC: {topic}",
            "",
            "DRAFT:",
            draft,
            "",
            "Improve flow and clarity. You may reorder and expand sections and add an introduction, "
            "transitions and a conclusion. Keep every inline citation number exactly as it is and "
            "keep the References section verbatim. Return the full report in markdown.",
        ]
    )
