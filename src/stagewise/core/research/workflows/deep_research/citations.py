"""Citation numbering and post-processing for stage analyses and reports.

Numbers are assigned by first appearance over an ordered findings list, start
at 1 and are contiguous. Because findings are append-only and collected in
node order, the map built for a prefix of a stage's findings agrees with the
map built later over the whole stage, so follow-up prompts and the stage
analysis cite the same numbers.

Generated text is never trusted to carry its own reference list: any
model-written Sources/References section is stripped, citations pointing at
unknown numbers are removed, and a deterministic ``## References`` block
built from the map is appended.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Iterable, Optional

from stagewise.core.research.providers.shared import extract_domain, parse_iso_date

if TYPE_CHECKING:
    from stagewise.core.research.models.deep_research import Finding, Stage

logger = logging.getLogger(__name__)

# Matches [N] where N is one or more digits, but NOT inside markdown link
# syntax like [text](url).
_CITATION_RE = re.compile(r"\[(\d+)\](?!\()")

_SOURCES_HEADING_RE = re.compile(
    r"^(#{1,2}\s+(?:Sources|References|Works\s+Cited|Bibliography))\s*$",
    re.MULTILINE | re.IGNORECASE,
)

REFERENCES_HEADING = "## References"
NO_ICON = "📄"


# ---------------------------------------------------------------------------
# Collection and numbering
# ---------------------------------------------------------------------------


def collect_unique_sources(findings: Iterable["Finding"]) -> list["Finding"]:
    """De-duplicate findings by ``source``, keeping first appearance order."""
    seen: set[str] = set()
    unique: list["Finding"] = []
    for finding in findings:
        if finding.source not in seen:
            seen.add(finding.source)
            unique.append(finding)
    return unique


def collect_stage_findings(stage: "Stage") -> list["Finding"]:
    """All findings of a stage in node order (duplicates included)."""
    if stage.reasoning_tree is None:
        return []
    return stage.reasoning_tree.all_findings()


def collect_session_findings(stages: Iterable["Stage"]) -> list["Finding"]:
    """All findings across stages, in stage order then node order."""
    return [f for stage in stages for f in collect_stage_findings(stage)]


def assign_citation_numbers(unique_findings: Iterable["Finding"]) -> dict[str, int]:
    """Map each source URL to its 1-based position in ``unique_findings``."""
    return {finding.source: index for index, finding in enumerate(unique_findings, start=1)}


# ---------------------------------------------------------------------------
# Reference formatting
# ---------------------------------------------------------------------------


def _format_date(published_date: Optional[str]) -> Optional[str]:
    if not published_date:
        return None
    parsed = parse_iso_date(published_date)
    if parsed is None:
        return published_date.strip() or None
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def format_reference(finding: "Finding", index: int) -> str:
    """Format one reference line.

    Example:
        ``[3] ![icon](https://ex.com/favicon.ico) Jane Doe, [Title](https://ex.com/a), Jan 5, 2024. [Online].``

    The author falls back to the source's host and the icon to 📄 when the
    finding has no favicon; the date is omitted when unknown.
    """
    author = finding.author or extract_domain(finding.source) or finding.source
    title = (finding.title or "Untitled").replace("\n", " ").strip()
    icon = f"![icon]({finding.favicon})" if finding.favicon else NO_ICON
    text = f"{author}, [{title}]({finding.source})"
    date = _format_date(finding.published_date)
    text += f", {date}." if date else "."
    return f"[{index}] {icon} {text} [Online].".replace("\n", " ")


def build_references_section(
    unique_findings: list["Finding"],
    citation_map: dict[str, int],
    *,
    heading: str = REFERENCES_HEADING,
) -> str:
    """Build the deterministic references block (heading included).

    Returns an empty string when there is nothing to reference.
    """
    if not citation_map:
        return ""
    lines = [heading, ""]
    for finding in sorted(unique_findings, key=lambda f: citation_map.get(f.source, 0)):
        number = citation_map.get(finding.source)
        if number is not None:
            lines.append(format_reference(finding, number))
    return "\n".join(lines)


def format_numbered_sources(unique_findings: list["Finding"], citation_map: dict[str, int]) -> str:
    """Render findings as numbered prompt context (``[n] title (url)`` + analysis)."""
    blocks = []
    for finding in unique_findings:
        number = citation_map[finding.source]
        header = f"[{number}] {finding.title or 'Untitled'} ({finding.source})"
        body = finding.analysis or finding.content
        blocks.append(f"{header}\n{body}")
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------


def extract_cited_numbers(text: str) -> set[int]:
    """Extract all citation numbers referenced in ``text``.

    Bare ``[N]`` only; markdown links like ``[1](url)`` are ignored.
    """
    return {int(m.group(1)) for m in _CITATION_RE.finditer(text)}


def max_cited_number(text: str) -> int:
    """Highest inline citation number in ``text``, 0 when there are none."""
    return max(extract_cited_numbers(text), default=0)


def renumber_citations(text: str, mapping: dict[int, int]) -> str:
    """Rewrite inline ``[N]`` markers through ``mapping``; unmapped markers are dropped."""

    def _replace(match: re.Match) -> str:
        new = mapping.get(int(match.group(1)))
        return f"[{new}]" if new is not None else ""

    return _CITATION_RE.sub(_replace, text)


def remove_dangling_citations(text: str, valid_numbers: set[int]) -> str:
    """Remove ``[N]`` markers whose N is not in ``valid_numbers``."""

    def _replace(match: re.Match) -> str:
        if int(match.group(1)) in valid_numbers:
            return match.group(0)
        return ""

    return _CITATION_RE.sub(_replace, text)


def strip_sources_section(text: str) -> str:
    """Remove a model-written Sources/References section.

    Everything from the heading to the next heading of equal or higher
    level (or the end of the text) is dropped.
    """
    match = _SOURCES_HEADING_RE.search(text)
    if not match:
        return text

    start = match.start()
    heading_level = match.group(1).count("#")
    rest = text[match.end() :]
    next_heading = re.search(rf"^#{{1,{heading_level}}}\s+\S", rest, re.MULTILINE)
    end = match.end() + next_heading.start() if next_heading else len(text)
    return text[:start].rstrip() + ("\n\n" + text[end:].lstrip() if next_heading else "")


def split_references(text: str) -> tuple[str, str]:
    """Split ``text`` into (body, references section) at the sources heading."""
    match = _SOURCES_HEADING_RE.search(text)
    if not match:
        return text, ""
    return text[: match.start()].rstrip(), text[match.start() :]


def attach_references(
    text: str,
    unique_findings: list["Finding"],
    citation_map: dict[str, int],
) -> tuple[str, dict[str, int]]:
    """Replace any model-written references with the deterministic block.

    Steps:
    1. Strip a model-written Sources/References section.
    2. Remove citations to numbers outside the map.
    3. Append the deterministic references block.

    Returns:
        Tuple of (processed text, stats) where stats counts cited, dangling
        and unreferenced numbers.
    """
    valid_numbers = set(citation_map.values())
    body = strip_sources_section(text).rstrip()

    cited = extract_cited_numbers(body)
    dangling = cited - valid_numbers
    if dangling:
        logger.warning("Removing %d dangling citation(s): %s", len(dangling), sorted(dangling))
        body = remove_dangling_citations(body, valid_numbers)
        cited = extract_cited_numbers(body)

    references = build_references_section(unique_findings, citation_map)
    if references:
        body = f"{body}\n\n{references}"

    stats = {
        "cited": len(cited),
        "dangling_removed": len(dangling),
        "unreferenced": len(valid_numbers - cited),
    }
    return body, stats


def check_citation_overflow(text: str, reference_count: int) -> Optional[int]:
    """Warn when an inline citation exceeds the reference list.

    Returns:
        The offending maximum citation number, or None when within range.
    """
    highest = max_cited_number(text)
    if highest > reference_count:
        logger.warning(
            "Citation overflow: highest inline citation [%d] exceeds %d reference(s)",
            highest,
            reference_count,
        )
        return highest
    return None
