"""Tests for citation numbering, reference formatting and post-processing."""

from __future__ import annotations

import logging

from stagewise.core.research.workflows.deep_research.citations import (
    REFERENCES_HEADING,
    assign_citation_numbers,
    attach_references,
    build_references_section,
    check_citation_overflow,
    collect_stage_findings,
    collect_unique_sources,
    extract_cited_numbers,
    format_numbered_sources,
    format_reference,
    remove_dangling_citations,
    renumber_citations,
    split_references,
    strip_sources_section,
)
from tests.core.research.workflows.deep_research.conftest import (
    make_finding,
    make_stage,
)


class TestNumbering:
    def test_numbers_are_contiguous_from_one(self):
        findings = [make_finding(u) for u in ("a", "b", "a", "c", "b", "d")]
        mapping = assign_citation_numbers(collect_unique_sources(findings))
        assert sorted(mapping.values()) == [1, 2, 3, 4]
        assert mapping == {"a": 1, "b": 2, "c": 3, "d": 4}

    def test_numbering_is_stable(self):
        unique = collect_unique_sources([make_finding(u) for u in ("x", "y", "z")])
        assert assign_citation_numbers(unique) == assign_citation_numbers(unique)

    def test_empty_findings_give_empty_map(self):
        assert assign_citation_numbers([]) == {}

    def test_prefix_numbering_agrees_with_full_stage(self):
        stage = make_stage(0, queries=("q1", "q2"))
        first, second = stage.reasoning_tree.nodes
        first.record_attempt([make_finding("a"), make_finding("b")])
        prefix = assign_citation_numbers(collect_unique_sources(collect_stage_findings(stage)))
        second.record_attempt([make_finding("b"), make_finding("c")])
        full = assign_citation_numbers(collect_unique_sources(collect_stage_findings(stage)))
        assert all(full[url] == number for url, number in prefix.items())
        assert full["c"] == 3

    def test_stage_without_tree_has_no_findings(self):
        stage = make_stage(0)
        stage.reasoning_tree = None
        assert collect_stage_findings(stage) == []


class TestFormatReference:
    def test_full_reference(self):
        finding = make_finding(
            "https://ex.com/a",
            author="Jane Doe",
            title="Solid State Cells",
            favicon="https://ex.com/favicon.ico",
            published_date="2024-01-05",
        )
        assert format_reference(finding, 3) == (
            "[3] ![icon](https://ex.com/favicon.ico) Jane Doe, "
            "[Solid State Cells](https://ex.com/a), Jan 5, 2024. [Online]."
        )

    def test_missing_fields_fall_back(self):
        finding = make_finding("https://news.example.org/story", title=None)
        assert format_reference(finding, 1) == (
            "[1] 📄 news.example.org, [Untitled](https://news.example.org/story). [Online]."
        )

    def test_unparseable_date_is_kept_raw(self):
        finding = make_finding("https://ex.com/a", published_date="sometime in 2023")
        assert ", sometime in 2023. [Online]." in format_reference(finding, 1)

    def test_reference_is_single_line(self):
        finding = make_finding("https://ex.com/a", title="Line one\nline two")
        assert "\n" not in format_reference(finding, 1)


class TestReferencesSection:
    def test_sorted_by_number(self):
        findings = [make_finding("b"), make_finding("a")]
        section = build_references_section(findings, {"a": 1, "b": 2})
        lines = section.splitlines()
        assert lines[0] == REFERENCES_HEADING
        assert lines[2].startswith("[1] ")
        assert lines[3].startswith("[2] ")

    def test_empty_map_gives_empty_section(self):
        assert build_references_section([], {}) == ""

    def test_numbered_sources_prefer_analysis(self):
        finding = make_finding("https://ex.com/a", title="T", analysis="Key point.")
        text = format_numbered_sources([finding], {"https://ex.com/a": 1})
        assert text == "[1] T (https://ex.com/a)\nKey point."


class TestPostProcessing:
    def test_markdown_links_are_not_citations(self):
        assert extract_cited_numbers("See [1] and [2](https://x.y) and [10].") == {1, 10}

    def test_remove_dangling(self):
        assert remove_dangling_citations("A [1] B [7].", {1}) == "A [1] B ."

    def test_renumber_maps_and_drops(self):
        assert renumber_citations("x [1] y [2] z [3]", {1: 4, 2: 1}) == "x [4] y [1] z "

    def test_strip_sources_keeps_following_sections(self):
        text = "# Title\n\nBody [1].\n\n## Sources\n\n[1] junk\n\n## Appendix\n\nMore."
        assert strip_sources_section(text) == "# Title\n\nBody [1].\n\n## Appendix\n\nMore."

    def test_strip_sources_at_end(self):
        assert strip_sources_section("Body.\n\n## References\n\n[1] junk") == "Body."

    def test_split_references(self):
        body, refs = split_references("Body.\n\n## References\n\n[1] a")
        assert body == "Body."
        assert refs == "## References\n\n[1] a"

    def test_split_without_references(self):
        assert split_references("Just body.") == ("Just body.", "")


class TestAttachReferences:
    def test_replaces_model_references_and_drops_dangling(self):
        unique = [make_finding("https://a.com"), make_finding("https://b.com")]
        mapping = assign_citation_numbers(unique)
        text = "Claim [1]. Other [5].\n\n## Sources\n\n[1] made up"
        processed, stats = attach_references(text, unique, mapping)
        body, references = split_references(processed)
        assert body == "Claim [1]. Other ."
        assert "made up" not in processed
        assert references.count("[Online].") == 2
        assert stats == {"cited": 1, "dangling_removed": 1, "unreferenced": 1}

    def test_no_sources_no_references(self):
        processed, stats = attach_references("Nothing found [1].", [], {})
        assert processed == "Nothing found ."
        assert REFERENCES_HEADING not in processed
        assert stats["dangling_removed"] == 1


class TestOverflow:
    def test_overflow_is_reported(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert check_citation_overflow("See [4].", 3) == 4
        assert "Citation overflow" in caplog.text

    def test_within_range(self):
        assert check_citation_overflow("See [3].", 3) is None
