"""Shared fixtures, builders and fake providers for deep research tests.

The fakes implement the real provider interfaces so the workflow exercises
its own request building and structured parsing; only the network is
replaced.
"""

from __future__ import annotations

import json
import re
from typing import Callable, Optional

import pytest

from stagewise.config.research import ResearchConfig
from stagewise.core.errors.llm import LLMError
from stagewise.core.errors.search import SearchProviderError
from stagewise.core.llm_provider import (
    GenerationProvider,
    GenerationRequest,
    GenerationResponse,
    TokenUsage,
)
from stagewise.core.research.models.deep_research import (
    Finding,
    ReasoningNode,
    ReasoningTree,
    ResearchConfiguration,
    ResearchSession,
    Stage,
)
from stagewise.core.research.providers.base import SearchProvider, SearchResult
from stagewise.core.research.workflows.deep_research import (
    DeepResearchWorkflow,
    MemoryEventSink,
)

# ---------------------------------------------------------------------------
# Fake search provider
# ---------------------------------------------------------------------------


class FakeSearchProvider(SearchProvider):
    """Deterministic search provider.

    By default every distinct query gets its own set of URLs. ``responses``
    maps a query substring to a fixed result list; ``failing`` holds query
    substrings that raise ``SearchProviderError``.
    """

    def __init__(
        self,
        responses: Optional[dict[str, list[SearchResult]]] = None,
        failing: Optional[set[str]] = None,
    ):
        self.responses = responses or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, int]] = []
        self._query_ids: dict[str, int] = {}

    def get_provider_name(self) -> str:
        return "fake"

    async def search(self, query: str, max_results: int = 10, **kwargs) -> list[SearchResult]:
        self.calls.append((query, max_results))
        for needle in self.failing:
            if needle in query:
                raise SearchProviderError(provider="fake", message="backend unavailable", retryable=True)
        for needle, results in self.responses.items():
            if needle in query:
                return list(results)[:max_results]
        query_id = self._query_ids.setdefault(query, len(self._query_ids))
        return [make_result(f"https://q{query_id}.example.com/{i}") for i in range(max_results)]


def make_result(url: str, text: str = "Body text about the topic.", **kwargs) -> SearchResult:
    kwargs.setdefault("title", f"Title for {url}")
    return SearchResult(url=url, text=text, **kwargs)


# ---------------------------------------------------------------------------
# Fake generation provider
# ---------------------------------------------------------------------------


def _count(pattern: str, prompt: str, default: int = 3) -> int:
    match = re.search(pattern, prompt)
    return int(match.group(1)) if match else default


def _schema_name(prompt: str) -> Optional[str]:
    for name in ("StagePlan", "ModuleSelection", "AdaptedQuestions", "FollowUpPlan", "ReportOutline"):
        if f'"title": "{name}"' in prompt:
            return name
    return None


class FakeGenerationProvider(GenerationProvider):
    """Generation provider answering each prompt type with canned output.

    Args:
        fail: Operation keys that raise ``LLMError`` ("StagePlan",
            "FollowUpPlan", "ReportOutline", "ModuleSelection", "analysis",
            "stage", "section", "edit")
        overrides: Operation key -> callable(prompt) returning raw text
    """

    name = "fake"
    default_model = "gpt-4o-mini"

    def __init__(
        self,
        fail: Optional[set[str]] = None,
        overrides: Optional[dict[str, Callable[[str], str]]] = None,
    ):
        self.fail = fail or set()
        self.overrides = overrides or {}
        self.requests: list[GenerationRequest] = []
        self._follow_up_counter = 0

    def kind(self, request: GenerationRequest) -> str:
        if request.json_mode:
            return _schema_name(request.prompt) or "json"
        prompt = request.prompt
        if "analyzing one search result" in prompt:
            return "analysis"
        if "analysis of one research stage" in prompt:
            return "stage"
        if "drafting one section" in prompt:
            return "section"
        if "polishing a research report" in prompt:
            return "edit"
        return "text"

    def calls_of(self, kind: str) -> list[GenerationRequest]:
        return [r for r in self.requests if self.kind(r) == kind]

    async def complete(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        kind = self.kind(request)
        if kind in self.fail:
            raise LLMError(f"{kind} failed", provider=self.name)
        if kind in self.overrides:
            text = self.overrides[kind](request.prompt)
        else:
            text = getattr(self, f"_answer_{kind.lower()}", self._answer_text)(request.prompt)
        return GenerationResponse(
            text=text,
            usage=TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
            model=self.default_model,
        )

    def _answer_text(self, prompt: str) -> str:
        return "Generated text."

    def _answer_stageplan(self, prompt: str) -> str:
        stages = _count(r"Design exactly (\d+) distinct", prompt)
        queries = _count(r"write exactly (\d+) research queries", prompt)
        return json.dumps(
            {
                "stages": [
                    {
                        "name": f"Stage {s + 1}",
                        "description": f"Description {s + 1}",
                        "initial_queries": [
                            {"query": f"Stage {s + 1} query {q + 1}", "reasoning": "Because."} for q in range(queries)
                        ],
                    }
                    for s in range(stages)
                ]
            }
        )

    def _answer_moduleselection(self, prompt: str) -> str:
        count = _count(r"Select exactly (\d+) approaches", prompt)
        return json.dumps({"selected_indices": list(range(count))})

    def _answer_adaptedquestions(self, prompt: str) -> str:
        questions = re.findall(r"^\d+\. (.+)$", prompt, re.MULTILINE)
        return json.dumps({"adapted_questions": [f"Adapted: {q}" for q in questions]})

    def _answer_followupplan(self, prompt: str) -> str:
        count = _count(r"Write exactly (\d+) follow-up queries", prompt)
        queries = []
        for _ in range(count):
            self._follow_up_counter += 1
            queries.append(
                {
                    "query": f"Follow-up question {self._follow_up_counter}",
                    "reasoning": "Deepens the findings.",
                    "source_numbers": [1],
                }
            )
        return json.dumps({"follow_up_queries": queries})

    def _answer_reportoutline(self, prompt: str) -> str:
        return json.dumps(
            {
                "title": "Final Report",
                "sections": [
                    {"title": "Background", "key_points": ["context"]},
                    {"title": "Findings", "key_points": ["evidence"]},
                    {"title": "Outlook", "key_points": ["implications"]},
                ],
            }
        )

    def _answer_analysis(self, prompt: str) -> str:
        url = re.search(r"^RESULT URL: (.+)$", prompt, re.MULTILINE)
        return f"Analysis of {url.group(1) if url else 'unknown'}."

    def _answer_stage(self, prompt: str) -> str:
        count = _count(r"using only the numbers 1 to (\d+)", prompt, default=0)
        cites = " ".join(f"[{n}]" for n in range(1, count + 1))
        return f"Stage synthesis. {cites}\n\n## Sources\n\n[1] model-written list"

    def _answer_section(self, prompt: str) -> str:
        title = re.search(r"^SECTION: (.+)$", prompt, re.MULTILINE)
        return f"## {title.group(1) if title else 'Section'}\n\nSection prose [1]."

    def _answer_edit(self, prompt: str) -> str:
        draft = prompt.split("DRAFT:\n", 1)[1]
        return draft.split("\n\nImprove flow", 1)[0]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_configuration(**overrides) -> ResearchConfiguration:
    values = {"max_depth": 2, "max_breadth": 3, "stage_count": 1, "queries_per_stage": 3}
    values.update(overrides)
    return ResearchConfiguration(**values)


def make_finding(source: str, **kwargs) -> Finding:
    kwargs.setdefault("content", f"Content of {source}")
    kwargs.setdefault("analysis", f"Analysis of {source}")
    kwargs.setdefault("title", f"Title {source}")
    return Finding(source=source, **kwargs)


def make_stage(stage_id: int = 0, queries: tuple[str, ...] = ("q1", "q2", "q3"), **kwargs) -> Stage:
    tree = ReasoningTree()
    for query in queries:
        tree.append(ReasoningNode(depth=0, query=query, reasoning="r"))
    kwargs.setdefault("name", f"Stage {stage_id + 1}")
    kwargs.setdefault("description", "A stage")
    return Stage(id=stage_id, reasoning_tree=tree, **kwargs)


def make_session(
    configuration: Optional[ResearchConfiguration] = None,
    stages: Optional[list[Stage]] = None,
    **kwargs,
) -> ResearchSession:
    """Session with a valid configuration; given stages count as staged and announced."""
    kwargs.setdefault("topic", "battery recycling")
    if stages:
        kwargs.setdefault("staging_complete", True)
        kwargs.setdefault("stages_announced", True)
    return ResearchSession(
        configuration=configuration or make_configuration(),
        stages=stages or [],
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine_config() -> ResearchConfig:
    return ResearchConfig(self_discover=False, max_concurrent=3, max_retries=0)


@pytest.fixture
def search_provider() -> FakeSearchProvider:
    return FakeSearchProvider()


@pytest.fixture
def generation_provider() -> FakeGenerationProvider:
    return FakeGenerationProvider()


@pytest.fixture
def sink() -> MemoryEventSink:
    return MemoryEventSink()


@pytest.fixture
def workflow(engine_config, search_provider, generation_provider, sink) -> DeepResearchWorkflow:
    return DeepResearchWorkflow(engine_config, search_provider, generation_provider, sink=sink)
