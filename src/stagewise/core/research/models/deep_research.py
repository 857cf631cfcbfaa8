"""Deep research session models (stages, reasoning trees, findings).

A ``ResearchSession`` is the single value the workflow driver threads through
every step. Components receive it, mutate only the parts they own, and the
driver swaps the whole value in when the step returns.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from ulid import ULID

from stagewise.core.errors.research import ConfigurationInvalidError
from stagewise.core.research.models.enums import SessionStatus
from stagewise.core.research.models.tokens import TokenLedger

logger = logging.getLogger(__name__)

# Finding excerpts are cut to this many characters before the ellipsis.
FINDING_CONTENT_LIMIT: int = 1000


def truncate_content(text: str, limit: int = FINDING_CONTENT_LIMIT) -> str:
    """Truncate ``text`` to ``limit`` characters, marking the cut with "..."."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class ResearchConfiguration(BaseModel):
    """Per-request sizing knobs for a research session.

    All work sizes (stages, initial queries, follow-ups per expansion, tree
    depth) are bounded by these four integers.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    max_depth: int = Field(default=2, ge=1, le=3, alias="maxDepth", description="Tree depth levels per stage")
    max_breadth: int = Field(
        default=3,
        ge=2,
        le=5,
        alias="maxBreadth",
        description="Nodes researched per rung, follow-ups per expansion, findings per node",
    )
    stage_count: int = Field(default=3, ge=1, le=5, alias="stageCount", description="Number of research stages")
    queries_per_stage: int = Field(
        default=3,
        ge=1,
        le=5,
        alias="queriesPerStage",
        description="Depth-0 queries generated per stage",
    )

    @classmethod
    def from_request(cls, data: Optional[Mapping[str, Any]]) -> "ResearchConfiguration":
        """Validate a request's configuration mapping (camelCase or snake_case keys).

        Raises:
            ConfigurationInvalidError: If a value is missing its type or outside bounds.
        """
        try:
            return cls.model_validate(dict(data or {}))
        except ValidationError as e:
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise ConfigurationInvalidError(
                "Invalid research configuration: " + "; ".join(errors),
                errors=errors,
            ) from e

    @property
    def expected_nodes_per_stage(self) -> int:
        """Node count a stage is expected to reach (used by the progress estimator)."""
        return self.queries_per_stage + (self.max_breadth if self.max_depth > 1 else 0)


class Finding(BaseModel):
    """One analyzed search result attached to a reasoning node."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Source URL, unique within a node's findings")
    content: str = Field(default="", description="Truncated excerpt of the source text")
    analysis: Optional[str] = Field(default=None, description="Generated analysis of the source")
    title: Optional[str] = None
    author: Optional[str] = None
    published_date: Optional[str] = None
    favicon: Optional[str] = None
    image: Optional[str] = None


class ReasoningNode(BaseModel):
    """A single query in a stage's reasoning tree.

    ``attempts`` and ``search_failed`` record research attempts separately from
    findings, so a node whose search legitimately returns nothing is not
    picked up again on every step.
    """

    id: str = Field(default_factory=lambda: f"node-{uuid4().hex[:8]}")
    parent_id: Optional[str] = None
    depth: int = Field(default=0, ge=0)
    query: str
    reasoning: str = ""
    findings: list[Finding] = Field(default_factory=list)
    reflection: Optional[str] = None
    children: list[str] = Field(default_factory=list)
    attempts: int = Field(default=0, ge=0, description="Research attempts made for this node")
    search_failed: bool = Field(default=False, description="Whether the last attempt hit a provider failure")

    @property
    def attempted(self) -> bool:
        return self.attempts > 0

    def is_pending(self, max_attempts: int = 1) -> bool:
        """Whether the node still needs research.

        A node is pending until its first attempt, and stays pending after a
        provider failure until ``max_attempts`` attempts have been made.
        """
        if self.findings:
            return False
        if self.attempts == 0:
            return True
        return self.search_failed and self.attempts < max_attempts

    def record_attempt(self, findings: list[Finding], *, search_failed: bool = False) -> None:
        """Record a research attempt; findings are set once and never cleared."""
        self.attempts += 1
        self.search_failed = search_failed
        if findings and not self.findings:
            self.findings = list(findings)


class ReasoningTree(BaseModel):
    """Append-only, ordered list of reasoning nodes for one stage."""

    nodes: list[ReasoningNode] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, node_id: str) -> Optional[ReasoningNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def append(self, node: ReasoningNode) -> ReasoningNode:
        """Append ``node``, linking it under its parent when one is set."""
        if node.parent_id is not None:
            parent = self.get(node.parent_id)
            if parent is None:
                logger.warning("Parent %s not found for node %s; attaching at root", node.parent_id, node.id)
                node.parent_id = None
            elif node.id not in parent.children:
                parent.children.append(node.id)
        self.nodes.append(node)
        return node

    def nodes_at_depth(self, depth: int) -> list[ReasoningNode]:
        return [n for n in self.nodes if n.depth == depth]

    @property
    def current_max_depth(self) -> int:
        """Deepest level present in the tree, or -1 when the tree is empty."""
        return max((n.depth for n in self.nodes), default=-1)

    @property
    def nodes_with_findings(self) -> int:
        return sum(1 for n in self.nodes if n.findings)

    def pending_nodes(self, max_attempts: int = 1, *, depth: Optional[int] = None, deeper: bool = False) -> list[ReasoningNode]:
        """Nodes that still need research, in tree order.

        Args:
            max_attempts: Attempt limit for nodes whose search failed.
            depth: Restrict to one depth level.
            deeper: Restrict to depth > 0.
        """
        pending = [n for n in self.nodes if n.is_pending(max_attempts)]
        if depth is not None:
            pending = [n for n in pending if n.depth == depth]
        if deeper:
            pending = [n for n in pending if n.depth > 0]
        return pending

    def all_findings(self) -> list[Finding]:
        """Every finding in node order (duplicates included)."""
        return [f for n in self.nodes for f in n.findings]


class Stage(BaseModel):
    """One phase of research with its own reasoning tree and analysis."""

    id: int = Field(..., ge=0, description="0-based stage index")
    name: str
    description: str = ""
    reasoning_tree: Optional[ReasoningTree] = None
    reasoning_complete: bool = False
    analysis_complete: bool = False
    analysis: Optional[str] = None
    fallback_used: bool = Field(default=False, description="Created from the deterministic fallback template")

    @property
    def node_count(self) -> int:
        return len(self.reasoning_tree) if self.reasoning_tree is not None else 0

    def summary(self) -> dict[str, Any]:
        """Compact representation for progress events."""
        tree = self.reasoning_tree
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "queries": [n.query for n in tree.nodes_at_depth(0)] if tree else [],
            "reasoningComplete": self.reasoning_complete,
            "analysisComplete": self.analysis_complete,
        }


class DedupCache(BaseModel):
    """Stage-scoped memory of visited source URLs and their analyses."""

    stage_id: Optional[int] = None
    searched_urls: set[str] = Field(default_factory=set)
    analysis_cache: dict[str, str] = Field(default_factory=dict)
    usage: dict[str, int] = Field(default_factory=dict, description="Times each URL has been served")

    def reset(self, stage_id: int) -> None:
        """Start over for a new stage."""
        if self.stage_id is not None and self.stage_id != stage_id:
            logger.debug(
                "Resetting dedup cache: stage %s -> %s (%d urls dropped)",
                self.stage_id,
                stage_id,
                len(self.searched_urls),
            )
        self.stage_id = stage_id
        self.searched_urls = set()
        self.analysis_cache = {}
        self.usage = {}

    def ensure_stage(self, stage_id: int) -> None:
        if self.stage_id != stage_id:
            self.reset(stage_id)

    def lookup(self, url: str) -> Optional[str]:
        return self.analysis_cache.get(url)

    def is_searched(self, url: str) -> bool:
        return url in self.searched_urls

    def mark_searched(self, url: str) -> None:
        self.searched_urls.add(url)

    def store(self, url: str, analysis: str) -> None:
        self.searched_urls.add(url)
        self.analysis_cache[url] = analysis
        self.record_use(url)

    def record_use(self, url: str) -> None:
        self.usage[url] = self.usage.get(url, 0) + 1


class ResearchRequest(BaseModel):
    """Session request submitted by the calling layer."""

    model_config = ConfigDict(populate_by_name=True)

    topic: str = Field(..., min_length=1)
    context: Optional[str] = None
    configuration: Optional[ResearchConfiguration] = None


class ResearchSession(BaseModel):
    """State of one research run, owned by the workflow driver."""

    id: str = Field(default_factory=lambda: str(ULID()))
    topic: str
    context: Optional[str] = None
    configuration: Optional[ResearchConfiguration] = None
    stages: list[Stage] = Field(default_factory=list)
    current_stage_index: int = 0
    staging_complete: bool = False
    stages_announced: bool = False
    network_complete: bool = False
    final_report: Optional[str] = None
    draft_report: Optional[str] = None
    citations: dict[str, int] = Field(default_factory=dict, description="Report-scoped citation map")
    dedup: DedupCache = Field(default_factory=DedupCache)
    token_usage: TokenLedger = Field(default_factory=TokenLedger)
    status: SessionStatus = SessionStatus.RUNNING
    error: Optional[str] = None
    last_progress: int = Field(default=0, ge=0, le=100)
    fallback_used: bool = False
    step_count: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_stage_ids(self) -> "ResearchSession":
        for index, stage in enumerate(self.stages):
            if stage.id != index:
                raise ValueError(f"Stage at position {index} has id {stage.id}")
        return self

    @classmethod
    def from_request(cls, request: ResearchRequest) -> "ResearchSession":
        return cls(topic=request.topic, context=request.context, configuration=request.configuration)

    @property
    def current_stage(self) -> Optional[Stage]:
        if 0 <= self.current_stage_index < len(self.stages):
            return self.stages[self.current_stage_index]
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.RUNNING

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def mark_completed(self) -> None:
        """Mark the research session as completed."""
        self.status = SessionStatus.COMPLETED
        self.completed_at = datetime.now(timezone.utc)
        self.updated_at = self.completed_at

    def mark_failed(self, error: str) -> None:
        """Mark the research session as failed with an error message.

        Args:
            error: Description of why the research failed
        """
        self.status = SessionStatus.FAILED
        self.error = error
        self.completed_at = datetime.now(timezone.utc)
        self.updated_at = self.completed_at
        self.metadata["terminal_status"] = "failed"

    def mark_cancelled(self, reason: Optional[str] = None) -> None:
        """Mark the research session as cancelled.

        Args:
            reason: Optional description of why the session was abandoned
        """
        self.status = SessionStatus.CANCELLED
        self.error = reason or "Research cancelled"
        self.completed_at = datetime.now(timezone.utc)
        self.updated_at = self.completed_at
        self.metadata["terminal_status"] = "cancelled"
