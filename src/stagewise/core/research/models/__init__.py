"""Research models package.

Re-exports the public model types:
    from stagewise.core.research.models import ResearchSession, Stage
"""

from stagewise.core.research.models.deep_research import (
    FINDING_CONTENT_LIMIT,
    DedupCache,
    Finding,
    ReasoningNode,
    ReasoningTree,
    ResearchConfiguration,
    ResearchRequest,
    ResearchSession,
    Stage,
    truncate_content,
)
from stagewise.core.research.models.enums import AgentRole, EventType, SessionStatus
from stagewise.core.research.models.events import ProgressEvent, ProgressInfo, TreeStats
from stagewise.core.research.models.tokens import (
    MODEL_PRICING,
    StageTokenUsage,
    TokenLedger,
    TokenTotals,
    TokenUsageEntry,
    calculate_token_cost,
    format_cost,
    format_token_count,
)

__all__ = [
    "FINDING_CONTENT_LIMIT",
    "AgentRole",
    "DedupCache",
    "EventType",
    "Finding",
    "MODEL_PRICING",
    "ProgressEvent",
    "ProgressInfo",
    "ReasoningNode",
    "ReasoningTree",
    "ResearchConfiguration",
    "ResearchRequest",
    "ResearchSession",
    "SessionStatus",
    "Stage",
    "StageTokenUsage",
    "TokenLedger",
    "TokenTotals",
    "TokenUsageEntry",
    "TreeStats",
    "calculate_token_cost",
    "format_cost",
    "format_token_count",
    "truncate_content",
]
