"""Token usage ledger: audit trail plus per-stage and total rollups.

Purely observational; nothing in the workflow branches on these numbers.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# USD per 1M tokens. Reasoning tokens are billed at the output rate.
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gpt-4o": {"input": 2.5, "output": 10.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
    "gpt-4-turbo": {"input": 10.0, "output": 30.0},
    "gpt-4": {"input": 30.0, "output": 60.0},
    "gpt-3.5-turbo": {"input": 0.5, "output": 1.5},
    "o1": {"input": 15.0, "output": 60.0, "reasoning": 60.0},
    "o1-mini": {"input": 3.0, "output": 12.0, "reasoning": 12.0},
    "o3-mini": {"input": 1.1, "output": 4.4, "reasoning": 4.4},
}
DEFAULT_PRICING_MODEL = "gpt-4o"

# Dated snapshots such as "gpt-4o-2024-08-06" bill like their base model.
_DATE_SUFFIX_RE = re.compile(r"-\d{4}-\d{2}-\d{2}$")


def resolve_pricing_model(model: str) -> str:
    """Map a model identifier onto a key of ``MODEL_PRICING``.

    Strips fine-tune (``-ft-...`` / ``ft:...``) and date suffixes; unknown
    models resolve to ``DEFAULT_PRICING_MODEL``.
    """
    base = model.split("-ft-")[0]
    if base.startswith("ft:"):
        base = base[3:].split(":")[0]
    base = _DATE_SUFFIX_RE.sub("", base)
    if base in MODEL_PRICING:
        return base
    return DEFAULT_PRICING_MODEL


def calculate_token_cost(
    model: str,
    prompt_tokens: int = 0,
    completion_tokens: int = 0,
    reasoning_tokens: int = 0,
) -> float:
    """Compute the USD cost of one generation call."""
    pricing = MODEL_PRICING[resolve_pricing_model(model)]
    cost = (prompt_tokens / 1_000_000) * pricing["input"]
    cost += (completion_tokens / 1_000_000) * pricing["output"]
    if reasoning_tokens and "reasoning" in pricing:
        cost += (reasoning_tokens / 1_000_000) * pricing["reasoning"]
    return cost


def format_token_count(count: int) -> str:
    """Format a token count for display ("950", "1.2k", "3.4M")."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1000:
        return f"{count / 1000:.1f}k"
    return str(count)


def format_cost(cost: float) -> str:
    """Format a USD cost with two decimal places."""
    return f"${cost:.2f}"


class TokenTotals(BaseModel):
    """Aggregated counts and cost over a set of generation calls."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    inference_count: int = 0

    def add(self, entry: "TokenUsageEntry") -> None:
        self.prompt_tokens += entry.prompt_tokens
        self.completion_tokens += entry.completion_tokens
        self.reasoning_tokens += entry.reasoning_tokens
        self.total_tokens += entry.total_tokens
        self.cost += entry.cost
        self.inference_count += 1


class StageTokenUsage(TokenTotals):
    stage_id: int
    stage_name: str = ""


class TokenUsageEntry(BaseModel):
    """One generation call in the audit trail."""

    id: str = Field(default_factory=lambda: f"token-{uuid4().hex[:12]}")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    agent: str
    operation: str
    model: str
    stage_id: Optional[int] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


class TokenLedger(BaseModel):
    """Append-only token audit trail with stage and session rollups."""

    audit_trail: list[TokenUsageEntry] = Field(default_factory=list)
    by_stage: dict[int, StageTokenUsage] = Field(default_factory=dict)
    total: TokenTotals = Field(default_factory=TokenTotals)

    def record(
        self,
        *,
        agent: str,
        operation: str,
        model: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        reasoning_tokens: int = 0,
        total_tokens: Optional[int] = None,
        stage_id: Optional[int] = None,
        stage_name: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[TokenUsageEntry]:
        """Append one usage record and update the rollups.

        Returns:
            The new entry, or None when the call reported no tokens.
        """
        if total_tokens is None:
            total_tokens = prompt_tokens + completion_tokens
        if total_tokens <= 0:
            return None

        entry = TokenUsageEntry(
            agent=agent,
            operation=operation,
            model=model,
            stage_id=stage_id,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            reasoning_tokens=reasoning_tokens,
            total_tokens=total_tokens,
            cost=calculate_token_cost(model, prompt_tokens, completion_tokens, reasoning_tokens),
            metadata=metadata or {},
        )
        self.audit_trail.append(entry)

        if stage_id is not None:
            stage_usage = self.by_stage.get(stage_id)
            if stage_usage is None:
                stage_usage = StageTokenUsage(stage_id=stage_id, stage_name=stage_name)
                self.by_stage[stage_id] = stage_usage
            stage_usage.add(entry)

        self.total.add(entry)
        logger.debug(
            "Token usage %s/%s: %s tokens (%s)",
            agent,
            operation,
            format_token_count(total_tokens),
            format_cost(entry.cost),
        )
        return entry

    def summary(self) -> str:
        return (
            f"{format_token_count(self.total.total_tokens)} tokens across "
            f"{self.total.inference_count} calls ({format_cost(self.total.cost)})"
        )
