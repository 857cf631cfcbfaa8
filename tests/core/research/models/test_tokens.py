"""Tests for the token usage ledger and cost helpers."""

from __future__ import annotations

import pytest

from stagewise.core.research.models.tokens import (
    DEFAULT_PRICING_MODEL,
    TokenLedger,
    calculate_token_cost,
    format_cost,
    format_token_count,
    resolve_pricing_model,
)


class TestPricing:
    @pytest.mark.parametrize(
        "model,expected",
        [
            ("gpt-4o-mini", "gpt-4o-mini"),
            ("gpt-4o-2024-08-06", "gpt-4o"),
            ("gpt-4o-mini-ft-acme-123", "gpt-4o-mini"),
            ("ft:gpt-4o-mini:acme::abc123", "gpt-4o-mini"),
            ("some-unknown-model", DEFAULT_PRICING_MODEL),
        ],
    )
    def test_resolve_pricing_model(self, model, expected):
        assert resolve_pricing_model(model) == expected

    def test_cost_uses_per_million_rates(self):
        assert calculate_token_cost("gpt-4o", 1_000_000, 1_000_000) == pytest.approx(12.5)

    def test_reasoning_tokens_billed_only_when_priced(self):
        assert calculate_token_cost("o1-mini", 0, 0, reasoning_tokens=1_000_000) == pytest.approx(12.0)
        assert calculate_token_cost("gpt-4o", 0, 0, reasoning_tokens=1_000_000) == 0


class TestFormatting:
    @pytest.mark.parametrize(
        "count,expected",
        [(950, "950"), (1200, "1.2k"), (3_400_000, "3.4M")],
    )
    def test_format_token_count(self, count, expected):
        assert format_token_count(count) == expected

    def test_format_cost(self):
        assert format_cost(0.4213) == "$0.42"


class TestLedger:
    def test_record_updates_rollups(self):
        ledger = TokenLedger()
        ledger.record(agent="reasoning", operation="analyze-result", model="gpt-4o-mini",
                      prompt_tokens=100, completion_tokens=50, stage_id=0, stage_name="Foundations")
        ledger.record(agent="reporting", operation="edit-report", model="gpt-4o-mini",
                      prompt_tokens=10, completion_tokens=5)

        assert len(ledger.audit_trail) == 2
        assert ledger.total.total_tokens == 165
        assert ledger.total.inference_count == 2
        assert ledger.by_stage[0].total_tokens == 150
        assert ledger.by_stage[0].stage_name == "Foundations"
        assert list(ledger.by_stage) == [0]

    def test_zero_usage_is_not_recorded(self):
        ledger = TokenLedger()
        assert ledger.record(agent="staging", operation="generate-stages", model="gpt-4o") is None
        assert ledger.audit_trail == []

    def test_explicit_total_wins(self):
        ledger = TokenLedger()
        entry = ledger.record(agent="staging", operation="generate-stages", model="o1-mini",
                              prompt_tokens=10, completion_tokens=10, reasoning_tokens=30, total_tokens=50)
        assert entry.total_tokens == 50
        assert ledger.total.reasoning_tokens == 30

    def test_summary(self):
        ledger = TokenLedger()
        ledger.record(agent="staging", operation="generate-stages", model="gpt-4o",
                      prompt_tokens=100_000, completion_tokens=20_000)
        assert ledger.summary() == "120.0k tokens across 1 calls ($0.45)"
