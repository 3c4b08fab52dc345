"""Tests for the pricing registry and cost formulas."""

import json

import pytest
from pydantic import ValidationError

from ai_observer.core.pricing import (
    ClaudeTokenUsage,
    PricingMode,
    PricingRegistry,
    Provider,
    claude_cost,
    claude_cost_with_mode,
    codex_cost,
    gemini_cost_for_type,
    load_rate_table,
    parse_pricing_mode,
)

pytestmark = [pytest.mark.pricing, pytest.mark.tier(0)]

SONNET = "claude-sonnet-4-5-20250929"


class TestModelResolution:
    """Canonical ids, aliases and variant suffixes."""

    def test_canonical_id_resolves_to_itself(self, registry: PricingRegistry) -> None:
        table = registry.for_provider(Provider.CLAUDE)
        assert table is not None
        assert table.resolve(SONNET) == SONNET

    @pytest.mark.tra("Pricing.Lookup.Alias")
    def test_alias_resolves_to_canonical_id(self, registry: PricingRegistry) -> None:
        pricing = registry.lookup(Provider.CLAUDE, "claude-sonnet-4-5")
        assert pricing is not None
        assert pricing.model_id == SONNET

    @pytest.mark.parametrize(
        ("provider", "model", "expected"),
        [
            (Provider.CLAUDE, "anthropic/claude-sonnet-4-5", SONNET),
            (Provider.CLAUDE, "  claude-sonnet-4-5  ", SONNET),
            (Provider.CLAUDE, "claude-sonnet-4-5[1m]", SONNET),
            (Provider.CODEX, "openai/gpt-5", "gpt-5"),
            (Provider.CODEX, "gpt-5-codex", "gpt-5"),
            (Provider.GEMINI, "models/gemini-2.5-pro", "gemini-2.5-pro"),
            (Provider.GEMINI, "google/gemini-2.5-flash", "gemini-2.5-flash"),
            (Provider.GEMINI, "gemini-2.5-pro@001", "gemini-2.5-pro"),
        ],
    )
    def test_normalization(
        self, registry: PricingRegistry, provider: Provider, model: str, expected: str
    ) -> None:
        """Vendor prefixes, whitespace and variant suffixes are ignored."""
        pricing = registry.lookup(provider, model)
        assert pricing is not None
        assert pricing.model_id == expected

    @pytest.mark.tra("Pricing.Lookup.UnknownModel")
    def test_unknown_model_returns_none(self, registry: PricingRegistry) -> None:
        assert registry.lookup(Provider.CLAUDE, "claude-imaginary-9") is None
        assert registry.lookup(Provider.CLAUDE, "") is None

    def test_unknown_provider_table_returns_none(self) -> None:
        assert PricingRegistry().lookup(Provider.CODEX, "gpt-5") is None

    def test_rates_are_per_token(self, registry: PricingRegistry) -> None:
        pricing = registry.lookup(Provider.CLAUDE, SONNET)
        assert pricing is not None
        assert pricing.input_cost_per_token == pytest.approx(3e-6)
        assert pricing.cache_write_cost_per_token == pytest.approx(3.75e-6)


class TestRateTableLoading:
    def test_loads_minimal_document(self) -> None:
        document = json.dumps(
            {
                "provider": "example",
                "models": {
                    "m-1": {
                        "aliases": ["m"],
                        "inputCostPerMillion": 2.0,
                        "outputCostPerMillion": 4.0,
                    }
                },
            }
        )

        table = load_rate_table(Provider.CODEX, document)

        assert table.vendor == "example"
        assert table.aliases == {"m": "m-1"}
        assert table.models["m-1"].cache_read_cost_per_token == 0.0

    def test_negative_rate_is_rejected(self) -> None:
        document = json.dumps(
            {
                "provider": "example",
                "models": {
                    "m-1": {"inputCostPerMillion": -1.0, "outputCostPerMillion": 1.0}
                },
            }
        )

        with pytest.raises(ValidationError):
            load_rate_table(Provider.CODEX, document)

    def test_tables_are_read_only(self, registry: PricingRegistry) -> None:
        table = registry.for_provider(Provider.GEMINI)
        assert table is not None
        with pytest.raises(TypeError):
            table.models["new-model"] = table.models["gemini-2.5-pro"]  # type: ignore[index]


class TestClaudeCost:
    def test_all_token_types_are_billed_separately(
        self, registry: PricingRegistry
    ) -> None:
        usage = ClaudeTokenUsage(
            input_tokens=1000,
            output_tokens=500,
            cache_creation_input_tokens=2000,
            cache_read_input_tokens=10000,
        )

        cost = claude_cost(registry, SONNET, usage)

        assert cost == pytest.approx(0.003 + 0.0075 + 0.0075 + 0.003)

    def test_unknown_model_has_no_cost(self, registry: PricingRegistry) -> None:
        assert claude_cost(registry, "mystery", ClaudeTokenUsage(input_tokens=5)) is None

    def test_negative_counts_clamp_to_zero(self, registry: PricingRegistry) -> None:
        usage = ClaudeTokenUsage(input_tokens=-100, output_tokens=1000)
        assert claude_cost(registry, SONNET, usage) == pytest.approx(0.015)


class TestPricingModes:
    usage = ClaudeTokenUsage(input_tokens=1_000_000)

    def test_auto_prefers_reported_cost(self, registry: PricingRegistry) -> None:
        cost = claude_cost_with_mode(
            registry, PricingMode.AUTO, SONNET, self.usage, 1.23
        )
        assert cost == 1.23

    def test_auto_computes_when_reported_cost_is_missing(
        self, registry: PricingRegistry
    ) -> None:
        cost = claude_cost_with_mode(registry, PricingMode.AUTO, SONNET, self.usage, None)
        assert cost == pytest.approx(3.0)

    def test_auto_computes_when_reported_cost_is_zero(
        self, registry: PricingRegistry
    ) -> None:
        cost = claude_cost_with_mode(registry, PricingMode.AUTO, SONNET, self.usage, 0.0)
        assert cost == pytest.approx(3.0)

    def test_calculate_ignores_reported_cost(self, registry: PricingRegistry) -> None:
        cost = claude_cost_with_mode(
            registry, PricingMode.CALCULATE, SONNET, self.usage, 9.99
        )
        assert cost == pytest.approx(3.0)

    def test_display_never_computes(self, registry: PricingRegistry) -> None:
        assert (
            claude_cost_with_mode(registry, PricingMode.DISPLAY, SONNET, self.usage, None)
            == 0.0
        )
        assert (
            claude_cost_with_mode(registry, PricingMode.DISPLAY, SONNET, self.usage, 0.5)
            == 0.5
        )

    def test_unknown_model_without_reported_cost_is_zero(
        self, registry: PricingRegistry
    ) -> None:
        cost = claude_cost_with_mode(
            registry, PricingMode.CALCULATE, "mystery", self.usage, None
        )
        assert cost == 0.0

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("", PricingMode.AUTO),
            (None, PricingMode.AUTO),
            ("auto", PricingMode.AUTO),
            ("CALCULATE", PricingMode.CALCULATE),
            (" Display ", PricingMode.DISPLAY),
        ],
    )
    def test_parse_pricing_mode(self, value: str | None, expected: PricingMode) -> None:
        assert parse_pricing_mode(value) is expected

    def test_parse_pricing_mode_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="invalid pricing mode"):
            parse_pricing_mode("cheapest")


class TestCodexCost:
    def test_cached_tokens_bill_at_cache_rate(self, registry: PricingRegistry) -> None:
        cost = codex_cost(registry, "gpt-5", 1000, 400, 100)
        assert cost == pytest.approx(600 * 1.25e-6 + 400 * 0.125e-6 + 100 * 10e-6)

    def test_cached_is_capped_at_input(self, registry: PricingRegistry) -> None:
        cost = codex_cost(registry, "gpt-5", 1000, 5000, 0)
        assert cost == pytest.approx(1000 * 0.125e-6)

    def test_unknown_model_has_no_cost(self, registry: PricingRegistry) -> None:
        assert codex_cost(registry, "gpt-unknown", 1, 0, 1) is None


class TestGeminiCost:
    @pytest.mark.parametrize(
        ("token_type", "expected"),
        [
            ("input", 1000 * 1.25e-6),
            ("output", 1000 * 10e-6),
            ("thought", 1000 * 10e-6),
            ("cache", 1000 * 0.125e-6),
        ],
    )
    def test_cost_per_token_type(
        self, registry: PricingRegistry, token_type: str, expected: float
    ) -> None:
        cost = gemini_cost_for_type(registry, "gemini-2.5-pro", token_type, 1000)
        assert cost == pytest.approx(expected)

    def test_tool_tokens_have_no_direct_cost(self, registry: PricingRegistry) -> None:
        assert gemini_cost_for_type(registry, "gemini-2.5-pro", "tool", 1000) is None

    def test_unknown_model_has_no_cost(self, registry: PricingRegistry) -> None:
        assert gemini_cost_for_type(registry, "gemini-0", "input", 1000) is None
