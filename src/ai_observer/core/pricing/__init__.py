"""Model pricing tables and cost calculation."""

from ai_observer.core.pricing.costs import (
    ClaudeTokenUsage,
    PricingMode,
    claude_cost,
    claude_cost_with_mode,
    codex_cost,
    gemini_cost_for_type,
    parse_pricing_mode,
)
from ai_observer.core.pricing.registry import (
    ModelPricing,
    PricingRegistry,
    Provider,
    ProviderPricing,
    load_rate_table,
    load_registry,
)

__all__ = [
    "ClaudeTokenUsage",
    "ModelPricing",
    "PricingMode",
    "PricingRegistry",
    "Provider",
    "ProviderPricing",
    "claude_cost",
    "claude_cost_with_mode",
    "codex_cost",
    "gemini_cost_for_type",
    "load_rate_table",
    "load_registry",
    "parse_pricing_mode",
]
