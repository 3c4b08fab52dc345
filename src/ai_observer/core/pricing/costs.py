"""Cost formulas for each provider.

All functions return None when the model has no pricing data, so callers
can tell "unknown model" apart from a genuine zero cost.
"""

from dataclasses import dataclass
from enum import StrEnum

from ai_observer.core.pricing.registry import PricingRegistry, Provider


class PricingMode(StrEnum):
    """How Claude session costs are chosen.

    AUTO prefers the vendor-reported cost and falls back to computing it,
    CALCULATE always computes, DISPLAY only ever uses the vendor value.
    """

    AUTO = "auto"
    CALCULATE = "calculate"
    DISPLAY = "display"


def parse_pricing_mode(value: str | None) -> PricingMode:
    """Parse a pricing mode name (case-insensitive, empty means auto).

    Raises:
        ValueError: If value names no known mode.
    """
    normalized = (value or "").strip().lower()
    if not normalized:
        return PricingMode.AUTO
    try:
        return PricingMode(normalized)
    except ValueError:
        raise ValueError(
            f"invalid pricing mode: {value!r} (valid: auto, calculate, display)"
        ) from None


@dataclass(frozen=True)
class ClaudeTokenUsage:
    """Token counts reported for one Claude API request."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0


def claude_cost(
    registry: PricingRegistry, model: str, usage: ClaudeTokenUsage
) -> float | None:
    """Compute Claude cost in USD.

    Claude reports uncached input, cache creation and cache reads as
    separate counts, each billed at its own rate.
    """
    pricing = registry.lookup(Provider.CLAUDE, model)
    if pricing is None:
        return None
    return (
        max(0, usage.input_tokens) * pricing.input_cost_per_token
        + max(0, usage.output_tokens) * pricing.output_cost_per_token
        + max(0, usage.cache_creation_input_tokens) * pricing.cache_write_cost_per_token
        + max(0, usage.cache_read_input_tokens) * pricing.cache_read_cost_per_token
    )


def claude_cost_with_mode(
    registry: PricingRegistry,
    mode: PricingMode,
    model: str,
    usage: ClaudeTokenUsage,
    cost_usd: float | None,
) -> float:
    """Pick the Claude cost to record according to mode.

    Returns 0.0 when no cost can be determined.
    """
    if mode is PricingMode.DISPLAY:
        return cost_usd if cost_usd is not None else 0.0
    if mode is PricingMode.AUTO and cost_usd is not None and cost_usd > 0:
        return cost_usd
    calculated = claude_cost(registry, model, usage)
    return calculated if calculated is not None else 0.0


def codex_cost(
    registry: PricingRegistry,
    model: str,
    input_tokens: int,
    cached_tokens: int,
    output_tokens: int,
) -> float | None:
    """Compute Codex cost in USD.

    Codex input counts include cached tokens; the cached share is billed at
    the cache-read rate and can never exceed the input count.
    """
    pricing = registry.lookup(Provider.CODEX, model)
    if pricing is None:
        return None
    total_input = max(0, input_tokens)
    cached = min(max(0, cached_tokens), total_input)
    return (
        (total_input - cached) * pricing.input_cost_per_token
        + cached * pricing.cache_read_cost_per_token
        + max(0, output_tokens) * pricing.output_cost_per_token
    )


# Gemini token types as reported by the gemini_cli.token.usage metric.
GEMINI_INPUT = "input"
GEMINI_OUTPUT = "output"
GEMINI_CACHE = "cache"
GEMINI_THOUGHT = "thought"
GEMINI_TOOL = "tool"


def gemini_cost_for_type(
    registry: PricingRegistry, model: str, token_type: str, count: int
) -> float | None:
    """Compute the Gemini cost of count tokens of one token type.

    Thought tokens bill as output. Tool tokens and unrecognized types have
    no direct cost and return None.
    """
    pricing = registry.lookup(Provider.GEMINI, model)
    if pricing is None:
        return None
    tokens = max(0, count)
    if token_type == GEMINI_INPUT:
        return tokens * pricing.input_cost_per_token
    if token_type in (GEMINI_OUTPUT, GEMINI_THOUGHT):
        return tokens * pricing.output_cost_per_token
    if token_type == GEMINI_CACHE:
        return tokens * pricing.cache_read_cost_per_token
    return None
