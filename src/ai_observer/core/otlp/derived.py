"""Vendor-specific metrics synthesized from converted OTLP records.

Derived records are optional: each helper returns an empty list or None
when its input carries nothing to derive.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace

from ai_observer.core.models import TEMPORALITY_DELTA, MetricDataPoint
from ai_observer.core.pricing import PricingRegistry, codex_cost, gemini_cost_for_type

CODEX_SERVICE = "codex_cli_rs"
CODEX_SSE_EVENT = "codex.sse_event"
CODEX_TOKEN_USAGE = "codex_cli_rs.token.usage"
CODEX_COST_USAGE = "codex_cli_rs.cost.usage"

GEMINI_TOKEN_USAGE = "gemini_cli.token.usage"
GEMINI_COST_USAGE = "gemini_cli.cost.usage"

CLAUDE_TOKEN_USAGE = "claude_code.token.usage"
CLAUDE_COST_USAGE = "claude_code.cost.usage"
CLAUDE_TOKEN_USAGE_USER_FACING = "claude_code.token.usage_user_facing"
CLAUDE_COST_USAGE_USER_FACING = "claude_code.cost.usage_user_facing"

# (attribute, token type) pairs read from a response.completed SSE event.
_CODEX_TOKEN_ATTRS = (
    ("input_token_count", "input"),
    ("output_token_count", "output"),
    ("cached_token_count", "cacheRead"),
    ("reasoning_token_count", "reasoning"),
    ("tool_token_count", "tool"),
)


def is_codex_sse_event(service_name: str, attributes: Mapping[str, str]) -> bool:
    """Return True for Codex streaming events, which are not stored as logs."""
    return (
        service_name == CODEX_SERVICE
        and attributes.get("event.name") == CODEX_SSE_EVENT
    )


def _int_attr(attributes: Mapping[str, str], key: str) -> int:
    try:
        return int(attributes.get(key, "0"))
    except ValueError:
        return 0


def extract_codex_metrics(
    registry: PricingRegistry,
    attributes: Mapping[str, str],
    timestamp: float,
    service_name: str,
    resource_attributes: Mapping[str, str],
) -> list[MetricDataPoint]:
    """Build token and cost metrics from a Codex ``response.completed`` event.

    Each event reports the usage of a single response, so the metrics are
    emitted with delta temporality.
    """
    if attributes.get("event.kind") != "response.completed":
        return []
    counts = {
        token_type: _int_attr(attributes, key) for key, token_type in _CODEX_TOKEN_ATTRS
    }
    if not any(counts.values()):
        return []

    model = attributes.get("model") or resource_attributes.get("model") or "unknown"
    base = MetricDataPoint(
        timestamp=timestamp,
        service_name=service_name,
        metric_name=CODEX_TOKEN_USAGE,
        metric_type="sum",
        description="Number of tokens consumed by Codex CLI",
        unit="tokens",
        temporality=TEMPORALITY_DELTA,
        is_monotonic=True,
        resource_attributes=dict(resource_attributes),
    )
    metrics = [
        replace(base, value=float(count), attributes={"model": model, "type": token_type})
        for token_type, count in counts.items()
        if count > 0
    ]

    cost = codex_cost(
        registry, model, counts["input"], counts["cacheRead"], counts["output"]
    )
    if cost is not None:
        metrics.append(
            replace(
                base,
                metric_name=CODEX_COST_USAGE,
                description="Total cost in USD for Codex CLI usage",
                unit="USD",
                value=cost,
                attributes={"model": model},
            )
        )
    return metrics


def derive_gemini_cost(
    registry: PricingRegistry, point: MetricDataPoint
) -> MetricDataPoint | None:
    """Price one Gemini token usage point.

    Accepts both raw ``gemini_cli.token.usage`` points and their ``.delta``
    companions. Returns None for other metrics, missing attributes, token
    types without a direct cost, or models without pricing data.
    """
    if point.metric_name not in (GEMINI_TOKEN_USAGE, f"{GEMINI_TOKEN_USAGE}.delta"):
        return None
    model = point.attributes.get("model", "")
    token_type = point.attributes.get("type", "")
    if not model or not token_type or point.value is None:
        return None
    cost = gemini_cost_for_type(registry, model, token_type, int(point.value))
    if cost is None:
        return None
    return MetricDataPoint(
        timestamp=point.timestamp,
        service_name=point.service_name,
        metric_name=GEMINI_COST_USAGE,
        metric_type="sum",
        value=cost,
        attributes={"model": model},
        description="Total cost in USD for Gemini CLI usage",
        unit="USD",
        temporality=TEMPORALITY_DELTA,
        is_monotonic=True,
        resource_attributes=dict(point.resource_attributes),
        scope_name=point.scope_name,
        scope_version=point.scope_version,
    )


@dataclass
class _ClaudeRequestGroup:
    tokens: dict[str, MetricDataPoint]
    cost: MetricDataPoint | None = None

    def has_cache_activity(self) -> bool:
        return any(
            _positive(self.tokens.get(token_type))
            for token_type in ("cacheRead", "cacheCreation")
        )


def _positive(point: MetricDataPoint | None) -> bool:
    return point is not None and point.value is not None and point.value > 0


def derive_claude_user_facing(
    points: Iterable[MetricDataPoint],
) -> list[MetricDataPoint]:
    """Copy Claude token and cost points of user-facing API calls.

    Points are grouped per API call by (timestamp, model). Only calls with
    cache-read or cache-creation tokens are user-facing; tool-routing calls
    carry no cache activity and are left out.
    """
    groups: dict[tuple[float, str], _ClaudeRequestGroup] = {}
    for point in points:
        if point.metric_name not in (CLAUDE_TOKEN_USAGE, CLAUDE_COST_USAGE):
            continue
        model = point.attributes.get("model", "")
        if not model:
            continue
        group = groups.setdefault((point.timestamp, model), _ClaudeRequestGroup({}))
        if point.metric_name == CLAUDE_COST_USAGE:
            group.cost = point
            continue
        token_type = point.attributes.get("type", "")
        if token_type:
            group.tokens[token_type] = point

    derived: list[MetricDataPoint] = []
    for group in groups.values():
        if not group.has_cache_activity():
            continue
        for token_type in ("input", "output", "cacheRead", "cacheCreation"):
            point = group.tokens.get(token_type)
            if point is not None and _positive(point):
                derived.append(
                    replace(
                        point,
                        metric_name=CLAUDE_TOKEN_USAGE_USER_FACING,
                        description="Token usage for user-facing API calls",
                    )
                )
        if group.cost is not None and _positive(group.cost):
            derived.append(
                replace(
                    group.cost,
                    metric_name=CLAUDE_COST_USAGE_USER_FACING,
                    description="Cost for user-facing API calls",
                )
            )
    return derived
