"""Cumulative-to-delta derivation for monotonic counters.

For every cumulative monotonic sum point, the most recent earlier value of
the same series is looked up and the increase is emitted as a companion
``<name>.delta`` point with delta temporality.

Consistency caveat: the previous value is read from storage and the new
cumulative value is written by the caller afterwards, with no lock in
between. Two concurrent requests for the same series can both read the
same baseline. Exact deltas require each series to be exported serially.
"""

from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Protocol

from ai_observer.core.models import TEMPORALITY_DELTA, MetricDataPoint

DELTA_SUFFIX = ".delta"

# Series of these metrics are identified by a subset of their attributes,
# so that volatile attributes (session ids, versions) do not split them.
ESSENTIAL_ATTRIBUTES: Mapping[str, tuple[str, ...]] = {
    "gemini_cli.token.usage": ("type", "model"),
    "gemini_cli.api.request.count": ("model", "status_code"),
    "gemini_cli.file.operation.count": ("operation",),
    "gemini_cli.session.count": (),
}


class LastValueLookup(Protocol):
    """Async last-value query; exact=False matches on a subset of attributes."""

    def __call__(
        self,
        name: str,
        service: str,
        attributes: Mapping[str, str],
        *,
        exact: bool = True,
    ) -> Awaitable[tuple[float, bool]]: ...


@dataclass
class MetricBatch:
    """Result of metric derivation, kept as three lists.

    Attributes:
        original: Converted points as received (cumulative values kept).
        deltas: Companion delta points for cumulative counters.
        derived: Other derived points (e.g. cost, user-facing copies).
    """

    original: list[MetricDataPoint] = field(default_factory=list)
    deltas: list[MetricDataPoint] = field(default_factory=list)
    derived: list[MetricDataPoint] = field(default_factory=list)

    def all(self) -> list[MetricDataPoint]:
        return [*self.original, *self.deltas, *self.derived]


def identity_attributes(point: MetricDataPoint) -> dict[str, str]:
    """Return the attributes that identify point's series."""
    essential = ESSENTIAL_ATTRIBUTES.get(point.metric_name)
    if essential is None:
        return dict(point.attributes)
    return {key: point.attributes[key] for key in essential if key in point.attributes}


def series_key(point: MetricDataPoint) -> str:
    """Build a stable string key for a point's series identity."""
    attrs = identity_attributes(point)
    parts = [point.metric_name, point.service_name]
    parts.extend(f"{key}={attrs[key]}" for key in sorted(attrs))
    return "|".join(parts)


def compute_delta(current: float, previous: float) -> float:
    """Increase since previous, clamped to zero across counter resets."""
    return max(0.0, current - previous)


def make_delta_point(point: MetricDataPoint, delta: float) -> MetricDataPoint:
    return replace(
        point,
        metric_name=point.metric_name + DELTA_SUFFIX,
        value=delta,
        temporality=TEMPORALITY_DELTA,
    )


async def derive_deltas(
    points: Iterable[MetricDataPoint], lookup: LastValueLookup
) -> list[MetricDataPoint]:
    """Compute delta companions for the cumulative counters in points.

    Within one batch, points are processed in timestamp order and an
    earlier point of the same series serves as the baseline; otherwise the
    lookup is asked for the last stored value. A series without any prior
    value gets no delta: its first sample becomes the baseline. Stored
    points match a series only on their full attribute set, except for
    metrics with essential attributes, which match on that subset.

    Args:
        points: Converted metric points, in any order.
        lookup: Async callable (name, service, attributes, exact=...) ->
            (value, found).

    Returns:
        Delta points, one per cumulative point that had a baseline.
    """
    counters = sorted(
        (point for point in points if point.is_cumulative_counter),
        key=lambda point: point.timestamp,
    )
    baselines: dict[str, float] = {}
    deltas: list[MetricDataPoint] = []
    for point in counters:
        current = point.value or 0.0
        key = series_key(point)
        if key in baselines:
            previous, found = baselines[key], True
        else:
            previous, found = await lookup(
                point.metric_name,
                point.service_name,
                identity_attributes(point),
                exact=point.metric_name not in ESSENTIAL_ATTRIBUTES,
            )
        baselines[key] = current
        if not found:
            continue
        deltas.append(make_delta_point(point, compute_delta(current, previous)))
    return deltas
