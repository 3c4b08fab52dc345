"""Conversion of decoded OTLP envelopes into canonical records.

One pure function per signal. Each walks resource -> scope -> items and
produces flat records whose attribute maps merge resource-level and
item-level attributes, item-level winning on collision.
"""

import base64
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ai_observer.core.models import (
    LogRecord,
    MetricDataPoint,
    Span,
    SpanEvent,
    SpanLink,
)
from ai_observer.core.otlp.derived import (
    derive_claude_user_facing,
    derive_gemini_cost,
    extract_codex_metrics,
    is_codex_sse_event,
)
from ai_observer.core.pricing import PricingRegistry
from ai_observer.core.timeutil import nanos_to_seconds, parse_rfc3339

UNKNOWN_SERVICE = "unknown"

_SPAN_KINDS = {
    1: "INTERNAL",
    2: "SERVER",
    3: "CLIENT",
    4: "PRODUCER",
    5: "CONSUMER",
}

_STATUS_CODES = {
    1: "OK",
    2: "ERROR",
}

# Lower bounds of the OTLP severity number ranges.
_SEVERITY_RANGES = (
    (21, "FATAL"),
    (17, "ERROR"),
    (13, "WARN"),
    (9, "INFO"),
    (5, "DEBUG"),
    (1, "TRACE"),
)


@dataclass
class LogConversion:
    """Logs converted from one request plus metrics derived from them."""

    logs: list[LogRecord] = field(default_factory=list)
    derived_metrics: list[MetricDataPoint] = field(default_factory=list)


@dataclass
class MetricConversion:
    """Metric points converted from one request plus derived metrics."""

    metrics: list[MetricDataPoint] = field(default_factory=list)
    derived_metrics: list[MetricDataPoint] = field(default_factory=list)


# --- Attribute helpers ---


def any_value_to_python(value: Any) -> Any:
    """Convert an OTLP AnyValue to a JSON-compatible Python value."""
    kind = value.WhichOneof("value")
    if kind is None:
        return None
    if kind == "array_value":
        return [any_value_to_python(item) for item in value.array_value.values]
    if kind == "kvlist_value":
        return {kv.key: any_value_to_python(kv.value) for kv in value.kvlist_value.values}
    if kind == "bytes_value":
        return base64.b64encode(value.bytes_value).decode("ascii")
    return getattr(value, kind)


def any_value_to_str(value: Any) -> str:
    """Flatten an OTLP AnyValue to text.

    Scalars render as plain text; arrays and key/value lists render as
    compact JSON.
    """
    kind = value.WhichOneof("value")
    if kind is None:
        return ""
    if kind == "string_value":
        return value.string_value
    if kind == "bool_value":
        return "true" if value.bool_value else "false"
    if kind == "int_value":
        return str(value.int_value)
    if kind == "double_value":
        return repr(value.double_value)
    if kind == "bytes_value":
        return base64.b64encode(value.bytes_value).decode("ascii")
    return json.dumps(any_value_to_python(value), separators=(",", ":"))


def attributes_to_dict(attributes: Iterable[Any]) -> dict[str, str]:
    """Flatten a repeated KeyValue field into a string map."""
    return {kv.key: any_value_to_str(kv.value) for kv in attributes}


def merge_attributes(
    resource_attributes: Mapping[str, str], item_attributes: Mapping[str, str]
) -> dict[str, str]:
    """Merge attribute maps; item-level keys win."""
    return {**resource_attributes, **item_attributes}


def service_name_of(resource_attributes: Mapping[str, str]) -> str:
    return resource_attributes.get("service.name") or UNKNOWN_SERVICE


def bytes_to_hex(raw: bytes) -> str:
    return raw.hex()


def severity_text_for(severity_number: int) -> str:
    """Derive a severity label from an OTLP severity number."""
    for lower_bound, text in _SEVERITY_RANGES:
        if severity_number >= lower_bound:
            return text
    return ""


def span_kind_name(kind: int) -> str:
    return _SPAN_KINDS.get(kind, "UNSPECIFIED")


def status_code_name(code: int) -> str:
    return _STATUS_CODES.get(code, "UNSET")


# --- Logs ---


def _log_timestamp(record: Any, attributes: Mapping[str, str]) -> float:
    if record.time_unix_nano:
        return nanos_to_seconds(record.time_unix_nano)
    # Bridged tracing events carry their time as an attribute instead.
    event_time = parse_rfc3339(attributes.get("event.timestamp"))
    if event_time is not None:
        return event_time
    return nanos_to_seconds(record.observed_time_unix_nano)


def convert_logs(request: Any, registry: PricingRegistry) -> LogConversion:
    """Convert an ExportLogsServiceRequest into canonical log records.

    Codex streaming events are not kept as logs; token and cost metrics are
    extracted from them into the derived list instead.
    """
    result = LogConversion()
    for resource_logs in request.resource_logs:
        resource_attrs = attributes_to_dict(resource_logs.resource.attributes)
        service_name = service_name_of(resource_attrs)
        for scope_logs in resource_logs.scope_logs:
            scope = scope_logs.scope
            for record in scope_logs.log_records:
                item_attrs = attributes_to_dict(record.attributes)
                timestamp = _log_timestamp(record, item_attrs)

                if is_codex_sse_event(service_name, item_attrs):
                    result.derived_metrics.extend(
                        extract_codex_metrics(
                            registry, item_attrs, timestamp, service_name, resource_attrs
                        )
                    )
                    continue

                body = any_value_to_str(record.body)
                if not body:
                    body = item_attrs.get("event.name", "")
                severity_number = int(record.severity_number)
                result.logs.append(
                    LogRecord(
                        timestamp=timestamp,
                        service_name=service_name,
                        severity_text=record.severity_text
                        or severity_text_for(severity_number),
                        severity_number=severity_number,
                        body=body,
                        attributes=merge_attributes(resource_attrs, item_attrs),
                        trace_id=bytes_to_hex(record.trace_id) or None,
                        span_id=bytes_to_hex(record.span_id) or None,
                        trace_flags=record.flags,
                        resource_attributes=resource_attrs,
                        scope_name=scope.name,
                        scope_version=scope.version,
                    )
                )
    return result


# --- Metrics ---


def _number_value(point: Any) -> float | None:
    kind = point.WhichOneof("value")
    if kind == "as_double":
        return point.as_double
    if kind == "as_int":
        return float(point.as_int)
    return None


def _optional(message: Any, name: str) -> float | None:
    return getattr(message, name) if message.HasField(name) else None


def _metric_points(metric: Any, base: MetricDataPoint, resource_attrs: dict[str, str]):
    """Yield one MetricDataPoint per OTLP data point of metric."""
    kind = metric.WhichOneof("data")
    if kind is None:
        return
    data = getattr(metric, kind)

    def _base_for(point: Any, **fields: Any) -> MetricDataPoint:
        return MetricDataPoint(
            timestamp=nanos_to_seconds(point.time_unix_nano),
            service_name=base.service_name,
            metric_name=base.metric_name,
            metric_type=kind,
            attributes=merge_attributes(
                resource_attrs, attributes_to_dict(point.attributes)
            ),
            description=base.description,
            unit=base.unit,
            resource_attributes=resource_attrs,
            scope_name=base.scope_name,
            scope_version=base.scope_version,
            **fields,
        )

    if kind == "gauge":
        for point in data.data_points:
            yield _base_for(point, value=_number_value(point))
    elif kind == "sum":
        for point in data.data_points:
            yield _base_for(
                point,
                value=_number_value(point),
                temporality=int(data.aggregation_temporality),
                is_monotonic=data.is_monotonic,
            )
    elif kind == "histogram":
        for point in data.data_points:
            yield _base_for(
                point,
                temporality=int(data.aggregation_temporality),
                count=point.count,
                sum=_optional(point, "sum"),
                min=_optional(point, "min"),
                max=_optional(point, "max"),
                bucket_counts=tuple(point.bucket_counts),
                explicit_bounds=tuple(point.explicit_bounds),
            )
    elif kind == "exponential_histogram":
        for point in data.data_points:
            yield _base_for(
                point,
                temporality=int(data.aggregation_temporality),
                count=point.count,
                sum=_optional(point, "sum"),
                min=_optional(point, "min"),
                max=_optional(point, "max"),
                scale=point.scale,
                zero_count=point.zero_count,
                positive_offset=point.positive.offset,
                positive_bucket_counts=tuple(point.positive.bucket_counts),
                negative_offset=point.negative.offset,
                negative_bucket_counts=tuple(point.negative.bucket_counts),
            )
    elif kind == "summary":
        for point in data.data_points:
            yield _base_for(
                point,
                count=point.count,
                sum=point.sum,
                quantiles=tuple((q.quantile, q.value) for q in point.quantile_values),
            )


def convert_metrics(request: Any, registry: PricingRegistry) -> MetricConversion:
    """Convert an ExportMetricsServiceRequest into canonical data points.

    Derived metrics: Gemini cost for token points that are already
    per-interval (cumulative ones are priced from their deltas by the
    caller), and Claude user-facing copies.
    """
    result = MetricConversion()
    for resource_metrics in request.resource_metrics:
        resource_attrs = attributes_to_dict(resource_metrics.resource.attributes)
        service_name = service_name_of(resource_attrs)
        for scope_metrics in resource_metrics.scope_metrics:
            scope = scope_metrics.scope
            for metric in scope_metrics.metrics:
                base = MetricDataPoint(
                    timestamp=0.0,
                    service_name=service_name,
                    metric_name=metric.name,
                    metric_type="",
                    description=metric.description,
                    unit=metric.unit,
                    scope_name=scope.name,
                    scope_version=scope.version,
                )
                result.metrics.extend(_metric_points(metric, base, resource_attrs))

    for point in result.metrics:
        if point.is_cumulative_counter:
            continue
        cost = derive_gemini_cost(registry, point)
        if cost is not None:
            result.derived_metrics.append(cost)
    result.derived_metrics.extend(derive_claude_user_facing(result.metrics))
    return result


# --- Traces ---


def _convert_span(
    span: Any,
    service_name: str,
    resource_attrs: dict[str, str],
    scope: Any,
) -> Span:
    start = span.start_time_unix_nano
    end = span.end_time_unix_nano
    return Span(
        trace_id=bytes_to_hex(span.trace_id),
        span_id=bytes_to_hex(span.span_id),
        parent_span_id=bytes_to_hex(span.parent_span_id) or None,
        name=span.name,
        service_name=service_name,
        timestamp=nanos_to_seconds(start),
        duration=max(0, end - start),
        status_code=status_code_name(int(span.status.code)),
        status_message=span.status.message,
        kind=span_kind_name(int(span.kind)),
        trace_state=span.trace_state,
        attributes=merge_attributes(resource_attrs, attributes_to_dict(span.attributes)),
        resource_attributes=resource_attrs,
        scope_name=scope.name,
        scope_version=scope.version,
        events=tuple(
            SpanEvent(
                timestamp=nanos_to_seconds(event.time_unix_nano),
                name=event.name,
                attributes=attributes_to_dict(event.attributes),
            )
            for event in span.events
        ),
        links=tuple(
            SpanLink(
                trace_id=bytes_to_hex(link.trace_id),
                span_id=bytes_to_hex(link.span_id),
                trace_state=link.trace_state,
                attributes=attributes_to_dict(link.attributes),
            )
            for link in span.links
        ),
    )


def convert_traces(request: Any) -> list[Span]:
    """Convert an ExportTraceServiceRequest into canonical spans."""
    spans: list[Span] = []
    for resource_spans in request.resource_spans:
        resource_attrs = attributes_to_dict(resource_spans.resource.attributes)
        service_name = service_name_of(resource_attrs)
        for scope_spans in resource_spans.scope_spans:
            for span in scope_spans.spans:
                spans.append(
                    _convert_span(span, service_name, resource_attrs, scope_spans.scope)
                )
    return spans
