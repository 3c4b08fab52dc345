"""Core domain models for AI CLI telemetry.

All canonical records are frozen dataclasses. Timestamps are Unix
timestamps in seconds (float); span durations are integer nanoseconds.
"""

from dataclasses import dataclass, field

# Aggregation temporality values as defined by OTLP.
TEMPORALITY_DELTA = 1
TEMPORALITY_CUMULATIVE = 2


@dataclass(frozen=True)
class LogRecord:
    """A canonical log record.

    Attributes:
        timestamp: Unix timestamp in seconds.
        service_name: Emitting service (e.g. claude-code, codex_cli_rs).
        severity_text: Severity label (e.g. INFO, ERROR).
        severity_number: OTLP severity number (9 = INFO, 17 = ERROR).
        body: Log body flattened to text.
        attributes: Item-level attributes merged over resource attributes.
        trace_id: Hex trace id for correlation, if any.
        span_id: Hex span id for correlation, if any.
        trace_flags: W3C trace flags.
        resource_attributes: Raw resource attributes.
        scope_name: Instrumentation scope name.
        scope_version: Instrumentation scope version.
    """

    timestamp: float
    service_name: str
    severity_text: str
    severity_number: int
    body: str
    attributes: dict[str, str] = field(default_factory=dict)
    trace_id: str | None = None
    span_id: str | None = None
    trace_flags: int = 0
    resource_attributes: dict[str, str] = field(default_factory=dict)
    scope_name: str = ""
    scope_version: str = ""


@dataclass(frozen=True)
class MetricDataPoint:
    """A canonical metric data point.

    The tuple (metric_name, service_name, attributes) is the identity of the
    series the point belongs to.

    Attributes:
        timestamp: Unix timestamp in seconds.
        service_name: Emitting service.
        metric_name: Metric name (e.g. claude_code.token.usage).
        metric_type: gauge, sum, histogram, exponential_histogram or summary.
        value: Numeric value for gauge and sum points.
        attributes: Data point attributes merged over resource attributes.
        temporality: 1 for delta, 2 for cumulative, None when not applicable.
        is_monotonic: Monotonic flag for sum points.
    """

    timestamp: float
    service_name: str
    metric_name: str
    metric_type: str
    value: float | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    description: str = ""
    unit: str = ""
    temporality: int | None = None
    is_monotonic: bool | None = None
    resource_attributes: dict[str, str] = field(default_factory=dict)
    scope_name: str = ""
    scope_version: str = ""
    count: int | None = None
    sum: float | None = None
    min: float | None = None
    max: float | None = None
    bucket_counts: tuple[int, ...] = ()
    explicit_bounds: tuple[float, ...] = ()
    scale: int | None = None
    zero_count: int | None = None
    positive_offset: int | None = None
    positive_bucket_counts: tuple[int, ...] = ()
    negative_offset: int | None = None
    negative_bucket_counts: tuple[int, ...] = ()
    quantiles: tuple[tuple[float, float], ...] = ()

    @property
    def is_cumulative_counter(self) -> bool:
        """Return True for monotonic sums reported with cumulative temporality."""
        return (
            self.metric_type == "sum"
            and self.temporality == TEMPORALITY_CUMULATIVE
            and bool(self.is_monotonic)
            and self.value is not None
        )


@dataclass(frozen=True)
class SpanEvent:
    """A timestamped event attached to a span."""

    timestamp: float
    name: str
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SpanLink:
    """A link from a span to another span."""

    trace_id: str
    span_id: str
    trace_state: str = ""
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Span:
    """A canonical span.

    Parent/child relations are by id only. A span whose parent is absent
    from storage is treated as a root.

    Attributes:
        timestamp: Span start as Unix timestamp in seconds.
        duration: End minus start in nanoseconds.
        status_code: OK, ERROR or UNSET.
        kind: INTERNAL, SERVER, CLIENT, PRODUCER, CONSUMER or UNSPECIFIED.
    """

    trace_id: str
    span_id: str
    name: str
    service_name: str
    timestamp: float
    duration: int
    parent_span_id: str | None = None
    status_code: str = "UNSET"
    status_message: str = ""
    kind: str = "UNSPECIFIED"
    trace_state: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    resource_attributes: dict[str, str] = field(default_factory=dict)
    scope_name: str = ""
    scope_version: str = ""
    events: tuple[SpanEvent, ...] = ()
    links: tuple[SpanLink, ...] = ()


@dataclass(frozen=True)
class ImportState:
    """Persisted import record for one session file of one source.

    Attributes:
        source: Source identity (claude-code, codex, gemini).
        file_path: Absolute path of the session file.
        file_hash: Hex SHA-256 of the file contents at import time.
        imported_at: Unix timestamp of the import.
        record_count: Number of records parsed from the file.
    """

    source: str
    file_path: str
    file_hash: str
    imported_at: float
    record_count: int


@dataclass(frozen=True)
class RecordCounts:
    """Number of stored logs, metrics and spans in some scope."""

    logs: int = 0
    metrics: int = 0
    spans: int = 0

    @property
    def total(self) -> int:
        return self.logs + self.metrics + self.spans

    def is_empty(self) -> bool:
        return self.total == 0


@dataclass
class SessionParseResult:
    """Records and session metadata parsed from one session file.

    Built up while a parser walks a file, then handed to the importer.
    """

    file_path: str
    session_id: str = ""
    logs: list[LogRecord] = field(default_factory=list)
    metrics: list[MetricDataPoint] = field(default_factory=list)
    spans: list[Span] = field(default_factory=list)
    record_count: int = 0
    first_time: float | None = None
    last_time: float | None = None

    def observe(self, timestamp: float) -> None:
        """Widen the session time range to include timestamp."""
        if self.first_time is None or timestamp < self.first_time:
            self.first_time = timestamp
        if self.last_time is None or timestamp > self.last_time:
            self.last_time = timestamp

    def is_empty(self) -> bool:
        return not (self.logs or self.metrics or self.spans)
