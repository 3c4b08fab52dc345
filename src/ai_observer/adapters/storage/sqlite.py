"""SQLite storage adapter for telemetry records and import state."""

from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import asdict

from ai_observer.adapters.storage.sqlite_base import (
    AsyncConnectionManager,
    attribute_filter,
    dumps_json,
    loads_json_map,
)
from ai_observer.core.models import (
    ImportState,
    LogRecord,
    MetricDataPoint,
    RecordCounts,
    Span,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    service_name TEXT NOT NULL,
    severity_text TEXT NOT NULL DEFAULT '',
    severity_number INTEGER NOT NULL DEFAULT 0,
    body TEXT NOT NULL DEFAULT '',
    attributes TEXT NOT NULL DEFAULT '{}',
    trace_id TEXT,
    span_id TEXT,
    trace_flags INTEGER NOT NULL DEFAULT 0,
    resource_attributes TEXT NOT NULL DEFAULT '{}',
    scope_name TEXT NOT NULL DEFAULT '',
    scope_version TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp);
CREATE INDEX IF NOT EXISTS idx_logs_service_timestamp ON logs(service_name, timestamp);

CREATE TABLE IF NOT EXISTS metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    service_name TEXT NOT NULL,
    metric_name TEXT NOT NULL,
    metric_type TEXT NOT NULL,
    value REAL,
    attributes TEXT NOT NULL DEFAULT '{}',
    description TEXT NOT NULL DEFAULT '',
    unit TEXT NOT NULL DEFAULT '',
    temporality INTEGER,
    is_monotonic INTEGER,
    resource_attributes TEXT NOT NULL DEFAULT '{}',
    scope_name TEXT NOT NULL DEFAULT '',
    scope_version TEXT NOT NULL DEFAULT '',
    distribution TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_metrics_timestamp ON metrics(timestamp);
CREATE INDEX IF NOT EXISTS idx_metrics_identity
    ON metrics(metric_name, service_name, timestamp);

CREATE TABLE IF NOT EXISTS spans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trace_id TEXT NOT NULL,
    span_id TEXT NOT NULL,
    parent_span_id TEXT,
    name TEXT NOT NULL,
    service_name TEXT NOT NULL,
    timestamp REAL NOT NULL,
    duration INTEGER NOT NULL,
    status_code TEXT NOT NULL DEFAULT 'UNSET',
    status_message TEXT NOT NULL DEFAULT '',
    kind TEXT NOT NULL DEFAULT 'UNSPECIFIED',
    trace_state TEXT NOT NULL DEFAULT '',
    attributes TEXT NOT NULL DEFAULT '{}',
    resource_attributes TEXT NOT NULL DEFAULT '{}',
    scope_name TEXT NOT NULL DEFAULT '',
    scope_version TEXT NOT NULL DEFAULT '',
    events TEXT NOT NULL DEFAULT '[]',
    links TEXT NOT NULL DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_spans_timestamp ON spans(timestamp);
CREATE INDEX IF NOT EXISTS idx_spans_trace ON spans(trace_id);

CREATE TABLE IF NOT EXISTS import_state (
    source TEXT NOT NULL,
    file_path TEXT NOT NULL,
    file_hash TEXT NOT NULL,
    imported_at REAL NOT NULL,
    record_count INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (source, file_path)
);
"""

_INSERT_LOG = """
INSERT INTO logs (
    timestamp, service_name, severity_text, severity_number, body, attributes,
    trace_id, span_id, trace_flags, resource_attributes, scope_name, scope_version
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_INSERT_METRIC = """
INSERT INTO metrics (
    timestamp, service_name, metric_name, metric_type, value, attributes,
    description, unit, temporality, is_monotonic, resource_attributes,
    scope_name, scope_version, distribution
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_INSERT_SPAN = """
INSERT INTO spans (
    trace_id, span_id, parent_span_id, name, service_name, timestamp, duration,
    status_code, status_message, kind, trace_state, attributes,
    resource_attributes, scope_name, scope_version, events, links
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_SELECT_LATEST_VALUE = """
SELECT value FROM metrics
WHERE metric_name = ? AND service_name = ? AND value IS NOT NULL{filters}
ORDER BY timestamp DESC, id DESC
LIMIT 1
"""

_SELECT_METRICS_SINCE = """
SELECT timestamp, service_name, metric_name, metric_type, value, attributes,
    description, unit, temporality, is_monotonic, resource_attributes,
    scope_name, scope_version, distribution
FROM metrics
WHERE timestamp > ?
ORDER BY timestamp ASC, id ASC
"""

_UPSERT_IMPORT_STATE = """
INSERT OR REPLACE INTO import_state
    (source, file_path, file_hash, imported_at, record_count)
VALUES (?, ?, ?, ?, ?)
"""

_SELECT_IMPORT_STATE = """
SELECT source, file_path, file_hash, imported_at, record_count
FROM import_state WHERE source = ? AND file_path = ?
"""

_SELECT_IMPORT_STATES = """
SELECT source, file_path, file_hash, imported_at, record_count
FROM import_state WHERE source = ?
ORDER BY file_path ASC
"""

_DELETE_IMPORT_STATES = """
DELETE FROM import_state WHERE source = ?
"""

_RECORD_TABLES = ("logs", "metrics", "spans")

# Distribution fields of histogram and summary points, kept in one JSON column.
_DISTRIBUTION_FIELDS = (
    "count",
    "sum",
    "min",
    "max",
    "bucket_counts",
    "explicit_bounds",
    "scale",
    "zero_count",
    "positive_offset",
    "positive_bucket_counts",
    "negative_offset",
    "negative_bucket_counts",
    "quantiles",
)
_BUCKET_FIELDS = (
    "bucket_counts",
    "explicit_bounds",
    "positive_bucket_counts",
    "negative_bucket_counts",
)


def _distribution(point: MetricDataPoint) -> dict[str, object]:
    data = {}
    for name in _DISTRIBUTION_FIELDS:
        value = getattr(point, name)
        if value is None or value == ():
            continue
        data[name] = value
    return data


def _optional_bool(value: bool | None) -> int | None:
    return None if value is None else int(value)


def _metric_from_row(row: Sequence[object]) -> MetricDataPoint:
    distribution = loads_json_map(row[13])  # type: ignore[arg-type]
    for name in _BUCKET_FIELDS:
        if name in distribution:
            distribution[name] = tuple(distribution[name])
    if "quantiles" in distribution:
        distribution["quantiles"] = tuple(
            (float(q), float(v)) for q, v in distribution["quantiles"]
        )
    monotonic = row[9]
    return MetricDataPoint(
        timestamp=float(row[0]),  # type: ignore[arg-type]
        service_name=str(row[1]),
        metric_name=str(row[2]),
        metric_type=str(row[3]),
        value=None if row[4] is None else float(row[4]),  # type: ignore[arg-type]
        attributes=loads_json_map(row[5]),  # type: ignore[arg-type]
        description=str(row[6]),
        unit=str(row[7]),
        temporality=row[8],  # type: ignore[arg-type]
        is_monotonic=None if monotonic is None else bool(monotonic),
        resource_attributes=loads_json_map(row[10]),  # type: ignore[arg-type]
        scope_name=str(row[11]),
        scope_version=str(row[12]),
        **distribution,
    )


def _import_state_from_row(row: Sequence[object]) -> ImportState:
    return ImportState(
        source=str(row[0]),
        file_path=str(row[1]),
        file_hash=str(row[2]),
        imported_at=float(row[3]),  # type: ignore[arg-type]
        record_count=int(row[4]),  # type: ignore[call-overload]
    )


class SQLiteTelemetryStorage:
    """SQLite implementation of TelemetryStoragePort.

    Stores logs, metric points, spans and import state using aiosqlite for
    non-blocking async operations. Uses WAL mode for concurrent access.
    Attribute maps are JSON columns; last-value lookups filter them with
    json_extract.

    For :memory: databases, a persistent connection is maintained since
    in-memory databases are connection-scoped in SQLite.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._manager = AsyncConnectionManager(db_path, _SCHEMA)

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        await self._manager.close()

    # --- Records ---

    async def insert_logs(self, logs: Sequence[LogRecord]) -> None:
        if not logs:
            return
        rows = [
            (
                log.timestamp,
                log.service_name,
                log.severity_text,
                log.severity_number,
                log.body,
                dumps_json(log.attributes),
                log.trace_id,
                log.span_id,
                log.trace_flags,
                dumps_json(log.resource_attributes),
                log.scope_name,
                log.scope_version,
            )
            for log in logs
        ]
        async with self._manager.transaction() as db:
            await db.executemany(_INSERT_LOG, rows)

    async def insert_metrics(self, metrics: Sequence[MetricDataPoint]) -> None:
        if not metrics:
            return
        rows = [
            (
                point.timestamp,
                point.service_name,
                point.metric_name,
                point.metric_type,
                point.value,
                dumps_json(point.attributes),
                point.description,
                point.unit,
                point.temporality,
                _optional_bool(point.is_monotonic),
                dumps_json(point.resource_attributes),
                point.scope_name,
                point.scope_version,
                dumps_json(_distribution(point)),
            )
            for point in metrics
        ]
        async with self._manager.transaction() as db:
            await db.executemany(_INSERT_METRIC, rows)

    async def insert_spans(self, spans: Sequence[Span]) -> None:
        if not spans:
            return
        rows = [
            (
                span.trace_id,
                span.span_id,
                span.parent_span_id,
                span.name,
                span.service_name,
                span.timestamp,
                span.duration,
                span.status_code,
                span.status_message,
                span.kind,
                span.trace_state,
                dumps_json(span.attributes),
                dumps_json(span.resource_attributes),
                span.scope_name,
                span.scope_version,
                dumps_json([asdict(event) for event in span.events]),
                dumps_json([asdict(link) for link in span.links]),
            )
            for span in spans
        ]
        async with self._manager.transaction() as db:
            await db.executemany(_INSERT_SPAN, rows)

    async def get_latest_metric_value(
        self,
        name: str,
        service: str,
        attributes: Mapping[str, str],
        *,
        exact: bool = True,
    ) -> tuple[float, bool]:
        filters, params = attribute_filter("attributes", attributes, exact=exact)
        query = _SELECT_LATEST_VALUE.format(filters=filters)
        async with self._manager.connection() as db:
            async with db.execute(query, (name, service, *params)) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return 0.0, False
        return float(row[0]), True

    async def read_metrics(self, since: float = 0) -> AsyncIterator[MetricDataPoint]:
        """Read metric points with timestamp > since, oldest first."""
        async with self._manager.connection() as db:
            async with db.execute(_SELECT_METRICS_SINCE, (since,)) as cursor:
                async for row in cursor:
                    yield _metric_from_row(row)

    async def count_records_between(self, start: float, end: float) -> RecordCounts:
        counts: dict[str, int] = {}
        async with self._manager.connection() as db:
            for table in _RECORD_TABLES:
                async with db.execute(
                    f"SELECT COUNT(*) FROM {table} WHERE timestamp BETWEEN ? AND ?",
                    (start, end),
                ) as cursor:
                    row = await cursor.fetchone()
                    counts[table] = row[0] if row else 0
        return RecordCounts(**counts)

    async def delete_records_between(self, start: float, end: float) -> RecordCounts:
        counts: dict[str, int] = {}
        async with self._manager.transaction() as db:
            for table in _RECORD_TABLES:
                cursor = await db.execute(
                    f"DELETE FROM {table} WHERE timestamp BETWEEN ? AND ?",
                    (start, end),
                )
                counts[table] = cursor.rowcount
        return RecordCounts(**counts)

    # --- Import state ---

    async def get_import_state(self, source: str, file_path: str) -> ImportState | None:
        async with self._manager.connection() as db:
            async with db.execute(_SELECT_IMPORT_STATE, (source, file_path)) as cursor:
                row = await cursor.fetchone()
        return None if row is None else _import_state_from_row(row)

    async def set_import_state(self, state: ImportState) -> None:
        async with self._manager.transaction() as db:
            await db.execute(
                _UPSERT_IMPORT_STATE,
                (
                    state.source,
                    state.file_path,
                    state.file_hash,
                    state.imported_at,
                    state.record_count,
                ),
            )

    async def clear_import_states(self, source: str) -> int:
        async with self._manager.transaction() as db:
            cursor = await db.execute(_DELETE_IMPORT_STATES, (source,))
            return cursor.rowcount

    async def list_import_states(self, source: str) -> list[ImportState]:
        async with self._manager.connection() as db:
            async with db.execute(_SELECT_IMPORT_STATES, (source,)) as cursor:
                return [_import_state_from_row(row) async for row in cursor]
