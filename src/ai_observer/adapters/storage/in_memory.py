"""In-memory storage adapter for telemetry records and import state."""

from collections.abc import Mapping, Sequence

from ai_observer.core.models import (
    ImportState,
    LogRecord,
    MetricDataPoint,
    RecordCounts,
    Span,
)


def _in_range(timestamp: float, start: float, end: float) -> bool:
    return start <= timestamp <= end


class InMemoryTelemetryStorage:
    """In-memory implementation of TelemetryStoragePort.

    Stores records in lists and import state in a dict. Suitable for
    testing and for one-off imports where persistence is not required.
    """

    def __init__(self) -> None:
        self.logs: list[LogRecord] = []
        self.metrics: list[MetricDataPoint] = []
        self.spans: list[Span] = []
        self._import_states: dict[tuple[str, str], ImportState] = {}

    async def insert_logs(self, logs: Sequence[LogRecord]) -> None:
        self.logs.extend(logs)

    async def insert_metrics(self, metrics: Sequence[MetricDataPoint]) -> None:
        self.metrics.extend(metrics)

    async def insert_spans(self, spans: Sequence[Span]) -> None:
        self.spans.extend(spans)

    async def get_latest_metric_value(
        self,
        name: str,
        service: str,
        attributes: Mapping[str, str],
        *,
        exact: bool = True,
    ) -> tuple[float, bool]:
        latest: MetricDataPoint | None = None
        for point in self.metrics:
            if point.metric_name != name or point.service_name != service:
                continue
            if point.value is None:
                continue
            if exact:
                if dict(point.attributes) != dict(attributes):
                    continue
            elif any(point.attributes.get(k) != v for k, v in attributes.items()):
                continue
            # Later inserts win ties.
            if latest is None or point.timestamp >= latest.timestamp:
                latest = point
        if latest is None or latest.value is None:
            return 0.0, False
        return latest.value, True

    async def count_records_between(self, start: float, end: float) -> RecordCounts:
        return RecordCounts(
            logs=sum(1 for r in self.logs if _in_range(r.timestamp, start, end)),
            metrics=sum(1 for r in self.metrics if _in_range(r.timestamp, start, end)),
            spans=sum(1 for r in self.spans if _in_range(r.timestamp, start, end)),
        )

    async def delete_records_between(self, start: float, end: float) -> RecordCounts:
        counts = await self.count_records_between(start, end)
        self.logs = [r for r in self.logs if not _in_range(r.timestamp, start, end)]
        self.metrics = [
            r for r in self.metrics if not _in_range(r.timestamp, start, end)
        ]
        self.spans = [r for r in self.spans if not _in_range(r.timestamp, start, end)]
        return counts

    async def get_import_state(self, source: str, file_path: str) -> ImportState | None:
        return self._import_states.get((source, file_path))

    async def set_import_state(self, state: ImportState) -> None:
        self._import_states[(state.source, state.file_path)] = state

    async def clear_import_states(self, source: str) -> int:
        keys = [key for key in self._import_states if key[0] == source]
        for key in keys:
            del self._import_states[key]
        return len(keys)

    async def list_import_states(self, source: str) -> list[ImportState]:
        states = [s for (src, _), s in self._import_states.items() if src == source]
        return sorted(states, key=lambda s: s.file_path)
