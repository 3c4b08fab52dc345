"""Port interfaces for the collaborators the pipeline depends on.

These protocols define the contracts that storage and broadcast adapters
must implement. The core domain depends only on these interfaces, not
concrete implementations.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from ai_observer.core.models import (
    ImportState,
    LogRecord,
    MetricDataPoint,
    RecordCounts,
    Span,
)


@runtime_checkable
class TelemetryStoragePort(Protocol):
    """Port for telemetry storage operations.

    Adapters implementing this protocol persist canonical records, answer
    last-value lookups for delta derivation, and keep import state.
    Examples: InMemoryTelemetryStorage, SQLiteTelemetryStorage.
    """

    async def insert_logs(self, logs: Sequence[LogRecord]) -> None:
        """Persist log records."""
        ...

    async def insert_metrics(self, metrics: Sequence[MetricDataPoint]) -> None:
        """Persist metric data points."""
        ...

    async def insert_spans(self, spans: Sequence[Span]) -> None:
        """Persist spans."""
        ...

    async def get_latest_metric_value(
        self,
        name: str,
        service: str,
        attributes: Mapping[str, str],
        *,
        exact: bool = True,
    ) -> tuple[float, bool]:
        """Return the most recent value stored for a metric identity.

        With exact, a stored point matches only when its attribute set
        equals attributes. Otherwise every key in attributes must match and
        extra stored attributes are ignored.

        Returns:
            (value, True) when a prior point exists, else (0.0, False).
        """
        ...

    async def get_import_state(self, source: str, file_path: str) -> ImportState | None:
        """Return the import record for a file, or None if never imported."""
        ...

    async def set_import_state(self, state: ImportState) -> None:
        """Insert or overwrite the import record for (source, file_path)."""
        ...

    async def clear_import_states(self, source: str) -> int:
        """Delete all import records of a source. Returns rows deleted."""
        ...

    async def list_import_states(self, source: str) -> list[ImportState]:
        """Return all import records of a source ordered by path."""
        ...

    async def count_records_between(self, start: float, end: float) -> RecordCounts:
        """Count stored records with start <= timestamp <= end."""
        ...

    async def delete_records_between(self, start: float, end: float) -> RecordCounts:
        """Delete stored records with start <= timestamp <= end."""
        ...


@runtime_checkable
class BroadcastPort(Protocol):
    """Port for pushing freshly ingested records to live viewers.

    Fire-and-forget: implementations must not block ingestion.
    """

    def broadcast(self, message: Mapping[str, Any]) -> None:
        """Publish a message to all subscribers."""
        ...


@runtime_checkable
class CancelSignal(Protocol):
    """Cooperative cancellation flag.

    asyncio.Event and threading.Event both satisfy this protocol.
    """

    def is_set(self) -> bool: ...
