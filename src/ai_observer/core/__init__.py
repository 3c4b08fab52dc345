"""Core domain: canonical models, ports, pricing and OTLP processing."""

from ai_observer.core.errors import (
    AIObserverError,
    DecodeError,
    ImportCancelledError,
    SessionParseError,
    StorageError,
)
from ai_observer.core.models import (
    ImportState,
    LogRecord,
    MetricDataPoint,
    RecordCounts,
    SessionParseResult,
    Span,
)

__all__ = [
    "AIObserverError",
    "DecodeError",
    "ImportCancelledError",
    "ImportState",
    "LogRecord",
    "MetricDataPoint",
    "RecordCounts",
    "SessionParseError",
    "SessionParseResult",
    "Span",
    "StorageError",
]
