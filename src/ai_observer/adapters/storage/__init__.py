"""Storage adapters implementing TelemetryStoragePort."""

from ai_observer.adapters.storage.in_memory import InMemoryTelemetryStorage
from ai_observer.adapters.storage.sqlite import SQLiteTelemetryStorage

__all__ = [
    "InMemoryTelemetryStorage",
    "SQLiteTelemetryStorage",
]
