"""Exception types raised by the telemetry pipeline."""


class AIObserverError(Exception):
    """Base class for all ai_observer errors."""


class DecodeError(AIObserverError, ValueError):
    """Request body could not be decoded as any known OTLP encoding.

    Always a client-input problem; HTTP adapters map it to 400.
    """


class StorageError(AIObserverError):
    """The storage collaborator failed to persist records."""


class SessionParseError(AIObserverError):
    """A whole session file could not be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class ImportCancelledError(AIObserverError):
    """An import run was cancelled by the caller."""
