"""Timestamp helpers shared by the OTLP converter and session parsers."""

import re
from datetime import UTC, datetime

# datetime.fromisoformat only keeps microseconds; drop finer digits first.
_FRACTION = re.compile(r"(\.\d{6})\d+")


def nanos_to_seconds(nanos: int) -> float:
    """Convert integer nanoseconds since the epoch to float seconds."""
    return nanos / 1_000_000_000


def parse_rfc3339(text: str | None) -> float | None:
    """Parse an RFC 3339 / ISO 8601 timestamp to Unix seconds.

    Accepts a trailing ``Z``, numeric offsets and up to nanosecond
    fractions. Naive timestamps are taken as UTC.

    Returns:
        Unix timestamp in seconds, or None if text is not a timestamp.
    """
    if not text or not isinstance(text, str):
        return None
    candidate = _FRACTION.sub(r"\1", text.strip())
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def format_timestamp(timestamp: float) -> str:
    """Render Unix seconds as an ISO 8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=UTC).isoformat()
