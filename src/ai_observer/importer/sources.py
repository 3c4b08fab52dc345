"""Import sources: identities, session-file discovery and shared helpers."""

import json
import logging
import os
from collections.abc import Iterator, Mapping
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from ai_observer.core.errors import ImportCancelledError
from ai_observer.core.models import (
    TEMPORALITY_DELTA,
    LogRecord,
    MetricDataPoint,
    SessionParseResult,
)
from ai_observer.core.ports import CancelSignal

logger = logging.getLogger(__name__)

# Marks records that came from session files rather than live OTLP export.
IMPORT_SOURCE = "local_jsonl"

SEVERITY_INFO = ("INFO", 9)
SEVERITY_WARN = ("WARN", 13)
SEVERITY_ERROR = ("ERROR", 17)


class Source(StrEnum):
    """AI CLI whose local session files can be imported."""

    CLAUDE = "claude-code"
    CODEX = "codex"
    GEMINI = "gemini"

    @property
    def service_name(self) -> str:
        """OTLP service.name used by the CLI's own telemetry."""
        return _SERVICE_NAMES[self]


_SERVICE_NAMES = {
    Source.CLAUDE: "claude-code",
    Source.CODEX: "codex_cli_rs",
    Source.GEMINI: "gemini_cli",
}

ALL_SOURCES: tuple[Source, ...] = tuple(Source)


class SessionParser(Protocol):
    """Reads one CLI's session files into canonical records."""

    source: Source

    def list_files(self) -> list[Path]:
        """Return all session files below the parser's roots, sorted."""
        ...

    def parse(
        self, path: Path, cancel: CancelSignal | None = None
    ) -> SessionParseResult:
        """Parse one session file.

        Raises:
            SessionParseError: If the file as a whole cannot be read.
            ImportCancelledError: If cancel is set while parsing.
        """
        ...


# --- Session roots ---


def _home() -> Path:
    return Path.home()


def claude_roots(env: Mapping[str, str] | None = None) -> list[Path]:
    """Claude Code project directories.

    AI_OBSERVER_CLAUDE_PATH (comma-separated) replaces the defaults;
    otherwise the XDG and legacy locations that exist are used.
    """
    env = os.environ if env is None else env
    override = env.get("AI_OBSERVER_CLAUDE_PATH", "")
    if override:
        return [Path(part.strip()) for part in override.split(",") if part.strip()]
    home = _home()
    candidates = [home / ".config" / "claude" / "projects", home / ".claude" / "projects"]
    return [path for path in candidates if path.is_dir()]


def codex_roots(env: Mapping[str, str] | None = None) -> list[Path]:
    env = os.environ if env is None else env
    if env.get("AI_OBSERVER_CODEX_PATH"):
        return [Path(env["AI_OBSERVER_CODEX_PATH"])]
    if env.get("CODEX_HOME"):
        return [Path(env["CODEX_HOME"]) / "sessions"]
    return [_home() / ".codex" / "sessions"]


def gemini_roots(env: Mapping[str, str] | None = None) -> list[Path]:
    env = os.environ if env is None else env
    if env.get("AI_OBSERVER_GEMINI_PATH"):
        return [Path(env["AI_OBSERVER_GEMINI_PATH"])]
    if env.get("GEMINI_HOME"):
        return [Path(env["GEMINI_HOME"]) / "tmp"]
    return [_home() / ".gemini" / "tmp"]


def find_files(roots: list[Path], pattern: str) -> list[Path]:
    """Recursively collect files matching a glob pattern under roots.

    Missing or unreadable roots are skipped.
    """
    files: set[Path] = set()
    for root in roots:
        if not root.is_dir():
            logger.debug("Session root %s does not exist", root)
            continue
        try:
            files.update(path for path in root.rglob(pattern) if path.is_file())
        except OSError as exc:
            logger.warning("Could not scan %s: %s", root, exc)
    return sorted(files)


# --- Parse helpers ---


def check_cancelled(cancel: CancelSignal | None) -> None:
    if cancel is not None and cancel.is_set():
        raise ImportCancelledError("import cancelled")


def iter_json_lines(
    path: Path, cancel: CancelSignal | None = None
) -> Iterator[dict[str, Any]]:
    """Yield each JSON object line of a JSONL file.

    Blank lines, malformed lines and non-object values are skipped.
    """
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            check_cancelled(cancel)
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict):
                yield entry


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_int(value: Any) -> int:
    """Read a token count; anything that is not a number counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def make_log(
    source: Source,
    timestamp: float,
    body: str,
    attributes: dict[str, str],
    severity: tuple[str, int] = SEVERITY_INFO,
) -> LogRecord:
    return LogRecord(
        timestamp=timestamp,
        service_name=source.service_name,
        severity_text=severity[0],
        severity_number=severity[1],
        body=body,
        attributes=attributes,
    )


def make_usage_metric(
    source: Source,
    timestamp: float,
    name: str,
    value: float,
    attributes: dict[str, str],
    unit: str = "tokens",
) -> MetricDataPoint:
    """Build a per-request usage point; session files report deltas."""
    return MetricDataPoint(
        timestamp=timestamp,
        service_name=source.service_name,
        metric_name=name,
        metric_type="sum",
        value=value,
        attributes={**attributes, "import_source": IMPORT_SOURCE},
        unit=unit,
        temporality=TEMPORALITY_DELTA,
        is_monotonic=True,
    )

