"""Import orchestration: scan, summarize, confirm, execute, report.

The importer walks each selected source's session files twice. The scan
pass parses candidates to build a summary the user can confirm; the
execute pass visits only the summarized files, re-checks each one's status,
parses it again in a worker thread and stores its records. Files are only
marked imported after all of their records were stored, so an interrupted
run is picked up again on the next one.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import TypeVar

from ai_observer.core.errors import ImportCancelledError
from ai_observer.core.models import (
    LogRecord,
    MetricDataPoint,
    RecordCounts,
    SessionParseResult,
    Span,
)
from ai_observer.core.ports import CancelSignal, TelemetryStoragePort
from ai_observer.core.pricing import PricingMode, PricingRegistry
from ai_observer.core.timeutil import format_timestamp
from ai_observer.importer.claude import ClaudeParser
from ai_observer.importer.codex import CodexParser
from ai_observer.importer.gemini import GeminiParser
from ai_observer.importer.sources import (
    ALL_SOURCES,
    SessionParser,
    Source,
    check_cancelled,
)
from ai_observer.importer.state import (
    FileStatus,
    ImportStateTracker,
    should_import,
    status_label,
)

logger = logging.getLogger(__name__)

_DAY_SECONDS = 24 * 60 * 60

ConfirmCallback = Callable[[str], bool]
_R = TypeVar("_R", LogRecord, MetricDataPoint, Span)


# --- Argument parsing ---


def parse_source_arg(value: str) -> list[Source]:
    """Resolve a source argument: a source name or "all".

    Raises:
        ValueError: If value names no known source.
    """
    if value == "all":
        return list(ALL_SOURCES)
    try:
        return [Source(value)]
    except ValueError:
        valid = ", ".join([*(source.value for source in Source), "all"])
        raise ValueError(f"invalid source: {value} (valid: {valid})") from None


def parse_date_arg(value: str | None) -> float | None:
    """Parse YYYY-MM-DD as the start of that day in UTC.

    Raises:
        ValueError: If value is not a YYYY-MM-DD date.
    """
    if not value:
        return None
    try:
        day = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=UTC)
    except ValueError:
        raise ValueError(f"invalid date format: {value} (expected YYYY-MM-DD)") from None
    return day.timestamp()


def parse_to_date_arg(value: str | None) -> float | None:
    """Parse YYYY-MM-DD as the last microsecond of that day in UTC."""
    start = parse_date_arg(value)
    if start is None:
        return None
    return start + _DAY_SECONDS - 1e-6


def console_confirm(prompt: str) -> bool:
    """Ask on the terminal; anything but y/yes declines."""
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# --- Options and results ---


@dataclass(frozen=True)
class ImportOptions:
    """Settings for one import run.

    Attributes:
        dry_run: Stop after the summary; store nothing.
        force: Re-import files whose contents are unchanged.
        from_date: Only import records at or after this Unix timestamp.
        to_date: Only import records at or before this Unix timestamp.
        purge: Delete stored records in [from_date, to_date] first. Needs
            both dates.
        skip_confirm: Do not ask before executing.
        pricing_mode: Cost selection for Claude sessions.
    """

    dry_run: bool = False
    force: bool = False
    from_date: float | None = None
    to_date: float | None = None
    purge: bool = False
    skip_confirm: bool = False
    pricing_mode: PricingMode = PricingMode.AUTO

    @property
    def purge_range(self) -> tuple[float, float] | None:
        if not self.purge or self.from_date is None or self.to_date is None:
            return None
        return self.from_date, self.to_date


@dataclass(frozen=True)
class FileSummary:
    path: str
    session_id: str
    logs: int
    metrics: int
    spans: int
    first_time: float | None
    last_time: float | None
    status: str


@dataclass(frozen=True)
class ImportErrorRecord:
    """A file that could not be scanned or imported."""

    source: str
    file_path: str
    error: str


@dataclass
class ImportSummary:
    """Scan result for one source."""

    source: Source
    total_files: int = 0
    new_files: int = 0
    modified_files: int = 0
    skipped_files: int = 0
    total_logs: int = 0
    total_metrics: int = 0
    total_spans: int = 0
    files: list[FileSummary] = field(default_factory=list)
    errors: list[ImportErrorRecord] = field(default_factory=list)

    def add(self, result: SessionParseResult, status: str) -> None:
        self.files.append(
            FileSummary(
                path=result.file_path,
                session_id=result.session_id,
                logs=len(result.logs),
                metrics=len(result.metrics),
                spans=len(result.spans),
                first_time=result.first_time,
                last_time=result.last_time,
                status=status,
            )
        )
        self.total_logs += len(result.logs)
        self.total_metrics += len(result.metrics)
        self.total_spans += len(result.spans)
        if status == FileStatus.NEW.value:
            self.new_files += 1
        elif status == FileStatus.MODIFIED.value:
            self.modified_files += 1
        else:
            self.skipped_files += 1

    def add_error(self, file_path: str, error: Exception) -> None:
        self.errors.append(ImportErrorRecord(self.source.value, file_path, str(error)))

    def is_empty(self) -> bool:
        return self.total_logs == 0 and self.total_metrics == 0 and self.total_spans == 0


class ImportOutcome(StrEnum):
    COMPLETED = "completed"
    NOTHING_TO_IMPORT = "nothing_to_import"
    DRY_RUN = "dry_run"
    ABORTED = "aborted"


@dataclass
class ImportReport:
    """Everything an import run did or would do."""

    outcome: ImportOutcome
    options: ImportOptions
    summaries: list[ImportSummary] = field(default_factory=list)
    purge_preview: RecordCounts | None = None
    purged: RecordCounts | None = None
    imported_files: dict[Source, int] = field(default_factory=dict)
    errors: list[ImportErrorRecord] = field(default_factory=list)

    @property
    def pending_files(self) -> int:
        """Files that passed the scan and will be imported."""
        return sum(len(s.files) for s in self.summaries)

    def render(self) -> str:
        """Human-readable summary of the run."""
        lines = ["Import Summary", "=============="]
        options = self.options
        if options.from_date is not None or options.to_date is not None:
            start = (
                "beginning" if options.from_date is None else _day(options.from_date)
            )
            end = "now" if options.to_date is None else _day(options.to_date)
            lines.append(f"Time range: {start} to {end}")

        if self.purge_preview is not None:
            lines.extend(
                [
                    "",
                    "Data to DELETE (existing):",
                    f"  Logs:    {self.purge_preview.logs}",
                    f"  Metrics: {self.purge_preview.metrics}",
                    f"  Spans:   {self.purge_preview.spans}",
                ]
            )

        lines.extend(["", "Data to IMPORT (from files):"])
        for summary in self.summaries:
            lines.extend(
                [
                    f"  [{summary.source}]",
                    f"    Files: {summary.total_files} total ({summary.new_files} new, "
                    f"{summary.modified_files} modified, {summary.skipped_files} skipped)",
                    f"    Logs:    {summary.total_logs}",
                    f"    Metrics: {summary.total_metrics}",
                ]
            )
            if summary.total_spans:
                lines.append(f"    Spans:   {summary.total_spans}")
            if summary.errors:
                lines.append(f"    Errors: {len(summary.errors)}")

        if self.imported_files:
            lines.append("")
            for source, count in self.imported_files.items():
                lines.append(f"[{source}] Imported {count} files")
        if self.errors:
            lines.append("")
            lines.extend(f"  {e.file_path}: {e.error}" for e in self.errors)
        lines.extend(["", f"Outcome: {self.outcome}"])
        return "\n".join(lines)


def _day(timestamp: float) -> str:
    return format_timestamp(timestamp)[:10]


def build_parsers(
    registry: PricingRegistry, pricing_mode: PricingMode = PricingMode.AUTO
) -> dict[Source, SessionParser]:
    """The parser table for all sources, rooted at their default locations."""
    return {
        Source.CLAUDE: ClaudeParser(registry, pricing_mode),
        Source.CODEX: CodexParser(registry),
        Source.GEMINI: GeminiParser(registry),
    }


def _outside_range(result: SessionParseResult, options: ImportOptions) -> bool:
    """Coarse filter: True when the whole session lies outside the range."""
    if options.from_date is not None and (
        result.last_time is None or result.last_time < options.from_date
    ):
        return True
    if options.to_date is not None and (
        result.first_time is None or result.first_time > options.to_date
    ):
        return True
    return False


def _within(records: Iterable[_R], options: ImportOptions) -> list[_R]:
    return [
        record
        for record in records
        if (options.from_date is None or record.timestamp >= options.from_date)
        and (options.to_date is None or record.timestamp <= options.to_date)
    ]


class Importer:
    """Imports local AI CLI session files into telemetry storage.

    Args:
        storage: Storage collaborator for records and import state.
        registry: Pricing registry used by the default parsers.
        parsers: Parser table; defaults to build_parsers() for the run's
            pricing mode.
        confirm: Callback asked before executing; defaults to a console
            prompt.
        cancel: Cooperative cancellation flag, checked between files.
    """

    def __init__(
        self,
        storage: TelemetryStoragePort,
        registry: PricingRegistry,
        parsers: Mapping[Source, SessionParser] | None = None,
        confirm: ConfirmCallback = console_confirm,
        cancel: CancelSignal | None = None,
    ) -> None:
        self._storage = storage
        self._registry = registry
        self._parsers = parsers
        self._confirm = confirm
        self._cancel = cancel
        self._state = ImportStateTracker(storage)

    async def run(
        self, sources: Sequence[Source], options: ImportOptions | None = None
    ) -> ImportReport:
        """Run an import for sources.

        Raises:
            ImportCancelledError: If cancelled; files already imported stay
                recorded.
        """
        options = options or ImportOptions()
        parsers = self._parsers or build_parsers(self._registry, options.pricing_mode)
        selected = [(source, parsers[source]) for source in sources if source in parsers]
        for source in sources:
            if source not in parsers:
                logger.warning("No parser registered for %s, skipping", source)

        report = ImportReport(outcome=ImportOutcome.COMPLETED, options=options)
        for source, parser in selected:
            report.summaries.append(await self._scan(source, parser, options))
        for summary in report.summaries:
            report.errors.extend(summary.errors)

        if report.pending_files == 0:
            report.outcome = ImportOutcome.NOTHING_TO_IMPORT
            logger.info("No new or modified files found to import.")
            return report

        purge_range = options.purge_range
        if purge_range is not None:
            report.purge_preview = await self._storage.count_records_between(*purge_range)

        logger.info("%s", report.render())

        if options.dry_run:
            report.outcome = ImportOutcome.DRY_RUN
            return report

        if not options.skip_confirm:
            prompt = "Continue?"
            if purge_range is not None:
                prompt = (
                    "This will DELETE existing data in the time range and import "
                    "new data. Continue?"
                )
            if not self._confirm(prompt):
                report.outcome = ImportOutcome.ABORTED
                logger.info("Import aborted.")
                return report

        if purge_range is not None and report.purge_preview is not None:
            if not report.purge_preview.is_empty():
                report.purged = await self._storage.delete_records_between(*purge_range)
                logger.info("Deleted existing data: %s", report.purged)

        for (source, parser), summary in zip(selected, report.summaries, strict=True):
            report.imported_files[source] = await self._import_source(
                summary, parser, options, report
            )
        logger.info("%s", report.render())
        return report

    async def _scan(
        self, source: Source, parser: SessionParser, options: ImportOptions
    ) -> ImportSummary:
        summary = ImportSummary(source=source)
        files = parser.list_files()
        summary.total_files = len(files)
        logger.debug("Scanning %s: found %d files", source, len(files))

        for path in files:
            check_cancelled(self._cancel)
            try:
                status = await self._state.check_status(source, path)
                if not should_import(status, options.force):
                    summary.skipped_files += 1
                    continue
                result = await asyncio.to_thread(parser.parse, path, self._cancel)
            except ImportCancelledError:
                raise
            except Exception as exc:
                logger.warning("Could not scan %s: %s", path, exc)
                summary.add_error(str(path), exc)
                continue

            if _outside_range(result, options):
                summary.skipped_files += 1
                continue
            summary.add(result, status_label(status))
        return summary

    async def _import_source(
        self,
        summary: ImportSummary,
        parser: SessionParser,
        options: ImportOptions,
        report: ImportReport,
    ) -> int:
        """Import the files listed in summary; later arrivals wait for the next run."""
        source = summary.source
        imported = 0
        for file_summary in summary.files:
            check_cancelled(self._cancel)
            path = Path(file_summary.path)
            try:
                if await self._import_file(source, parser, path, options):
                    imported += 1
            except ImportCancelledError:
                raise
            except Exception as exc:
                logger.warning("Failed to import %s: %s", path, exc)
                report.errors.append(ImportErrorRecord(source.value, str(path), str(exc)))
        logger.info("[%s] Imported %d files", source, imported)
        return imported

    async def _import_file(
        self,
        source: Source,
        parser: SessionParser,
        path: Path,
        options: ImportOptions,
    ) -> bool:
        """Import one file. Returns False when there was nothing to store."""
        status = await self._state.check_status(source, path)
        if not should_import(status, options.force):
            return False
        result = await asyncio.to_thread(parser.parse, path, self._cancel)
        if _outside_range(result, options):
            return False

        logs = _within(result.logs, options)
        metrics = _within(result.metrics, options)
        spans = _within(result.spans, options)
        if not (logs or metrics or spans):
            return False

        if logs:
            await self._storage.insert_logs(logs)
        if metrics:
            await self._storage.insert_metrics(metrics)
        if spans:
            await self._storage.insert_spans(spans)
        await self._state.record_import(source, path, result.record_count)
        logger.debug(
            "[%s] %s: %d logs, %d metrics", source, result.session_id, len(logs), len(metrics)
        )
        return True
