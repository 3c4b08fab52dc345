"""Historical import of AI CLI session files."""

from ai_observer.importer.orchestrator import (
    ImportOptions,
    ImportOutcome,
    ImportReport,
    Importer,
    build_parsers,
    parse_date_arg,
    parse_source_arg,
    parse_to_date_arg,
)
from ai_observer.importer.sources import ALL_SOURCES, Source
from ai_observer.importer.state import FileStatus, ImportStateTracker

__all__ = [
    "ALL_SOURCES",
    "FileStatus",
    "ImportOptions",
    "ImportOutcome",
    "ImportReport",
    "ImportStateTracker",
    "Importer",
    "Source",
    "build_parsers",
    "parse_date_arg",
    "parse_source_arg",
    "parse_to_date_arg",
]
