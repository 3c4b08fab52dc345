"""BDD step definitions for session import features."""

from pathlib import Path

import pytest
from pytest_bdd import given, parsers, then, when
from tests.features.importer.steps_helpers import (
    ImportScenarioContext,
    run_async,
    run_import,
    write_codex_session,
    write_gemini_file,
)

from ai_observer.core.pricing import PricingRegistry
from ai_observer.importer import (
    ImportOptions,
    parse_date_arg,
    parse_source_arg,
    parse_to_date_arg,
)


@pytest.fixture
def ctx() -> ImportScenarioContext:
    """Fresh scenario context for each test."""
    return ImportScenarioContext()


# === Background Steps ===
@given("in-memory telemetry storage")
def step_storage(ctx: ImportScenarioContext) -> None:
    assert ctx.storage.logs == []


@given("session roots in a temporary directory")
def step_roots(ctx: ImportScenarioContext, tmp_path: Path) -> None:
    ctx.root = tmp_path


# === Session Files ===
@given(
    parsers.parse(
        'a Codex session "{session_id}" on "{day}" using {tokens:d} input tokens'
    )
)
def step_codex_session(
    ctx: ImportScenarioContext, session_id: str, day: str, tokens: int
) -> None:
    write_codex_session(ctx, session_id, day, tokens)


@given(parsers.parse('a Gemini session file "{name}" containing "{content}"'))
def step_gemini_file(ctx: ImportScenarioContext, name: str, content: str) -> None:
    write_gemini_file(ctx, name, content)


@given("the user declines the confirmation")
def step_decline(ctx: ImportScenarioContext) -> None:
    ctx.confirm_answer = False


# === Import Runs ===
@when(parsers.parse('the "{source}" sessions are imported'))
def step_import(ctx: ImportScenarioContext, registry: PricingRegistry, source: str) -> None:
    run_import(ctx, registry, parse_source_arg(source))


@when(parsers.parse('the "{source}" sessions are imported as a dry run'))
def step_import_dry_run(
    ctx: ImportScenarioContext, registry: PricingRegistry, source: str
) -> None:
    run_import(ctx, registry, parse_source_arg(source), ImportOptions(dry_run=True))


@when(parsers.parse('the "{source}" sessions from "{start}" to "{end}" are imported'))
def step_import_range(
    ctx: ImportScenarioContext,
    registry: PricingRegistry,
    source: str,
    start: str,
    end: str,
) -> None:
    options = ImportOptions(from_date=parse_date_arg(start), to_date=parse_to_date_arg(end))
    run_import(ctx, registry, parse_source_arg(source), options)


# === Outcomes ===
@then(parsers.parse('the outcome is "{outcome}"'))
def step_outcome(ctx: ImportScenarioContext, outcome: str) -> None:
    assert ctx.report is not None
    assert ctx.report.outcome == outcome


@then(parsers.re(r"(?P<logs>\d+) logs? and (?P<metrics>\d+) metrics are stored"))
def step_stored_counts(ctx: ImportScenarioContext, logs: str, metrics: str) -> None:
    assert len(ctx.storage.logs) == int(logs)
    assert len(ctx.storage.metrics) == int(metrics)


@then(parsers.parse('the Codex session "{session_id}" is recorded as imported'))
def step_recorded(ctx: ImportScenarioContext, session_id: str) -> None:
    path = ctx.session_files[session_id]
    state = run_async(ctx.storage.get_import_state("codex", str(path)))
    assert state is not None
    assert state.record_count == 2


@then(parsers.parse('only session "{session_id}" has stored logs'))
def step_only_session(ctx: ImportScenarioContext, session_id: str) -> None:
    assert {log.attributes["session.id"] for log in ctx.storage.logs} == {session_id}


@then(parsers.re(r"(?P<count>\d+) import errors? (is|are) reported"))
def step_errors(ctx: ImportScenarioContext, count: str) -> None:
    assert ctx.report is not None
    assert len(ctx.report.errors) == int(count)
