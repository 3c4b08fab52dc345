"""Codex CLI session parser (``~/.codex/sessions/**/*.jsonl``)."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ai_observer.core.errors import SessionParseError
from ai_observer.core.models import SessionParseResult
from ai_observer.core.otlp.derived import CODEX_COST_USAGE, CODEX_TOKEN_USAGE
from ai_observer.core.ports import CancelSignal
from ai_observer.core.pricing import PricingRegistry, codex_cost
from ai_observer.core.timeutil import parse_rfc3339
from ai_observer.importer.sources import (
    IMPORT_SOURCE,
    Source,
    as_dict,
    as_int,
    as_str,
    codex_roots,
    find_files,
    iter_json_lines,
    make_log,
    make_usage_metric,
)

_MESSAGE_EVENTS = ("user_message", "agent_message")


@dataclass(frozen=True)
class TokenTotals:
    """Cumulative token usage as reported by a token_count event."""

    input: int = 0
    output: int = 0
    cache_creation: int = 0
    cache_read: int = 0
    reasoning: int = 0
    tool: int = 0

    @classmethod
    def from_usage(cls, usage: dict[str, Any]) -> "TokenTotals":
        cache_read = as_int(usage.get("cache_read_input_tokens"))
        if cache_read == 0:
            cache_read = as_int(usage.get("cached_input_tokens"))
        return cls(
            input=as_int(usage.get("input_tokens")),
            output=as_int(usage.get("output_tokens")),
            cache_creation=as_int(usage.get("cache_creation_input_tokens")),
            cache_read=cache_read,
            reasoning=as_int(usage.get("reasoning_output_tokens")),
            tool=as_int(usage.get("tool_tokens")),
        )

    def minus(self, previous: "TokenTotals | None") -> "TokenTotals":
        if previous is None:
            return self
        return TokenTotals(
            input=self.input - previous.input,
            output=self.output - previous.output,
            cache_creation=self.cache_creation - previous.cache_creation,
            cache_read=self.cache_read - previous.cache_read,
            reasoning=self.reasoning - previous.reasoning,
            tool=self.tool - previous.tool,
        )

    def by_type(self) -> list[tuple[str, int]]:
        return [
            ("input", self.input),
            ("output", self.output),
            ("cache_creation", self.cache_creation),
            ("cache_read", self.cache_read),
            ("reasoning", self.reasoning),
            ("tool", self.tool),
        ]


class CodexParser:
    """Parses Codex CLI rollout files.

    Codex writes running totals in token_count events; consecutive totals
    within one file are differenced into per-turn usage.
    """

    source = Source.CODEX

    def __init__(self, registry: PricingRegistry, roots: list[Path] | None = None) -> None:
        self._registry = registry
        self._roots = codex_roots() if roots is None else roots

    def list_files(self) -> list[Path]:
        return find_files(self._roots, "*.jsonl")

    def parse(
        self, path: Path, cancel: CancelSignal | None = None
    ) -> SessionParseResult:
        result = SessionParseResult(file_path=str(path), session_id=path.stem)
        meta_session_id: str | None = None
        model = ""
        previous: TokenTotals | None = None
        try:
            for entry in iter_json_lines(path, cancel):
                timestamp = parse_rfc3339(entry.get("timestamp"))
                if timestamp is None:
                    continue
                result.observe(timestamp)
                payload = as_dict(entry.get("payload"))
                entry_type = entry.get("type")

                if entry_type == "session_meta":
                    meta_session_id = as_str(payload.get("id"))
                    if meta_session_id:
                        result.session_id = meta_session_id
                    if as_str(payload.get("model")):
                        model = payload["model"]
                    attributes = {
                        "event.name": "codex.conversation_starts",
                        "session.id": meta_session_id,
                        "model": as_str(payload.get("model")),
                        "model_provider": as_str(payload.get("model_provider")),
                        "cli_version": as_str(payload.get("cli_version")),
                        "import_source": IMPORT_SOURCE,
                    }
                    if as_str(payload.get("cwd")):
                        attributes["cwd"] = payload["cwd"]
                    result.logs.append(
                        make_log(Source.CODEX, timestamp, "conversation_starts", attributes)
                    )
                    result.record_count += 1

                elif entry_type == "turn_context":
                    if as_str(payload.get("model")):
                        model = payload["model"]

                elif entry_type == "event_msg":
                    event_type = payload.get("type")
                    if event_type == "token_count":
                        usage = as_dict(payload.get("info")).get("total_token_usage")
                        if not isinstance(usage, dict):
                            continue
                        totals = TokenTotals.from_usage(usage)
                        self._add_usage(result, totals.minus(previous), model, timestamp)
                        previous = totals
                        result.record_count += 1
                    elif event_type in _MESSAGE_EVENTS:
                        attributes = {
                            "event.name": f"codex.{event_type}",
                            "import_source": IMPORT_SOURCE,
                        }
                        if meta_session_id is not None:
                            attributes["session.id"] = meta_session_id
                        result.logs.append(
                            make_log(Source.CODEX, timestamp, event_type, attributes)
                        )
                        result.record_count += 1
        except OSError as exc:
            raise SessionParseError(str(path), f"reading file: {exc}") from exc
        return result

    def _add_usage(
        self,
        result: SessionParseResult,
        delta: TokenTotals,
        model: str,
        timestamp: float,
    ) -> None:
        for token_type, count in delta.by_type():
            if count > 0:
                result.metrics.append(
                    make_usage_metric(
                        Source.CODEX,
                        timestamp,
                        CODEX_TOKEN_USAGE,
                        float(count),
                        {"type": token_type, "model": model},
                    )
                )
        cost = codex_cost(
            self._registry, model, delta.input, delta.cache_read, delta.output
        )
        if cost is not None and cost > 0:
            result.metrics.append(
                make_usage_metric(
                    Source.CODEX,
                    timestamp,
                    CODEX_COST_USAGE,
                    cost,
                    {"model": model},
                    "USD",
                )
            )
