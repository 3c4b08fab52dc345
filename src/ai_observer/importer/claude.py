"""Claude Code session parser (``~/.claude/projects/**/*.jsonl``)."""

import json
from pathlib import Path
from typing import Any

from ai_observer.core.errors import SessionParseError
from ai_observer.core.models import LogRecord, MetricDataPoint, SessionParseResult
from ai_observer.core.otlp.derived import (
    CLAUDE_COST_USAGE,
    CLAUDE_COST_USAGE_USER_FACING,
    CLAUDE_TOKEN_USAGE,
    CLAUDE_TOKEN_USAGE_USER_FACING,
)
from ai_observer.core.ports import CancelSignal
from ai_observer.core.pricing import (
    ClaudeTokenUsage,
    PricingMode,
    PricingRegistry,
    claude_cost_with_mode,
)
from ai_observer.core.timeutil import parse_rfc3339
from ai_observer.importer.sources import (
    IMPORT_SOURCE,
    Source,
    as_dict,
    as_int,
    as_str,
    claude_roots,
    find_files,
    iter_json_lines,
    make_log,
    make_usage_metric,
)

_TRANSCRIPT_TYPES = ("user", "assistant")

# (usage field, token type) in emission order.
_USAGE_FIELDS = (
    ("input_tokens", "input"),
    ("output_tokens", "output"),
    ("cache_creation_input_tokens", "cacheCreation"),
    ("cache_read_input_tokens", "cacheRead"),
)


def _content_items(content: Any) -> list[dict[str, Any]]:
    """Normalize message content; plain strings become one text item."""
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return [item for item in content if isinstance(item, dict)]
    return []


def _tool_result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [as_str(as_dict(part).get("text")) for part in content]
        return "\n".join(text for text in texts if text)
    return ""


class ClaudeParser:
    """Parses Claude Code JSONL transcripts.

    Produces one transcript log per message content item and, for
    assistant entries with usage, an api_request log plus token and cost
    metrics. Repeated assistant entries of the same API call (same message
    id and request id) contribute metrics once.
    """

    source = Source.CLAUDE

    def __init__(
        self,
        registry: PricingRegistry,
        pricing_mode: PricingMode = PricingMode.AUTO,
        roots: list[Path] | None = None,
    ) -> None:
        self._registry = registry
        self._pricing_mode = pricing_mode
        self._roots = claude_roots() if roots is None else roots

    def list_files(self) -> list[Path]:
        return find_files(self._roots, "*.jsonl")

    def parse(
        self, path: Path, cancel: CancelSignal | None = None
    ) -> SessionParseResult:
        result = SessionParseResult(file_path=str(path), session_id=path.stem)
        message_index = 0
        seen_requests: set[str] = set()
        try:
            for entry in iter_json_lines(path, cancel):
                entry_type = entry.get("type")
                message = entry.get("message")
                if entry_type not in _TRANSCRIPT_TYPES or not isinstance(message, dict):
                    continue
                timestamp = parse_rfc3339(entry.get("timestamp"))
                if timestamp is None:
                    continue
                result.observe(timestamp)

                session_id = as_str(entry.get("sessionId"))
                if session_id:
                    result.session_id = session_id
                else:
                    session_id = result.session_id

                logs = self._transcript_logs(
                    entry_type, message, timestamp, session_id, message_index
                )
                message_index += len(logs)
                result.logs.extend(logs)

                usage = message.get("usage")
                if entry_type == "assistant" and isinstance(usage, dict):
                    message_id = as_str(message.get("id"))
                    request_id = as_str(entry.get("requestId"))
                    if message_id and request_id:
                        key = f"{message_id}:{request_id}"
                        if key in seen_requests:
                            continue
                        seen_requests.add(key)
                    self._add_usage(result, entry, message, usage, timestamp, session_id)

                result.record_count += 1
        except OSError as exc:
            raise SessionParseError(str(path), f"reading file: {exc}") from exc
        return result

    def _transcript_logs(
        self,
        role: str,
        message: dict[str, Any],
        timestamp: float,
        session_id: str,
        start_index: int,
    ) -> list[LogRecord]:
        logs: list[LogRecord] = []
        model = as_str(message.get("model"))
        message_id = as_str(message.get("id"))
        for item in _content_items(message.get("content")):
            attributes = {
                "event.name": "transcript.message",
                "session.id": session_id,
                "message.index": str(start_index + len(logs)),
                "message.role": role,
                "import_source": IMPORT_SOURCE,
            }
            if model:
                attributes["model"] = model
            if message_id:
                attributes["message.id"] = message_id

            content_type = item.get("type")
            if content_type == "text":
                body = as_str(item.get("text"))
                if not body:
                    continue
            elif content_type == "tool_use":
                name = as_str(item.get("name"))
                attributes["message.role"] = "tool_use"
                attributes["tool.name"] = name
                if item.get("input") is not None:
                    attributes["tool.input"] = json.dumps(
                        item["input"], separators=(",", ":")
                    )
                body = f"Tool call: {name}"
            elif content_type == "tool_result":
                body = _tool_result_text(item.get("content"))
                attributes["message.role"] = "tool_result"
                tool_use_id = as_str(item.get("tool_use_id"))
                if tool_use_id:
                    attributes["tool.use_id"] = tool_use_id
                if body:
                    attributes["tool.output"] = body
            else:
                continue
            logs.append(make_log(Source.CLAUDE, timestamp, body, attributes))
        return logs

    def _add_usage(
        self,
        result: SessionParseResult,
        entry: dict[str, Any],
        message: dict[str, Any],
        usage: dict[str, Any],
        timestamp: float,
        session_id: str,
    ) -> None:
        model = as_str(message.get("model"))
        attributes = {
            "event.name": "claude_code.api_request",
            "session.id": session_id,
            "model": model,
            "import_source": IMPORT_SOURCE,
        }
        if as_str(entry.get("cwd")):
            attributes["cwd"] = entry["cwd"]
        if as_str(entry.get("requestId")):
            attributes["request_id"] = entry["requestId"]
        result.logs.append(make_log(Source.CLAUDE, timestamp, "api_request", attributes))

        counts = {field: as_int(usage.get(field)) for field, _ in _USAGE_FIELDS}
        for field, token_type in _USAGE_FIELDS:
            if counts[field] > 0:
                result.metrics.extend(
                    _paired(
                        timestamp,
                        CLAUDE_TOKEN_USAGE,
                        CLAUDE_TOKEN_USAGE_USER_FACING,
                        float(counts[field]),
                        {"type": token_type, "model": model},
                        "tokens",
                    )
                )

        reported = entry.get("costUSD")
        cost_usd = float(reported) if isinstance(reported, (int, float)) else None
        cost = claude_cost_with_mode(
            self._registry,
            self._pricing_mode,
            model,
            ClaudeTokenUsage(
                input_tokens=counts["input_tokens"],
                output_tokens=counts["output_tokens"],
                cache_creation_input_tokens=counts["cache_creation_input_tokens"],
                cache_read_input_tokens=counts["cache_read_input_tokens"],
            ),
            cost_usd,
        )
        if cost > 0:
            result.metrics.extend(
                _paired(
                    timestamp,
                    CLAUDE_COST_USAGE,
                    CLAUDE_COST_USAGE_USER_FACING,
                    cost,
                    {"model": model},
                    "USD",
                )
            )


def _paired(
    timestamp: float,
    name: str,
    user_facing_name: str,
    value: float,
    attributes: dict[str, str],
    unit: str,
) -> list[MetricDataPoint]:
    """Emit a metric and its user-facing twin.

    Session transcripts only record user-facing calls, so both carry the
    same value.
    """
    return [
        make_usage_metric(Source.CLAUDE, timestamp, metric, value, attributes, unit)
        for metric in (name, user_facing_name)
    ]
