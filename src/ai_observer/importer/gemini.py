"""Gemini CLI session parser (``~/.gemini/tmp/**/session-*.json``)."""

import json
from pathlib import Path
from typing import Any

from ai_observer.core.errors import SessionParseError
from ai_observer.core.models import SessionParseResult
from ai_observer.core.otlp.derived import GEMINI_COST_USAGE, GEMINI_TOKEN_USAGE
from ai_observer.core.ports import CancelSignal
from ai_observer.core.pricing import PricingRegistry, gemini_cost_for_type
from ai_observer.core.pricing.costs import (
    GEMINI_CACHE,
    GEMINI_INPUT,
    GEMINI_OUTPUT,
    GEMINI_THOUGHT,
)
from ai_observer.core.timeutil import parse_rfc3339
from ai_observer.importer.sources import (
    IMPORT_SOURCE,
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARN,
    Source,
    as_int,
    as_str,
    check_cancelled,
    find_files,
    gemini_roots,
    make_log,
    make_usage_metric,
)

_SEVERITIES = {
    "error": SEVERITY_ERROR,
    "warning": SEVERITY_WARN,
}

_BODIES = {
    "gemini": "api_response",
    "user": "user_prompt",
    "error": "api_error",
}

# Token fields, each with the pricing token type it bills as (None: unbilled).
_TOKEN_FIELDS = (
    ("input", GEMINI_INPUT),
    ("output", GEMINI_OUTPUT),
    ("cached", GEMINI_CACHE),
    ("thoughts", GEMINI_THOUGHT),
    ("tool", None),
)


class GeminiParser:
    """Parses Gemini CLI chat session documents.

    Each file holds one JSON document with the whole conversation.
    """

    source = Source.GEMINI

    def __init__(self, registry: PricingRegistry, roots: list[Path] | None = None) -> None:
        self._registry = registry
        self._roots = gemini_roots() if roots is None else roots

    def list_files(self) -> list[Path]:
        return find_files(self._roots, "session-*.json")

    def parse(
        self, path: Path, cancel: CancelSignal | None = None
    ) -> SessionParseResult:
        try:
            document = json.loads(path.read_bytes())
        except OSError as exc:
            raise SessionParseError(str(path), f"reading file: {exc}") from exc
        except ValueError as exc:
            raise SessionParseError(str(path), f"parsing JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise SessionParseError(str(path), "session document is not an object")

        session_id = as_str(document.get("sessionId")) or path.stem
        project_hash = as_str(document.get("projectHash"))
        result = SessionParseResult(file_path=str(path), session_id=session_id)
        for key in ("startTime", "lastUpdated"):
            bound = parse_rfc3339(document.get(key))
            if bound is not None:
                result.observe(bound)

        messages = document.get("messages")
        for message in messages if isinstance(messages, list) else []:
            check_cancelled(cancel)
            if not isinstance(message, dict):
                continue
            timestamp = parse_rfc3339(message.get("timestamp"))
            if timestamp is None:
                continue
            result.observe(timestamp)

            message_type = as_str(message.get("type"))
            model = as_str(message.get("model"))
            attributes = {
                "event.name": f"gemini_cli.{message_type}",
                "session.id": session_id,
                "message.id": as_str(message.get("id")),
                "import_source": IMPORT_SOURCE,
            }
            if model:
                attributes["model"] = model
            if project_hash:
                attributes["project_hash"] = project_hash
            result.logs.append(
                make_log(
                    Source.GEMINI,
                    timestamp,
                    _BODIES.get(message_type, message_type),
                    attributes,
                    _SEVERITIES.get(message_type, SEVERITY_INFO),
                )
            )
            result.record_count += 1

            tokens = message.get("tokens")
            if message_type == "gemini" and isinstance(tokens, dict):
                self._add_usage(result, tokens, model, timestamp)
        return result

    def _add_usage(
        self,
        result: SessionParseResult,
        tokens: dict[str, Any],
        model: str,
        timestamp: float,
    ) -> None:
        total_cost = 0.0
        for field, pricing_type in _TOKEN_FIELDS:
            count = as_int(tokens.get(field))
            if count <= 0:
                continue
            result.metrics.append(
                make_usage_metric(
                    Source.GEMINI,
                    timestamp,
                    GEMINI_TOKEN_USAGE,
                    float(count),
                    {"type": field, "model": model},
                )
            )
            if pricing_type is None:
                continue
            cost = gemini_cost_for_type(self._registry, model, pricing_type, count)
            if cost is not None:
                total_cost += cost
        if total_cost > 0:
            result.metrics.append(
                make_usage_metric(
                    Source.GEMINI,
                    timestamp,
                    GEMINI_COST_USAGE,
                    total_cost,
                    {"model": model},
                    "USD",
                )
            )
