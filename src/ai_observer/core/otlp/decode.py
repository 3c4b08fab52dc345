"""Decoding of OTLP/HTTP request bodies into protobuf request envelopes.

Bodies may be protobuf or OTLP/JSON, optionally gzip-compressed, and the
declared Content-Type is not trusted blindly: when decoding under the
declared format fails, the remaining formats are attempted in turn.
"""

import base64
import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from google.protobuf import json_format
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.protobuf.message import Message
from opentelemetry.proto.collector.logs.v1.logs_service_pb2 import (
    ExportLogsServiceRequest,
)
from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2 import (
    ExportMetricsServiceRequest,
)
from opentelemetry.proto.collector.trace.v1.trace_service_pb2 import (
    ExportTraceServiceRequest,
)

from ai_observer.core.errors import DecodeError
from ai_observer.core.otlp.detect import (
    WireFormat,
    candidate_formats,
    format_from_content_type,
    maybe_decompress,
    sniff_format,
)

logger = logging.getLogger(__name__)

_UTF8_BOM = b"\xef\xbb\xbf"

# OTLP/JSON encodes these bytes fields as hex instead of base64.
_HEX_ID_FIELDS = frozenset(
    {"traceId", "spanId", "parentSpanId", "trace_id", "span_id", "parent_span_id"}
)


class Signal(StrEnum):
    """OTLP signal kinds."""

    TRACES = "traces"
    LOGS = "logs"
    METRICS = "metrics"


_REQUEST_TYPES: dict[Signal, type[Message]] = {
    Signal.TRACES: ExportTraceServiceRequest,
    Signal.LOGS: ExportLogsServiceRequest,
    Signal.METRICS: ExportMetricsServiceRequest,
}

_JSON_ROOT_KEYS: dict[Signal, tuple[str, ...]] = {
    Signal.TRACES: ("resourceSpans", "resource_spans"),
    Signal.METRICS: ("resourceMetrics", "resource_metrics"),
    Signal.LOGS: ("resourceLogs", "resource_logs"),
}


@dataclass(frozen=True)
class DecodedRequest:
    """A decoded OTLP export request.

    Attributes:
        signal: Signal kind of the envelope.
        wire_format: Encoding that successfully decoded the body.
        message: ExportTraceServiceRequest, ExportLogsServiceRequest or
            ExportMetricsServiceRequest.
    """

    signal: Signal
    wire_format: WireFormat
    message: Any


class _FormatMismatch(Exception):
    """The body is not valid under the attempted wire format."""


def decode_request(
    body: bytes, content_type: str | None, signal: Signal
) -> DecodedRequest:
    """Decode a request body for a known signal kind.

    Args:
        body: Fully buffered request body, possibly gzip-compressed.
        content_type: Declared Content-Type header, possibly wrong or None.
        signal: Signal kind implied by the endpoint.

    Raises:
        DecodeError: If the body is empty or no known format decodes it.
    """
    payload = maybe_decompress(body)
    sniffed = sniff_format(payload)
    if sniffed is None:
        raise DecodeError("empty request body")

    declared = format_from_content_type(content_type)
    if content_type and declared is None:
        logger.warning(
            "Unsupported content type %r for %s, detecting format", content_type, signal
        )

    failures: list[str] = []
    for wire_format in candidate_formats(declared, sniffed):
        try:
            message = _decode_as(wire_format, payload, signal)
        except _FormatMismatch as exc:
            failures.append(f"{wire_format}: {exc}")
            continue
        if declared is not None and wire_format is not declared:
            logger.warning(
                "Content-Type declared %s but %s body decoded as %s",
                declared,
                signal,
                wire_format,
            )
        return DecodedRequest(signal=signal, wire_format=wire_format, message=message)

    raise DecodeError(f"failed to decode {signal}: " + "; ".join(failures))


def detect_signal(payload: bytes) -> Signal:
    """Determine the signal kind of an uncompressed OTLP/JSON body.

    Protobuf envelopes of all three signals share the same outer layout,
    so only JSON bodies carry enough shape to be routed.

    Raises:
        DecodeError: If the body is not a JSON object naming a known signal.
    """
    if sniff_format(payload) is not WireFormat.JSON:
        raise DecodeError(
            "cannot detect signal type of a non-JSON payload; "
            "use /v1/traces, /v1/logs or /v1/metrics"
        )
    try:
        document = json.loads(payload.removeprefix(_UTF8_BOM))
    except ValueError as exc:
        raise DecodeError(f"invalid JSON: {exc}") from exc
    if isinstance(document, dict):
        for signal, keys in _JSON_ROOT_KEYS.items():
            if any(key in document for key in keys):
                return signal
    raise DecodeError("unknown OTLP payload type")


def decode_any(body: bytes, content_type: str | None) -> DecodedRequest:
    """Decode a body whose signal kind must be inferred from its shape."""
    signal = detect_signal(maybe_decompress(body))
    return decode_request(body, content_type, signal)


def _decode_as(wire_format: WireFormat, payload: bytes, signal: Signal) -> Message:
    message = _REQUEST_TYPES[signal]()
    if wire_format is WireFormat.PROTOBUF:
        _parse_protobuf(payload, message)
    else:
        _parse_json(payload, message)
    return message


def _parse_protobuf(payload: bytes, message: Message) -> None:
    try:
        message.ParseFromString(payload)
    except ProtobufDecodeError as exc:
        raise _FormatMismatch(str(exc)) from exc
    message.DiscardUnknownFields()
    if message.ByteSize() == 0:
        raise _FormatMismatch("no recognized protobuf fields")


def _parse_json(payload: bytes, message: Message) -> None:
    try:
        document = json.loads(payload.removeprefix(_UTF8_BOM))
    except ValueError as exc:
        raise _FormatMismatch(f"invalid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise _FormatMismatch("expected a JSON object")
    try:
        json_format.ParseDict(
            _hex_ids_to_base64(document), message, ignore_unknown_fields=True
        )
    except json_format.ParseError as exc:
        raise _FormatMismatch(str(exc)) from exc


def _hex_ids_to_base64(node: Any) -> Any:
    """Rewrite hex-encoded trace and span ids to the base64 json_format expects."""
    if isinstance(node, dict):
        converted = {}
        for key, value in node.items():
            if key in _HEX_ID_FIELDS and isinstance(value, str):
                converted[key] = _hex_to_base64(value)
            else:
                converted[key] = _hex_ids_to_base64(value)
        return converted
    if isinstance(node, list):
        return [_hex_ids_to_base64(item) for item in node]
    return node


def _hex_to_base64(value: str) -> str:
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        # Already base64 or malformed; let json_format decide.
        return value
    return base64.b64encode(raw).decode("ascii")
