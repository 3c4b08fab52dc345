"""Tests for OTLP wire-format detection and decoding."""

import gzip

import pytest
from tests.payloads import (
    json_logs_body,
    json_metrics_body,
    json_traces_body,
    log_record,
    logs_request,
    metrics_request,
    number_point,
    sum_metric,
)

from ai_observer.core.errors import DecodeError
from ai_observer.core.otlp import Signal, WireFormat, decode_any, decode_request
from ai_observer.core.otlp.decode import detect_signal
from ai_observer.core.otlp.detect import (
    candidate_formats,
    format_from_content_type,
    is_gzip,
    maybe_decompress,
    sniff_format,
)

pytestmark = [pytest.mark.otlp, pytest.mark.tier(0)]


class TestFormatDetection:
    @pytest.mark.parametrize(
        ("content_type", "expected"),
        [
            ("application/x-protobuf", WireFormat.PROTOBUF),
            ("application/protobuf", WireFormat.PROTOBUF),
            ("application/json", WireFormat.JSON),
            ("Application/JSON; charset=utf-8", WireFormat.JSON),
            ("text/plain", None),
            ("", None),
            (None, None),
        ],
    )
    def test_format_from_content_type(
        self, content_type: str | None, expected: WireFormat | None
    ) -> None:
        assert format_from_content_type(content_type) is expected

    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            (b'{"resourceLogs": []}', WireFormat.JSON),
            (b"  \n[1]", WireFormat.JSON),
            (b'\xef\xbb\xbf{"a": 1}', WireFormat.JSON),
            (b"\x0a\x02\x08\x01", WireFormat.PROTOBUF),
            (b"", None),
            (b" \r\n\t", None),
        ],
    )
    def test_sniff_format(self, body: bytes, expected: WireFormat | None) -> None:
        assert sniff_format(body) is expected

    def test_candidate_order_declared_then_sniffed_then_fallback(self) -> None:
        assert candidate_formats(WireFormat.PROTOBUF, WireFormat.JSON) == [
            WireFormat.PROTOBUF,
            WireFormat.JSON,
        ]
        assert candidate_formats(None, WireFormat.JSON) == [
            WireFormat.JSON,
            WireFormat.PROTOBUF,
        ]
        assert candidate_formats(None, None) == [WireFormat.PROTOBUF, WireFormat.JSON]

    def test_gzip_detection_and_decompression(self) -> None:
        compressed = gzip.compress(b"payload")

        assert is_gzip(compressed)
        assert maybe_decompress(compressed) == b"payload"
        assert maybe_decompress(b"payload") == b"payload"

    def test_corrupt_gzip_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError, match="gzip"):
            maybe_decompress(b"\x1f\x8b\x08\x00garbage")


class TestDecodeRequest:
    def _metrics_body(self) -> bytes:
        request = metrics_request(
            "claude-code", [sum_metric("claude_code.session.count", [number_point(1)])]
        )
        return request.SerializeToString()

    @pytest.mark.tra("OTLP.Decode.DeclaredProtobuf")
    def test_protobuf_with_correct_content_type(self) -> None:
        decoded = decode_request(
            self._metrics_body(), "application/x-protobuf", Signal.METRICS
        )

        assert decoded.wire_format is WireFormat.PROTOBUF
        assert decoded.message.resource_metrics[0].scope_metrics[0].metrics[0].name == (
            "claude_code.session.count"
        )

    @pytest.mark.tra("OTLP.Decode.WrongContentType")
    def test_json_body_declared_as_protobuf(self) -> None:
        decoded = decode_request(json_logs_body(), "application/x-protobuf", Signal.LOGS)

        assert decoded.wire_format is WireFormat.JSON
        assert len(decoded.message.resource_logs) == 1

    def test_protobuf_body_declared_as_json(self) -> None:
        decoded = decode_request(self._metrics_body(), "application/json", Signal.METRICS)
        assert decoded.wire_format is WireFormat.PROTOBUF

    @pytest.mark.tra("OTLP.Decode.MissingContentType")
    @pytest.mark.parametrize("content_type", [None, "", "text/plain"])
    def test_missing_or_unknown_content_type(self, content_type: str | None) -> None:
        decoded = decode_request(json_traces_body(), content_type, Signal.TRACES)

        assert decoded.wire_format is WireFormat.JSON
        assert decoded.signal is Signal.TRACES

    def test_wrong_content_type_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        decode_request(json_logs_body(), "application/x-protobuf", Signal.LOGS)
        assert "decoded as json" in caplog.text

    @pytest.mark.tra("OTLP.Decode.Gzip")
    def test_gzip_body_is_decompressed(self) -> None:
        body = gzip.compress(logs_request("codex_cli_rs", [log_record()]).SerializeToString())

        decoded = decode_request(body, "application/x-protobuf", Signal.LOGS)

        assert decoded.message.resource_logs[0].scope_logs[0].log_records[0].body.string_value == (
            "hello"
        )

    def test_hex_ids_in_json_become_bytes(self) -> None:
        decoded = decode_request(json_logs_body(), "application/json", Signal.LOGS)
        record = decoded.message.resource_logs[0].scope_logs[0].log_records[0]

        assert record.trace_id.hex() == "5b8efff798038103d269b633813fc60c"
        assert record.span_id.hex() == "eee19b7ec3c1b174"

    def test_empty_body_raises(self) -> None:
        with pytest.raises(DecodeError, match="empty"):
            decode_request(b"", "application/json", Signal.LOGS)

    @pytest.mark.parametrize(
        "body",
        [b"\xff\xff\xff\xff\xff", b"{not json", b"[1, 2, 3]"],
    )
    def test_undecodable_body_raises(self, body: bytes) -> None:
        with pytest.raises(DecodeError, match="failed to decode"):
            decode_request(body, None, Signal.METRICS)


class TestSignalRouting:
    @pytest.mark.parametrize(
        ("body", "signal"),
        [
            (json_traces_body(), Signal.TRACES),
            (json_logs_body(), Signal.LOGS),
            (json_metrics_body(), Signal.METRICS),
            (b'{"resource_logs": []}', Signal.LOGS),
        ],
    )
    def test_detect_signal_from_json_shape(self, body: bytes, signal: Signal) -> None:
        assert detect_signal(body) is signal

    def test_protobuf_body_cannot_be_routed(self) -> None:
        body = logs_request("codex_cli_rs", [log_record()]).SerializeToString()
        with pytest.raises(DecodeError, match="non-JSON"):
            detect_signal(body)

    def test_unknown_json_shape_raises(self) -> None:
        with pytest.raises(DecodeError, match="unknown OTLP payload type"):
            detect_signal(b'{"somethingElse": []}')

    def test_decode_any_handles_gzip(self) -> None:
        decoded = decode_any(gzip.compress(json_metrics_body()), None)

        assert decoded.signal is Signal.METRICS
        assert decoded.wire_format is WireFormat.JSON
