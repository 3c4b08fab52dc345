"""OTLP/HTTP decoding, conversion and metric derivation."""

from ai_observer.core.otlp.convert import (
    LogConversion,
    MetricConversion,
    convert_logs,
    convert_metrics,
    convert_traces,
)
from ai_observer.core.otlp.decode import (
    DecodedRequest,
    Signal,
    decode_any,
    decode_request,
    detect_signal,
)
from ai_observer.core.otlp.delta import MetricBatch, derive_deltas
from ai_observer.core.otlp.detect import WireFormat

__all__ = [
    "DecodedRequest",
    "LogConversion",
    "MetricBatch",
    "MetricConversion",
    "Signal",
    "WireFormat",
    "convert_logs",
    "convert_metrics",
    "convert_traces",
    "decode_any",
    "decode_request",
    "derive_deltas",
    "detect_signal",
]
