"""Wire format detection for OTLP/HTTP request bodies."""

import gzip
import zlib
from enum import StrEnum

from ai_observer.core.errors import DecodeError

GZIP_MAGIC = b"\x1f\x8b"
_UTF8_BOM = b"\xef\xbb\xbf"
_WHITESPACE = b" \t\r\n"


class WireFormat(StrEnum):
    """Known OTLP/HTTP body encodings."""

    PROTOBUF = "protobuf"
    JSON = "json"


# Fallback order when the declared format is absent or fails.
FALLBACK_ORDER = (WireFormat.PROTOBUF, WireFormat.JSON)

_CONTENT_TYPES = {
    "application/x-protobuf": WireFormat.PROTOBUF,
    "application/protobuf": WireFormat.PROTOBUF,
    "application/json": WireFormat.JSON,
}


def is_gzip(body: bytes) -> bool:
    """Return True if body starts with the gzip magic bytes."""
    return body[:2] == GZIP_MAGIC


def maybe_decompress(body: bytes) -> bytes:
    """Decompress a gzip body; return any other body unchanged.

    Raises:
        DecodeError: If the body claims to be gzip but is corrupt.
    """
    if not is_gzip(body):
        return body
    try:
        return gzip.decompress(body)
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"invalid gzip body: {exc}") from exc


def format_from_content_type(content_type: str | None) -> WireFormat | None:
    """Map a Content-Type header to a wire format.

    Media type parameters (``; charset=utf-8``) are ignored. Returns None
    when the header is absent or names no known format.
    """
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    return _CONTENT_TYPES.get(media_type)


def sniff_format(body: bytes) -> WireFormat | None:
    """Guess the encoding of an uncompressed body from its first byte.

    A body whose first significant byte opens a JSON object or array is
    JSON; anything else is assumed to be protobuf. Returns None for a body
    that is empty after stripping a UTF-8 BOM and whitespace.
    """
    stripped = body.removeprefix(_UTF8_BOM).lstrip(_WHITESPACE)
    if not stripped:
        return None
    if stripped[:1] in (b"{", b"["):
        return WireFormat.JSON
    return WireFormat.PROTOBUF


def candidate_formats(
    declared: WireFormat | None, sniffed: WireFormat | None
) -> list[WireFormat]:
    """Return the order in which formats should be attempted.

    The declared format goes first, then the sniffed one, then the
    remaining formats in FALLBACK_ORDER.
    """
    order: list[WireFormat] = []
    for fmt in (declared, sniffed, *FALLBACK_ORDER):
        if fmt is not None and fmt not in order:
            order.append(fmt)
    return order
