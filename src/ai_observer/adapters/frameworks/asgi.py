"""ASGI generic adapter for the OTLP/HTTP receiver.

This adapter provides a framework-agnostic ASGI application that can be used
with any ASGI server (uvicorn, hypercorn, daphne) without requiring FastAPI
as a dependency.
"""

import json
import logging
from collections.abc import Awaitable, Callable, Coroutine
from http import HTTPStatus
from typing import Any

from ai_observer.core.errors import DecodeError
from ai_observer.core.ingest import OTLPIngestService

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

DEFAULT_MAX_PAYLOAD_BYTES = 10 * 1024 * 1024

OTLP_PATHS = ("/v1/traces", "/v1/logs", "/v1/metrics", "/")


class PayloadTooLargeError(Exception):
    """Request body exceeded the configured size limit."""


def error_body(status: HTTPStatus, message: str | None = None) -> str:
    """Render the JSON error document returned for failed requests."""
    document = {"error": status.phrase}
    if message is not None:
        document["message"] = message
    return json.dumps(document)


def _get_header(scope: Scope, header_name: str) -> str | None:
    """Return a request header value (case-insensitive), or None."""
    header_bytes = header_name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in headers:
        if name.lower() == header_bytes:
            return value.decode("latin-1")
    return None


async def _read_body(receive: Receive, max_bytes: int) -> bytes:
    """Buffer the request body, failing once it grows past max_bytes."""
    chunks: list[bytes] = []
    size = 0
    more_body = True
    while more_body:
        message = await receive()
        if message["type"] == "http.disconnect":
            break
        chunk = message.get("body", b"")
        size += len(chunk)
        if size > max_bytes:
            raise PayloadTooLargeError(f"request body exceeds {max_bytes} bytes")
        chunks.append(chunk)
        more_body = message.get("more_body", False)
    return b"".join(chunks)


async def _send_response(send: Send, status: int, content_type: str, body: str) -> None:
    """Send an HTTP response with headers and body.

    Args:
        send: ASGI send callable for writing response.
        status: HTTP status code.
        content_type: Content-Type header value.
        body: Response body as string (will be encoded to bytes).
    """
    headers = [(b"content-type", content_type.encode())]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


async def _handle_endpoint(
    send: Send,
    endpoint_func: Callable[[], Awaitable[Any]],
    log_message: str,
) -> None:
    """Run an ingest call and map its outcome to an HTTP response.

    Args:
        send: ASGI send callable for writing response.
        endpoint_func: Async function performing the ingestion.
        log_message: Message to log on unexpected errors.
    """
    try:
        await endpoint_func()
    except DecodeError as exc:
        logger.info("Rejected OTLP request: %s", exc)
        await _send_response(
            send, 400, "application/json", error_body(HTTPStatus.BAD_REQUEST, str(exc))
        )
        return
    except Exception:
        logger.exception(log_message)
        await _send_response(
            send,
            500,
            "application/json",
            error_body(HTTPStatus.INTERNAL_SERVER_ERROR),
        )
        return
    await _send_response(send, 200, "application/json", "{}")


def create_asgi_app(
    service: OTLPIngestService,
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
) -> ASGIApp:
    """Create an ASGI app with the OTLP/HTTP receiver endpoints.

    Routes POST /v1/traces, /v1/logs and /v1/metrics to the matching
    ingest call, and POST / to shape-based routing.

    Args:
        service: Ingest service shared by all endpoints.
        max_payload_bytes: Largest accepted request body.

    Returns:
        ASGI application callable.
    """
    handlers: dict[str, Callable[[bytes, str | None], Awaitable[Any]]] = {
        "/v1/traces": service.ingest_traces,
        "/v1/logs": service.ingest_logs,
        "/v1/metrics": service.ingest_metrics,
        "/": service.ingest_auto,
    }

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        handler = handlers.get(path)
        if handler is None:
            await _send_response(send, 404, "text/plain", "Not Found")
            return
        if scope["method"] != "POST":
            await _send_response(
                send,
                405,
                "application/json",
                error_body(HTTPStatus.METHOD_NOT_ALLOWED),
            )
            return

        try:
            body = await _read_body(receive, max_payload_bytes)
        except PayloadTooLargeError as exc:
            await _send_response(
                send,
                413,
                "application/json",
                error_body(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, str(exc)),
            )
            return

        content_type = _get_header(scope, "content-type")
        await _handle_endpoint(
            send,
            lambda: handler(body, content_type),
            f"Error handling OTLP request on {path}",
        )

    return app
