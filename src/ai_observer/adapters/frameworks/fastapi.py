"""FastAPI adapter for the OTLP/HTTP receiver."""

import logging
from collections.abc import Awaitable, Callable
from http import HTTPStatus
from typing import Any

from fastapi import APIRouter, Request, Response

from ai_observer.adapters.frameworks.asgi import (
    DEFAULT_MAX_PAYLOAD_BYTES,
    PayloadTooLargeError,
    error_body,
)
from ai_observer.core.errors import DecodeError
from ai_observer.core.ingest import OTLPIngestService

logger = logging.getLogger(__name__)


def _json_response(status: HTTPStatus, body: str) -> Response:
    return Response(content=body, status_code=status, media_type="application/json")


async def _read_body(request: Request, max_bytes: int) -> bytes:
    """Buffer the request body, failing once it grows past max_bytes."""
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            raise PayloadTooLargeError(f"request body exceeds {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def create_otlp_router(
    service: OTLPIngestService,
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
) -> APIRouter:
    """Create a FastAPI router with the OTLP/HTTP receiver endpoints.

    Args:
        service: Ingest service shared by all endpoints.
        max_payload_bytes: Largest accepted request body.

    Returns:
        APIRouter with POST /v1/traces, /v1/logs, /v1/metrics and /.
    """
    router = APIRouter()

    async def _ingest(
        request: Request,
        handler: Callable[[bytes, str | None], Awaitable[Any]],
    ) -> Response:
        try:
            body = await _read_body(request, max_payload_bytes)
        except PayloadTooLargeError as exc:
            return _json_response(
                HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
                error_body(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, str(exc)),
            )
        try:
            await handler(body, request.headers.get("content-type"))
        except DecodeError as exc:
            logger.info("Rejected OTLP request: %s", exc)
            return _json_response(
                HTTPStatus.BAD_REQUEST, error_body(HTTPStatus.BAD_REQUEST, str(exc))
            )
        except Exception:
            logger.exception("Error handling OTLP request on %s", request.url.path)
            return _json_response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                error_body(HTTPStatus.INTERNAL_SERVER_ERROR),
            )
        return _json_response(HTTPStatus.OK, "{}")

    @router.post("/v1/traces")
    async def post_traces(request: Request) -> Response:
        """Receive an ExportTraceServiceRequest."""
        return await _ingest(request, service.ingest_traces)

    @router.post("/v1/logs")
    async def post_logs(request: Request) -> Response:
        """Receive an ExportLogsServiceRequest."""
        return await _ingest(request, service.ingest_logs)

    @router.post("/v1/metrics")
    async def post_metrics(request: Request) -> Response:
        """Receive an ExportMetricsServiceRequest."""
        return await _ingest(request, service.ingest_metrics)

    @router.post("/")
    async def post_any(request: Request) -> Response:
        """Receive a JSON export request of any signal kind."""
        return await _ingest(request, service.ingest_auto)

    return router
