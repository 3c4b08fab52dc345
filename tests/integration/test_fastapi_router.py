"""Integration tests for the FastAPI OTLP router and app factory."""

from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import pytest
from fastapi import FastAPI
from tests.payloads import (
    json_logs_body,
    json_metrics_body,
    metrics_request,
    number_point,
    sum_metric,
)

from ai_observer.adapters.broadcast import BroadcastHub
from ai_observer.adapters.frameworks.fastapi import create_otlp_router
from ai_observer.adapters.storage import InMemoryTelemetryStorage
from ai_observer.app import create_app
from ai_observer.config import Settings
from ai_observer.core.ingest import OTLPIngestService
from ai_observer.core.models import MetricDataPoint
from ai_observer.core.pricing import PricingRegistry

pytestmark = [pytest.mark.asgi, pytest.mark.tier(2)]

JSON = {"content-type": "application/json"}


class BrokenStorage(InMemoryTelemetryStorage):
    async def insert_metrics(self, metrics: Sequence[MetricDataPoint]) -> None:
        raise RuntimeError("database is locked")


def router_app(service: OTLPIngestService, max_payload_bytes: int = 1024 * 1024) -> FastAPI:
    app = FastAPI()
    app.include_router(create_otlp_router(service, max_payload_bytes))
    return app


class TestFastAPIRouter:
    async def test_metrics_protobuf_returns_200(
        self,
        ingest_service: OTLPIngestService,
        storage: InMemoryTelemetryStorage,
        asgi_test_client,
    ) -> None:
        body = metrics_request(
            "claude-code", [sum_metric("claude_code.session.count", [number_point(2)])]
        ).SerializeToString()

        async with asgi_test_client(router_app(ingest_service)) as client:
            response = await client.post(
                "/v1/metrics",
                content=body,
                headers={"content-type": "application/x-protobuf"},
            )

        assert response.status_code == 200
        assert response.json() == {}
        assert storage.metrics[0].value == 2.0

    async def test_root_path_routes_on_shape(
        self,
        ingest_service: OTLPIngestService,
        storage: InMemoryTelemetryStorage,
        asgi_test_client,
    ) -> None:
        async with asgi_test_client(router_app(ingest_service)) as client:
            response = await client.post("/", content=json_logs_body(), headers=JSON)

        assert response.status_code == 200
        assert len(storage.logs) == 1

    async def test_undecodable_body_returns_400(
        self, ingest_service: OTLPIngestService, asgi_test_client
    ) -> None:
        async with asgi_test_client(router_app(ingest_service)) as client:
            response = await client.post("/v1/traces", content=b"", headers=JSON)

        assert response.status_code == 400
        assert response.json()["message"] == "empty request body"

    async def test_storage_failure_returns_500(
        self, registry: PricingRegistry, asgi_test_client
    ) -> None:
        service = OTLPIngestService(BrokenStorage(), registry)

        async with asgi_test_client(router_app(service)) as client:
            response = await client.post("/v1/metrics", content=json_metrics_body(), headers=JSON)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal Server Error"}

    async def test_get_is_not_allowed(
        self, ingest_service: OTLPIngestService, asgi_test_client
    ) -> None:
        async with asgi_test_client(router_app(ingest_service)) as client:
            response = await client.get("/v1/logs")

        assert response.status_code == 405

    async def test_oversized_body_returns_413(
        self, ingest_service: OTLPIngestService, asgi_test_client
    ) -> None:
        async with asgi_test_client(router_app(ingest_service, 16)) as client:
            response = await client.post("/v1/logs", content=json_logs_body(), headers=JSON)

        assert response.status_code == 413

    async def test_streamed_body_is_cut_off_at_limit(
        self,
        ingest_service: OTLPIngestService,
        storage: InMemoryTelemetryStorage,
        asgi_test_client,
    ) -> None:
        async def chunks() -> AsyncIterator[bytes]:
            for _ in range(8):
                yield b" " * 32

        async with asgi_test_client(router_app(ingest_service, 100)) as client:
            response = await client.post("/v1/logs", content=chunks(), headers=JSON)

        assert response.status_code == 413
        assert response.json()["message"] == "request body exceeds 100 bytes"
        assert storage.logs == []


class TestCreateApp:
    async def test_app_uses_injected_storage(
        self, storage: InMemoryTelemetryStorage, tmp_path: Path, asgi_test_client
    ) -> None:
        hub = BroadcastHub()
        settings = Settings(database_path=tmp_path / "unused.db", log_level="warning")
        app = create_app(settings, storage=storage, broadcaster=hub)
        queue = hub.subscribe()

        async with asgi_test_client(app) as client:
            response = await client.post("/v1/logs", content=json_logs_body(), headers=JSON)

        assert response.status_code == 200
        assert len(storage.logs) == 1
        assert queue.get_nowait()["type"] == "logs"
        assert app.state.settings is settings
        assert not (tmp_path / "unused.db").exists()
