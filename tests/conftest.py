"""Shared test fixtures for all test modules."""

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest

from ai_observer.adapters.broadcast import BroadcastHub
from ai_observer.adapters.storage import InMemoryTelemetryStorage, SQLiteTelemetryStorage
from ai_observer.core.ingest import OTLPIngestService
from ai_observer.core.pricing import PricingRegistry, load_registry


@pytest.fixture(scope="session")
def registry() -> PricingRegistry:
    """Bundled pricing registry, loaded once per test session."""
    return load_registry()


@pytest.fixture
def storage() -> InMemoryTelemetryStorage:
    """Fixture providing an empty in-memory telemetry storage."""
    return InMemoryTelemetryStorage()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for SQLite storage tests."""
    return str(tmp_path / "telemetry.db")


@pytest.fixture
async def memory_sqlite_storage() -> AsyncGenerator[SQLiteTelemetryStorage]:
    """In-memory SQLite storage with proper cleanup."""
    sqlite_storage = SQLiteTelemetryStorage(":memory:")
    yield sqlite_storage
    await sqlite_storage.close()


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture
def ingest_service(
    storage: InMemoryTelemetryStorage, registry: PricingRegistry, hub: BroadcastHub
) -> OTLPIngestService:
    """Ingest service wired to in-memory storage and a broadcast hub."""
    return OTLPIngestService(storage, registry, hub)


# === ASGI Test Fixtures ===


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Returns a callable that accepts an ASGI app and yields a client
    with ASGITransport configured.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app(service)
            async with asgi_test_client(app) as client:
                response = await client.post("/v1/logs", content=body)
    """

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
