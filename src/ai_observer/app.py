"""FastAPI application wiring for the OTLP receiver.

Run with:
    uvicorn ai_observer.app:create_app --factory --port 4318
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ai_observer.adapters.broadcast import BroadcastHub
from ai_observer.adapters.frameworks.fastapi import create_otlp_router
from ai_observer.adapters.storage import SQLiteTelemetryStorage
from ai_observer.config import Settings, get_settings
from ai_observer.core.ingest import OTLPIngestService
from ai_observer.core.ports import TelemetryStoragePort
from ai_observer.core.pricing import load_registry
from ai_observer.logging_config import configure_logging


def create_app(
    settings: Settings | None = None,
    storage: TelemetryStoragePort | None = None,
    broadcaster: BroadcastHub | None = None,
) -> FastAPI:
    """Build the receiver app.

    Without an explicit storage, a SQLite database is opened at
    settings.database_path and closed on shutdown.
    """
    settings = settings or get_settings()
    logger = configure_logging(settings)

    owned_storage: SQLiteTelemetryStorage | None = None
    if storage is None:
        settings.database_path.parent.mkdir(parents=True, exist_ok=True)
        owned_storage = SQLiteTelemetryStorage(str(settings.database_path))
        storage = owned_storage
    broadcaster = broadcaster or BroadcastHub()

    service = OTLPIngestService(storage, load_registry(), broadcaster)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("OTLP receiver ready (database: %s)", settings.database_path)
        yield
        if owned_storage is not None:
            await owned_storage.close()

    app = FastAPI(title="AI Observer", lifespan=lifespan)
    app.include_router(create_otlp_router(service, settings.max_payload_bytes))
    app.state.settings = settings
    app.state.service = service
    app.state.broadcaster = broadcaster
    return app
