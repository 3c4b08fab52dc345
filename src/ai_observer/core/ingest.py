"""Live OTLP ingestion: decode, convert, derive, store, broadcast.

Framework adapters hand buffered request bodies to OTLPIngestService and
map its exceptions to HTTP status codes: DecodeError is a client error,
StorageError a server error.
"""

import logging
import time
from collections.abc import Sequence
from dataclasses import asdict
from typing import Any

from ai_observer.core.errors import StorageError
from ai_observer.core.models import LogRecord, MetricDataPoint, Span
from ai_observer.core.otlp.convert import (
    LogConversion,
    convert_logs,
    convert_metrics,
    convert_traces,
)
from ai_observer.core.otlp.decode import Signal, decode_any, decode_request
from ai_observer.core.otlp.delta import MetricBatch, derive_deltas
from ai_observer.core.otlp.derived import derive_gemini_cost
from ai_observer.core.ports import BroadcastPort, TelemetryStoragePort
from ai_observer.core.pricing import PricingRegistry

logger = logging.getLogger(__name__)


def broadcast_message(kind: str, records: Sequence[Any]) -> dict[str, Any]:
    """Build the message pushed to live viewers for a batch of records."""
    return {
        "type": kind,
        "timestamp": time.time(),
        "payload": [asdict(record) for record in records],
    }


class OTLPIngestService:
    """Processes OTLP export requests for all three signal kinds.

    Args:
        storage: Storage collaborator for records and last-value lookups.
        registry: Pricing registry used for derived cost metrics.
        broadcaster: Optional live fan-out; failures never fail a request.
    """

    def __init__(
        self,
        storage: TelemetryStoragePort,
        registry: PricingRegistry,
        broadcaster: BroadcastPort | None = None,
    ) -> None:
        self._storage = storage
        self._registry = registry
        self._broadcaster = broadcaster

    async def ingest_auto(self, body: bytes, content_type: str | None) -> Signal:
        """Ingest a request body whose signal kind is inferred from its shape.

        Returns:
            The signal kind that was ingested.

        Raises:
            DecodeError: If the body cannot be decoded.
            StorageError: If records could not be stored.
        """
        decoded = decode_any(body, content_type)

        if decoded.signal is Signal.TRACES:
            await self._store_traces(decoded.message)
        elif decoded.signal is Signal.LOGS:
            await self._store_logs(decoded.message)
        else:
            await self._store_metrics(decoded.message)
        return decoded.signal

    async def ingest_traces(self, body: bytes, content_type: str | None) -> list[Span]:
        decoded = decode_request(body, content_type, Signal.TRACES)
        return await self._store_traces(decoded.message)

    async def ingest_logs(self, body: bytes, content_type: str | None) -> LogConversion:
        decoded = decode_request(body, content_type, Signal.LOGS)
        return await self._store_logs(decoded.message)

    async def ingest_metrics(self, body: bytes, content_type: str | None) -> MetricBatch:
        decoded = decode_request(body, content_type, Signal.METRICS)
        return await self._store_metrics(decoded.message)

    async def derive_metrics(self, request: Any) -> MetricBatch:
        """Convert a metrics request and derive deltas and costs.

        Reads last values from storage but writes nothing.
        """
        conversion = convert_metrics(request, self._registry)
        try:
            deltas = await derive_deltas(
                conversion.metrics, self._storage.get_latest_metric_value
            )
        except Exception as exc:
            raise StorageError(f"failed to look up previous metric values: {exc}") from exc

        derived = list(conversion.derived_metrics)
        for point in deltas:
            cost = derive_gemini_cost(self._registry, point)
            if cost is not None:
                derived.append(cost)
        return MetricBatch(original=conversion.metrics, deltas=deltas, derived=derived)

    async def _store_traces(self, request: Any) -> list[Span]:
        spans = convert_traces(request)
        try:
            await self._storage.insert_spans(spans)
        except Exception as exc:
            raise StorageError(f"failed to store spans: {exc}") from exc
        logger.debug("Received %d spans", len(spans))
        if spans:
            self._publish("traces", spans)
        return spans

    async def _store_logs(self, request: Any) -> LogConversion:
        conversion = convert_logs(request, self._registry)
        try:
            await self._storage.insert_logs(conversion.logs)
        except Exception as exc:
            raise StorageError(f"failed to store logs: {exc}") from exc

        if conversion.derived_metrics:
            try:
                await self._storage.insert_metrics(conversion.derived_metrics)
            except Exception:
                # Derived metrics are supplementary; the logs are already stored.
                logger.warning("Failed to store metrics derived from logs", exc_info=True)
            self._publish("metrics", conversion.derived_metrics)

        logger.debug("Received %d log records", len(conversion.logs))
        if conversion.logs:
            self._publish("logs", conversion.logs)
        return conversion

    async def _store_metrics(self, request: Any) -> MetricBatch:
        batch = await self.derive_metrics(request)
        points: list[MetricDataPoint] = batch.all()
        try:
            await self._storage.insert_metrics(points)
        except Exception as exc:
            raise StorageError(f"failed to store metrics: {exc}") from exc
        logger.debug(
            "Received %d metric points (%d deltas, %d derived)",
            len(batch.original),
            len(batch.deltas),
            len(batch.derived),
        )
        if points:
            self._publish("metrics", points)
        return batch

    def _publish(
        self, kind: str, records: Sequence[LogRecord | MetricDataPoint | Span]
    ) -> None:
        if self._broadcaster is None:
            return
        try:
            self._broadcaster.broadcast(broadcast_message(kind, records))
        except Exception:
            logger.warning("Broadcast of %s failed", kind, exc_info=True)
