"""Routes channel events through the correlator into the reading store."""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from functools import lru_cache
from threading import BoundedSemaphore, Lock
from typing import Any, Dict, Optional

from datastore.sqlite_store import ReadingStore, build_default_store
from models.records import ChannelEvent, Metric
from services.correlator import ReadingCorrelator, build_default_correlator
from settings import TopicSettings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_ENQUEUE_TIMEOUT = 1.0


class TopicKind(str, Enum):
    temperature = "temperature"
    humidity = "humidity"
    air_quality = "air_quality"
    status = "status"
    unrecognized = "unrecognized"


_METRIC_KINDS = {
    TopicKind.temperature: Metric.temperature,
    TopicKind.humidity: Metric.humidity,
    TopicKind.air_quality: Metric.air_quality,
}


class PayloadParseError(ValueError):
    """A metric payload could not be read as a finite number."""


def parse_metric_payload(payload: bytes) -> float:
    try:
        text = payload.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise PayloadParseError("payload is not valid UTF-8") from exc
    if not text:
        raise PayloadParseError("payload is empty")
    try:
        value = float(text)
    except ValueError as exc:
        raise PayloadParseError(f"payload {text!r} is not numeric") from exc
    if not math.isfinite(value):
        raise PayloadParseError(f"payload {text!r} is not finite")
    return value


@dataclass
class DispatcherStats:
    received: int = 0
    persisted: int = 0
    parse_failures: int = 0
    ignored: int = 0
    insert_failures: int = 0
    dropped: int = 0
    last_status: Optional[str] = None
    last_status_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class IngestionDispatcher:
    """Consumes channel events on a single worker with a bounded backlog.

    ``submit`` is safe to call from transport callback threads. Events are
    handled one at a time, in submission order, by the worker thread, which
    is the only caller that mutates the correlator.
    """

    def __init__(
        self,
        store: ReadingStore,
        correlator: ReadingCorrelator,
        topics: TopicSettings,
        queue_size: int = 256,
        enqueue_timeout: float = DEFAULT_ENQUEUE_TIMEOUT,
    ) -> None:
        self.store = store
        self.correlator = correlator
        self.topics = topics
        self.queue_size = queue_size
        self.enqueue_timeout = enqueue_timeout
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest")
        self._topic_kinds = {
            topics.temperature: TopicKind.temperature,
            topics.humidity: TopicKind.humidity,
            topics.air_quality: TopicKind.air_quality,
            topics.status: TopicKind.status,
        }
        self._slots = BoundedSemaphore(queue_size)
        self._stats = DispatcherStats()
        self._stats_lock = Lock()
        self._state_lock = Lock()
        self._accepting = True

    @property
    def stats(self) -> DispatcherStats:
        with self._stats_lock:
            return DispatcherStats(**asdict(self._stats))

    @property
    def accepting(self) -> bool:
        with self._state_lock:
            return self._accepting

    def resolve(self, topic: str) -> TopicKind:
        return self._topic_kinds.get(topic, TopicKind.unrecognized)

    def submit(self, event: ChannelEvent) -> bool:
        """Queue ``event`` for the worker; return False if it was dropped."""
        if not self.accepting:
            logger.warning("Dispatcher is shut down; dropping event", extra={"topic": event.topic})
            self._count("dropped")
            return False

        if not self._slots.acquire(timeout=self.enqueue_timeout):
            logger.warning(
                "Ingestion backlog full; dropping event",
                extra={"topic": event.topic, "reason": "queue_full"},
            )
            self._count("dropped")
            return False

        try:
            self.executor.submit(self._process_queued, event)
        except RuntimeError:
            self._slots.release()
            logger.warning("Dispatcher is shut down; dropping event", extra={"topic": event.topic})
            self._count("dropped")
            return False
        return True

    def handle(self, event: ChannelEvent) -> Optional[int]:
        """Process one event to completion; return the new reading id, if any."""
        self._count("received")
        kind = self.resolve(event.topic)

        if kind is TopicKind.status:
            status = event.payload.decode("utf-8", errors="replace").strip()
            with self._stats_lock:
                self._stats.last_status = status
                self._stats.last_status_at = event.received_at
            logger.info("Device status update", extra={"topic": event.topic, "device_status": status})
            return None

        if kind is TopicKind.unrecognized:
            logger.info("Ignoring message on unrecognized topic", extra={"topic": event.topic})
            self._count("ignored")
            return None

        metric = _METRIC_KINDS[kind]
        try:
            value = parse_metric_payload(event.payload)
        except PayloadParseError as exc:
            logger.warning(
                "Dropping unparsable metric payload",
                extra={
                    "topic": event.topic,
                    "metric": metric.value,
                    "reason": str(exc),
                    "invalid_value": event.payload[:64],
                },
            )
            self._count("parse_failures")
            return None

        logger.debug("Received metric", extra={"metric": metric.value, "value": value})
        candidate = self.correlator.apply_metric(metric, value, event.received_at)
        if candidate is None:
            return None

        result = self.store.insert(
            candidate.temperature,
            candidate.humidity,
            candidate.air_quality,
        )
        failure = result.failure
        if failure is not None:
            logger.error(
                "Failed to persist correlated reading",
                extra={"failure_kind": failure.kind.value, "reason": failure.message},
            )
            self._count("insert_failures")
            return None

        self._count("persisted")
        logger.info("Reading saved", extra={"reading_id": result.value})
        return result.value

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting events, then let queued events finish."""
        with self._state_lock:
            self._accepting = False
        self.executor.shutdown(wait=wait)

    def _process_queued(self, event: ChannelEvent) -> None:
        try:
            self.handle(event)
        except Exception:  # noqa: BLE001 - the worker must survive any single event
            logger.exception("Unexpected error while handling event", extra={"topic": event.topic})
        finally:
            self._slots.release()

    def _count(self, field: str) -> None:
        with self._stats_lock:
            setattr(self._stats, field, getattr(self._stats, field) + 1)


@lru_cache
def build_default_dispatcher() -> IngestionDispatcher:
    """Factory that wires the dispatcher with the default store and correlator."""
    settings = get_settings()
    return IngestionDispatcher(
        store=build_default_store(),
        correlator=build_default_correlator(),
        topics=settings.topics,
        queue_size=settings.dispatcher_queue_size,
    )
