"""Publishing order events to a message broker."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from lomsvc.models import Event

logger = logging.getLogger(__name__)

PRODUCER_HEADERS: tuple[tuple[bytes, bytes], ...] = ((b"loms", b"sync-producer"),)


@dataclass(frozen=True)
class ProducerConfig:
    """Where events are published."""

    topic: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProducerMessage:
    """A message handed to the broker client."""

    topic: str
    value: bytes
    headers: tuple[tuple[bytes, bytes], ...] = ()
    timestamp: datetime = field(default_factory=_now)


class SyncProducer(Protocol):
    def send_message(self, message: ProducerMessage) -> tuple[int, int]: ...

    def close(self) -> None: ...


def encode_event(event: Event) -> bytes:
    """Serialise an event as compact JSON."""
    payload = {"id": event.id, "order_id": event.order_id, "status": int(event.status)}
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class EventHandler:
    """Sends order events to one topic through a synchronous producer."""

    def __init__(self, producer: SyncProducer, topic: str) -> None:
        self.producer = producer
        self.topic = topic

    def send_message(self, event: Event) -> None:
        """Publish an event; errors from the producer propagate."""
        message = ProducerMessage(
            topic=self.topic,
            value=encode_event(event),
            headers=PRODUCER_HEADERS,
            timestamp=_now(),
        )
        partition, offset = self.producer.send_message(message)
        logger.info(
            "msg sent partition=%d eventID=%d offset=%d", partition, event.id, offset
        )

    def close_connections(self) -> None:
        """Close the producer."""
        self.producer.close()