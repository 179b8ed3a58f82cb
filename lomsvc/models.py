"""Domain types shared by the order and stock services."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class Status(enum.IntEnum):
    """Lifecycle state of an order."""

    NEW = 0
    AWAITING_PAYMENT = 1
    FAILED = 2
    PAYED = 3
    CANCELLED = 4


class EventStatus(str, enum.Enum):
    """Delivery state of an outbox event."""

    NEW = "new"
    SENT = "sent"

    @classmethod
    def parse(cls, value: str | bytes | None) -> EventStatus | None:
        """Read an event status from a database value; ``None`` stays ``None``."""
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray)):
            return cls(bytes(value).decode())
        if isinstance(value, str):
            return cls(value)
        raise TypeError(
            f"unsupported scan type for EventStatus: {type(value).__name__}"
        )


@dataclass(frozen=True)
class Item:
    """A quantity of one stock keeping unit."""

    sku: int
    count: int


@dataclass
class OrderInfo:
    """An order as seen by callers: its state, owner and lines."""

    status: Status
    user: int = 0
    items: list[Item] = field(default_factory=list)


@dataclass(frozen=True)
class Event:
    """A change of order status to be published."""

    id: int
    order_id: int
    status: Status


@dataclass(frozen=True)
class StockRecord:
    """Stock levels held for one SKU."""

    sku: int
    total_count: int
    reserved_count: int


@dataclass(frozen=True)
class OutboxRecord:
    """A row of the event outbox."""

    id: int
    order_id: int
    order_status: Status
    event_status: EventStatus
    inserted_at: datetime | None = None