"""In-memory order repository."""

from __future__ import annotations

import random
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from lomsvc.models import Item, OrderInfo, Status


class OrderNotFoundError(LookupError):
    """No order is stored under the requested id."""

    def __init__(self, message: str = "couldn't find order with specified orderID"):
        super().__init__(message)


@dataclass
class _StoredOrder:
    user: int
    status: Status
    items: tuple[Item, ...]


def _gen_order_id() -> int:
    return random.randrange(1 << 63)


class MemoryOrderRepository:
    """Keeps orders in a dictionary guarded by a lock."""

    def __init__(self) -> None:
        self._storage: dict[int, _StoredOrder] = {}
        self._lock = threading.RLock()

    def create(self, user_id: int, items: Iterable[Item]) -> int:
        """Store a new order in status NEW and return its id."""
        with self._lock:
            order_id = _gen_order_id()
            self._storage[order_id] = _StoredOrder(
                user=user_id,
                status=Status.NEW,
                items=tuple(Item(item.sku, item.count) for item in items),
            )
            return order_id

    def set_status(self, order_id: int, status: Status) -> None:
        """Change the status of a stored order."""
        with self._lock:
            try:
                self._storage[order_id].status = status
            except KeyError:
                raise OrderNotFoundError() from None

    def get_by_order_id(self, order_id: int) -> OrderInfo:
        """Return a copy of the stored order."""
        with self._lock:
            try:
                order = self._storage[order_id]
            except KeyError:
                raise OrderNotFoundError() from None
            return OrderInfo(status=order.status, user=order.user, items=list(order.items))