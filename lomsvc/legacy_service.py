"""Order service working directly on order and stock repositories."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from lomsvc.memory_stock import ReserveTooLargeError
from lomsvc.models import Item, OrderInfo, Status

logger = logging.getLogger(__name__)


class ReservationError(RuntimeError):
    """Stock for an order could not be reserved."""

    def __init__(self, message: str = "error while creating reservation"):
        super().__init__(message)


class OrderRepository(Protocol):
    def create(self, user_id: int, items: Sequence[Item]) -> int: ...

    def set_status(self, order_id: int, status: Status) -> None: ...

    def get_by_order_id(self, order_id: int) -> OrderInfo: ...


class StocksRepository(Protocol):
    def reserve(self, items: Sequence[Item]) -> None: ...

    def remove_reservation(self, items: Sequence[Item]) -> None: ...

    def cancel_reservation(self, items: Sequence[Item]) -> None: ...

    def get_by_sku(self, sku: int) -> int: ...


class LegacyLOMSService:
    """Creates, pays and cancels orders, keeping stock reservations in step."""

    def __init__(self, order_repo: OrderRepository, stocks_repo: StocksRepository):
        self.order_repo = order_repo
        self.stocks_repo = stocks_repo

    def order_create(self, user_id: int, items: Sequence[Item]) -> int:
        """Create an order and reserve its items; returns the order id."""
        order_id = self.order_repo.create(user_id, items)
        try:
            self.stocks_repo.reserve(items)
        except Exception as err:
            logger.warning("Error creating reservation=%s", err)
            if isinstance(err, ReserveTooLargeError):
                self.order_repo.set_status(order_id, Status.FAILED)
            raise ReservationError() from err
        self.order_repo.set_status(order_id, Status.AWAITING_PAYMENT)
        return order_id

    def order_info(self, order_id: int) -> OrderInfo:
        """Return the stored order."""
        try:
            return self.order_repo.get_by_order_id(order_id)
        except Exception as err:
            logger.warning("Error fetching order by id=%d: %s", order_id, err)
            raise

    def order_pay(self, order_id: int) -> None:
        """Write off the order's reserved items and mark it payed."""
        info = self.order_info(order_id)
        try:
            self.stocks_repo.remove_reservation(info.items)
        except Exception as err:
            logger.warning("Error removing reservation by order_id=%d: %s", order_id, err)
            raise
        self._set_status(order_id, Status.PAYED)

    def order_cancel(self, order_id: int) -> None:
        """Release the order's reserved items and mark it cancelled."""
        info = self.order_info(order_id)
        try:
            self.stocks_repo.cancel_reservation(info.items)
        except Exception as err:
            logger.warning(
                "Error cancelling reservation by order_id=%d: %s", order_id, err
            )
            raise
        self._set_status(order_id, Status.CANCELLED)

    def stocks_info(self, sku: int) -> int:
        """Return how many items of a SKU are available."""
        try:
            return self.stocks_repo.get_by_sku(sku)
        except Exception as err:
            logger.warning("Error getting info about stocks with sku=%d: %s", sku, err)
            raise

    def _set_status(self, order_id: int, status: Status) -> None:
        try:
            self.order_repo.set_status(order_id, status)
        except Exception as err:
            logger.warning("Error setting status: %s", err)
            raise