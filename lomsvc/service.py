"""Order service and outbox dispatcher on top of a storage."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from lomsvc.models import Item, OrderInfo

logger = logging.getLogger(__name__)


class ServiceError(RuntimeError):
    """A storage operation failed; the original error is the cause."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.message = message
        self.cause = cause
        super().__init__(f"{message}: {cause}" if cause is not None else message)


class Storage(Protocol):
    def create_order(self, user_id: int, items: Sequence[Item]) -> int: ...

    def get_order_info_by_id(self, order_id: int) -> OrderInfo: ...

    def pay_order(self, order_id: int) -> None: ...

    def cancel_order(self, order_id: int) -> None: ...

    def get_stocks_info_by_id(self, sku: int) -> int: ...


class OutboxStorage(Protocol):
    def fetch_and_mark(self) -> None: ...


def _fail(message: str, err: BaseException) -> ServiceError:
    logger.error("%s: %s", message, err)
    return ServiceError(message, err)


class LOMSService:
    """Creates, pays and cancels orders and reports stock levels."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def order_create(self, user_id: int, items: Sequence[Item]) -> int:
        """Create an order and return its id."""
        try:
            order_id = self.storage.create_order(user_id, items)
        except Exception as err:
            raise _fail("create order failed", err) from err
        logger.debug("create order successfully orderID=%d", order_id)
        return order_id

    def order_info(self, order_id: int) -> OrderInfo:
        """Return an order."""
        try:
            info = self.storage.get_order_info_by_id(order_id)
        except Exception as err:
            raise _fail("getting order info failed", err) from err
        logger.debug("getting order info successfully orderInfo=%s", info)
        return info

    def order_pay(self, order_id: int) -> None:
        """Pay for an order."""
        try:
            self.storage.pay_order(order_id)
        except Exception as err:
            raise _fail("order pay failed", err) from err
        logger.debug("pay order success using orderID=%d", order_id)

    def order_cancel(self, order_id: int) -> None:
        """Cancel an order."""
        try:
            self.storage.cancel_order(order_id)
        except Exception as err:
            raise _fail("order cancel failed", err) from err
        logger.debug("cancel order success using orderID=%d", order_id)

    def stocks_info(self, sku: int) -> int:
        """Return how many items of a SKU are available."""
        try:
            count = self.storage.get_stocks_info_by_id(sku)
        except Exception as err:
            raise _fail("getting stock item info failed", err) from err
        logger.debug("getting stocks info success sku=%d count=%d", sku, count)
        return count


class OutboxService:
    """Publishes pending outbox events one at a time."""

    def __init__(self, storage: OutboxStorage) -> None:
        self.storage = storage

    def dispatch(self) -> None:
        """Send the next pending event."""
        self.storage.fetch_and_mark()