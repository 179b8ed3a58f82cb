"""Order and stock storage on a relational database with an event outbox."""

from __future__ import annotations

import itertools
import json
import logging
import os
import random
import time
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any, Protocol

from lomsvc.connection_pool import ConnectionPool
from lomsvc.metrics import RequestType, measure_metrics
from lomsvc.models import Event, Item, OrderInfo, Status, StockRecord
from lomsvc.queries import (
    OrderLine,
    OrderQueries,
    OrderRow,
    OutboxQueries,
    StockQueries,
)

logger = logging.getLogger(__name__)

STOCK_DATA_FILE = "stock-data.json"


class StorageReservationError(RuntimeError):
    """Stock for an order could not be reserved."""

    def __init__(self, message: str = "error while creating reservation"):
        super().__init__(message)


class StorageOrderNotFoundError(LookupError):
    """No order is stored under the requested id."""

    def __init__(self, message: str = "order with specified orderID not found"):
        super().__init__(message)


class StockNotFoundError(LookupError):
    """No stock is kept for the requested SKU."""

    def __init__(self, message: str = "stock item with specified sku not found"):
        super().__init__(message)


class MessageSender(Protocol):
    def send_message(self, event: Event) -> None: ...


_savepoint_ids = itertools.count(1)


def _rollback(conn: Any, name: str) -> None:
    conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
    conn.execute(f"RELEASE SAVEPOINT {name}")


def _commit_quietly(conn: Any, name: str) -> None:
    try:
        conn.execute(f"RELEASE SAVEPOINT {name}")
    except Exception as err:
        logger.warning("commit of %s failed, rolling back: %s", name, err)
        with suppress(Exception):
            _rollback(conn, name)


@contextmanager
def _transaction(conn: Any, *, always_commit: bool = False) -> Iterator[Any]:
    """Run a block inside a savepoint.

    The savepoint is released when the block succeeds and rolled back when it
    fails, unless ``always_commit`` is set, in which case the work done so far
    is kept even when the block raises.
    """
    name = f"loms_tx_{next(_savepoint_ids)}"
    conn.execute(f"SAVEPOINT {name}")
    try:
        yield conn
    except BaseException:
        if always_commit:
            _commit_quietly(conn, name)
        else:
            with suppress(Exception):
                _rollback(conn, name)
        raise
    if always_commit:
        _commit_quietly(conn, name)
        return
    try:
        conn.execute(f"RELEASE SAVEPOINT {name}")
    except Exception:
        with suppress(Exception):
            _rollback(conn, name)
        raise


def to_add_order_stock(order_id: int, items: Iterable[Item]) -> list[OrderLine]:
    """Turn order items into order lines."""
    return [OrderLine(order_id=order_id, sku_id=item.sku, count=item.count) for item in items]


def to_entity_order_info(rows: Sequence[OrderRow]) -> OrderInfo | None:
    """Build an order from its joined rows; ``None`` when there are none."""
    if not rows:
        return None
    first = rows[0]
    return OrderInfo(
        status=Status(first.status),
        user=first.user_id,
        items=[Item(sku=row.sku_id, count=row.count) for row in rows],
    )


def gen_order_id() -> int:
    """Return a random non-negative 31-bit order id."""
    return random.randrange(1 << 31)


def load_stocks(
    pool: ConnectionPool[Any],
    resources_path: str | os.PathLike[str] | None = None,
) -> int:
    """Insert the stock levels from ``stock-data.json`` into the master database.

    Without a path, ``RESOURCES_PATH`` from the environment is used. Returns
    the number of records inserted.
    """
    if resources_path is None:
        resources_path = os.environ.get("RESOURCES_PATH", "")
    path = Path(resources_path) / STOCK_DATA_FILE
    with path.open(encoding="utf-8") as fh:
        data = json.load(fh)
    records = [
        StockRecord(
            sku=int(entry.get("sku", 0)),
            total_count=int(entry.get("total_count", 0)),
            reserved_count=int(entry.get("reserved", 0)),
        )
        for entry in data or []
    ]
    master = pool.master
    with _transaction(master):
        return StockQueries(master).add_stocks(records)


class LomsStorage:
    """Orders, stock and outbox events kept in a master/replica database pair."""

    def __init__(self, master: Any, replica: Any, sender: MessageSender) -> None:
        self.pool: ConnectionPool[Any] = ConnectionPool(master, replica)
        self.sender = sender

    def close_connections(self) -> None:
        """Close both database connections."""
        self.pool.close()

    def create_order(self, user_id: int, items: Iterable[Item]) -> int:
        """Store a new order, reserve its items and return its id.

        When the items cannot be reserved the order is kept in status FAILED
        and :class:`StorageReservationError` is raised.
        """
        items = list(items)
        master = self.pool.master
        with _transaction(master, always_commit=True):
            order_id = gen_order_id()
            self._create_order_lines(master, order_id, user_id, items)

            start = time.monotonic()
            try:
                OutboxQueries(master).create_event(order_id, Status.NEW)
            except Exception as err:
                raise RuntimeError(
                    f"failed to create event with status={int(Status.NEW)} "
                    f"for orderID={order_id}: {err}"
                ) from err
            measure_metrics(RequestType.INSERT, start)

            try:
                self._try_reserve_items(master, items)
            except StorageReservationError:
                self._set_status_and_event(master, order_id, Status.FAILED)
                raise

            self._set_status_and_event(master, order_id, Status.AWAITING_PAYMENT)
            return order_id

    def get_order_info_by_id(self, order_id: int) -> OrderInfo:
        """Return an order read from either database."""
        start = time.monotonic()
        rows = OrderQueries(self.pool.acquire()).get_by_order_id(order_id)
        measure_metrics(RequestType.FIND, start)
        info = to_entity_order_info(rows)
        if info is None:
            raise StorageOrderNotFoundError()
        return info

    def pay_order(self, order_id: int) -> None:
        """Write off the order's reserved items and mark it payed."""
        master = self.pool.master
        with _transaction(master):
            start = time.monotonic()
            try:
                rows = OrderQueries(master).get_by_order_id(order_id)
            except Exception as err:
                raise StorageOrderNotFoundError() from err
            measure_metrics(RequestType.FIND, start)

            stocks = StockQueries(master)
            for row in rows:
                start = time.monotonic()
                stocks.remove_reservation_of_item(row.sku_id, row.count)
                measure_metrics(RequestType.UPDATE, start)

            self._set_status_and_event(master, order_id, Status.PAYED)

    def cancel_order(self, order_id: int) -> None:
        """Release the order's reserved items and mark it cancelled."""
        master = self.pool.master
        with _transaction(master):
            start = time.monotonic()
            rows = OrderQueries(master).get_by_order_id(order_id)
            measure_metrics(RequestType.FIND, start)

            stocks = StockQueries(master)
            for row in rows:
                start = time.monotonic()
                stocks.cancel_reservation_of_item(row.sku_id, row.count)
                measure_metrics(RequestType.UPDATE, start)

            self._set_status_and_event(master, order_id, Status.CANCELLED)

    def get_stocks_info_by_id(self, sku: int) -> int:
        """Return how many items of a SKU are available to reserve."""
        start = time.monotonic()
        try:
            record = StockQueries(self.pool.acquire()).get_by_sku(sku)
        except Exception as err:
            raise StockNotFoundError() from err
        measure_metrics(RequestType.FIND, start)
        return record.total_count - record.reserved_count

    def fetch_and_mark(self) -> None:
        """Send the oldest unsent outbox event and mark it as sent."""
        master = self.pool.master
        with _transaction(master):
            outbox = OutboxQueries(master)

            start = time.monotonic()
            try:
                record = outbox.get_next_event()
            except Exception as err:
                raise RuntimeError(f"failed to get event: {err}") from err
            measure_metrics(RequestType.FIND, start)

            event = Event(
                id=record.id,
                order_id=record.order_id,
                status=Status(record.order_status),
            )
            try:
                self.sender.send_message(event)
            except Exception as err:
                raise RuntimeError(f"failed to emit event: {err}") from err

            start = time.monotonic()
            try:
                outbox.mark_event_as_sent(record.id)
            except Exception as err:
                raise RuntimeError(f"failed to mark event as 'sent': {err}") from err
            measure_metrics(RequestType.UPDATE, start)

    def _create_order_lines(
        self, conn: Any, order_id: int, user_id: int, items: Sequence[Item]
    ) -> None:
        with _transaction(conn):
            orders = OrderQueries(conn)
            start = time.monotonic()
            orders.add_order(order_id, user_id, Status.NEW)
            measure_metrics(RequestType.INSERT, start)

            start = time.monotonic()
            orders.add_order_stock(to_add_order_stock(order_id, items))
            measure_metrics(RequestType.INSERT, start)

    def _set_status_and_event(self, conn: Any, order_id: int, status: Status) -> None:
        start = time.monotonic()
        try:
            OrderQueries(conn).set_status_by_order_id(order_id, status)
        except Exception as err:
            raise RuntimeError(
                f"failed to set status with status={int(status)} "
                f"for orderID={order_id}: {err}"
            ) from err
        measure_metrics(RequestType.UPDATE, start)

        start = time.monotonic()
        try:
            OutboxQueries(conn).create_event(order_id, status)
        except Exception as err:
            raise RuntimeError(
                f"failed to create event with status={int(status)} "
                f"for orderID={order_id}: {err}"
            ) from err
        measure_metrics(RequestType.INSERT, start)

    def _try_reserve_items(self, conn: Any, items: Sequence[Item]) -> None:
        try:
            with _transaction(conn):
                stocks = StockQueries(conn)
                for item in items:
                    start = time.monotonic()
                    stocks.reserve_items(item.sku, item.count)
                    measure_metrics(RequestType.UPDATE, start)
        except Exception as err:
            raise StorageReservationError() from err