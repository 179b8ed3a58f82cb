import json
import sqlite3

import pytest

from lomsvc.connection_pool import ConnectionPool
from lomsvc.metrics import RequestType, metric
from lomsvc.models import Item, OrderInfo, Status, StockRecord
from lomsvc.queries import OrderLine, OrderRow, StockQueries, create_schema
from lomsvc.storage import (
    LomsStorage,
    StockNotFoundError,
    StorageOrderNotFoundError,
    StorageReservationError,
    gen_order_id,
    load_stocks,
    to_add_order_stock,
    to_entity_order_info,
)

SKU_A = 1076963
SKU_B = 1148162


class RecordingSender:
    def __init__(self):
        self.events = []

    def send_message(self, event):
        self.events.append(event)


class FailingSender:
    def send_message(self, event):
        raise ConnectionError("broker unavailable")


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:", isolation_level=None)
    create_schema(connection)
    StockQueries(connection).add_stocks(
        [StockRecord(SKU_A, 100, 10), StockRecord(SKU_B, 5, 0)]
    )
    yield connection
    connection.close()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def storage(conn, sender):
    return LomsStorage(conn, conn, sender)


def _drain(storage, sender):
    while True:
        try:
            storage.fetch_and_mark()
        except RuntimeError:
            return [(e.order_id, e.status) for e in sender.events]


def test_to_add_order_stock_maps_items():
    lines = to_add_order_stock(9, [Item(SKU_A, 2), Item(SKU_B, 3)])
    assert lines == [OrderLine(9, SKU_A, 2), OrderLine(9, SKU_B, 3)]


def test_to_entity_order_info_empty_is_none():
    assert to_entity_order_info([]) is None


def test_to_entity_order_info_builds_order():
    rows = [OrderRow(1, 7, SKU_A, 2), OrderRow(1, 7, SKU_B, 3)]
    assert to_entity_order_info(rows) == OrderInfo(
        status=Status.AWAITING_PAYMENT, user=7, items=[Item(SKU_A, 2), Item(SKU_B, 3)]
    )


def test_gen_order_id_fits_31_bits():
    assert all(0 <= gen_order_id() < 2**31 for _ in range(200))


def test_create_order_reserves_and_awaits_payment(storage):
    available_before = storage.get_stocks_info_by_id(SKU_A)
    order_id = storage.create_order(7, [Item(SKU_A, 3)])
    info = storage.get_order_info_by_id(order_id)
    assert info == OrderInfo(status=Status.AWAITING_PAYMENT, user=7, items=[Item(SKU_A, 3)])
    assert storage.get_stocks_info_by_id(SKU_A) == available_before - 3


def test_create_order_emits_events_in_order(storage, sender):
    order_id = storage.create_order(7, [Item(SKU_A, 1)])
    assert _drain(storage, sender) == [
        (order_id, Status.NEW),
        (order_id, Status.AWAITING_PAYMENT),
    ]


def test_create_order_failed_reservation_keeps_failed_order(storage, sender):
    available_a = storage.get_stocks_info_by_id(SKU_A)
    available_b = storage.get_stocks_info_by_id(SKU_B)
    with pytest.raises(StorageReservationError):
        storage.create_order(7, [Item(SKU_A, 2), Item(SKU_B, 6)])
    assert storage.get_stocks_info_by_id(SKU_A) == available_a
    assert storage.get_stocks_info_by_id(SKU_B) == available_b
    events = _drain(storage, sender)
    assert [status for _, status in events] == [Status.NEW, Status.FAILED]
    order_id = events[0][0]
    assert storage.get_order_info_by_id(order_id).status == Status.FAILED


def test_get_order_info_unknown_order(storage):
    with pytest.raises(StorageOrderNotFoundError):
        storage.get_order_info_by_id(123456)


def test_pay_order_writes_off_stock(storage, conn, sender):
    before = StockQueries(conn).get_by_sku(SKU_B)
    order_id = storage.create_order(7, [Item(SKU_B, 2)])
    storage.pay_order(order_id)
    after = StockQueries(conn).get_by_sku(SKU_B)
    assert after.total_count == before.total_count - 2
    assert after.reserved_count == before.reserved_count
    assert storage.get_order_info_by_id(order_id).status == Status.PAYED
    assert _drain(storage, sender)[-1] == (order_id, Status.PAYED)


def test_cancel_order_releases_stock(storage, sender):
    available_before = storage.get_stocks_info_by_id(SKU_B)
    order_id = storage.create_order(7, [Item(SKU_B, 2)])
    storage.cancel_order(order_id)
    assert storage.get_stocks_info_by_id(SKU_B) == available_before
    assert storage.get_order_info_by_id(order_id).status == Status.CANCELLED
    assert _drain(storage, sender)[-1] == (order_id, Status.CANCELLED)


def test_get_stocks_info_unknown_sku(storage):
    with pytest.raises(StockNotFoundError):
        storage.get_stocks_info_by_id(999)


def test_get_stocks_info_counts_select(storage):
    before = metric.request_total(RequestType.FIND)
    storage.get_stocks_info_by_id(SKU_A)
    assert metric.request_total(RequestType.FIND) == before + 1


def test_fetch_and_mark_without_events(storage):
    with pytest.raises(RuntimeError, match="failed to get event"):
        storage.fetch_and_mark()


def test_fetch_and_mark_keeps_event_when_send_fails(conn):
    failing = LomsStorage(conn, conn, FailingSender())
    order_id = failing.create_order(7, [Item(SKU_A, 1)])
    with pytest.raises(RuntimeError, match="failed to emit event"):
        failing.fetch_and_mark()
    sender = RecordingSender()
    LomsStorage(conn, conn, sender).fetch_and_mark()
    assert [(e.order_id, e.status) for e in sender.events] == [(order_id, Status.NEW)]


def test_load_stocks_from_path(conn, tmp_path):
    (tmp_path / "stock-data.json").write_text(
        json.dumps([{"sku": 42, "total_count": 9, "reserved": 4}]), encoding="utf-8"
    )
    assert load_stocks(ConnectionPool(conn, conn), tmp_path) == 1
    assert StockQueries(conn).get_by_sku(42) == StockRecord(42, 9, 4)


def test_load_stocks_from_environment(conn, tmp_path, monkeypatch):
    (tmp_path / "stock-data.json").write_text(
        json.dumps([{"sku": 77, "total_count": 3}]), encoding="utf-8"
    )
    monkeypatch.setenv("RESOURCES_PATH", str(tmp_path))
    assert load_stocks(ConnectionPool(conn, conn)) == 1
    assert StockQueries(conn).get_by_sku(77) == StockRecord(77, 3, 0)


def test_load_stocks_missing_file(conn, tmp_path):
    with pytest.raises(FileNotFoundError):
        load_stocks(ConnectionPool(conn, conn), tmp_path)


def test_close_connections(storage, conn):
    storage.close_connections()
    with pytest.raises(sqlite3.ProgrammingError):
        conn.execute("SELECT 1")