"""SQL queries for orders, stock levels and the event outbox."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from lomsvc.models import EventStatus, OutboxRecord, Status, StockRecord

NO_ROWS_MESSAGE = "no rows in result set"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS "order" (
        order_id INTEGER PRIMARY KEY,
        user_id INTEGER NOT NULL,
        status INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_stock (
        order_id INTEGER NOT NULL REFERENCES "order" (order_id),
        sku_id INTEGER NOT NULL,
        "count" INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stock (
        sku INTEGER PRIMARY KEY,
        total_count INTEGER NOT NULL,
        reserved_count INTEGER NOT NULL DEFAULT 0,
        CHECK (reserved_count >= 0 AND reserved_count <= total_count)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS outbox (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        orderID INTEGER NOT NULL,
        order_status INTEGER NOT NULL,
        event_status TEXT NOT NULL DEFAULT 'new'
            CHECK (event_status IN ('new', 'sent')),
        dttm_inserted TEXT NOT NULL
            DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
    )
    """,
)


class Database(Protocol):
    """The part of a DB-API connection the queries rely on."""

    def execute(self, sql: str, parameters: Any = ...) -> Any: ...

    def executemany(self, sql: str, parameters: Any) -> Any: ...


def create_schema(connection: Database) -> None:
    """Create the order, order_stock, stock and outbox tables if missing."""
    for statement in _SCHEMA:
        connection.execute(statement)


@dataclass(frozen=True)
class OrderLine:
    """One SKU and its quantity within an order."""

    order_id: int
    sku_id: int
    count: int


@dataclass(frozen=True)
class OrderRow:
    """An order joined with one of its lines."""

    status: int
    user_id: int
    sku_id: int
    count: int


class OrderQueries:
    """Queries on the order and order_stock tables."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def add_order(self, order_id: int, user_id: int, status: int) -> None:
        """Insert an order header."""
        self.db.execute(
            'INSERT INTO "order" (order_id, user_id, status) VALUES (?, ?, ?)',
            (order_id, user_id, int(status)),
        )

    def add_order_stock(self, lines: Iterable[OrderLine]) -> int:
        """Insert order lines in bulk; returns how many were written."""
        rows = [(line.order_id, line.sku_id, line.count) for line in lines]
        if rows:
            self.db.executemany(
                'INSERT INTO order_stock (order_id, sku_id, "count") VALUES (?, ?, ?)',
                rows,
            )
        return len(rows)

    def get_by_order_id(self, order_id: int) -> list[OrderRow]:
        """Return every line of an order with the order's status and user."""
        cursor = self.db.execute(
            'SELECT o.status, o.user_id, os.sku_id, os."count" FROM "order" o '
            "JOIN order_stock os ON o.order_id = os.order_id "
            "WHERE os.order_id = ?",
            (order_id,),
        )
        return [OrderRow(*row) for row in cursor.fetchall()]

    def set_status_by_order_id(self, order_id: int, status: int) -> None:
        """Change an order's status."""
        self.db.execute(
            'UPDATE "order" SET status = ? WHERE order_id = ?',
            (int(status), order_id),
        )


class StockQueries:
    """Queries on the stock table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def add_stocks(self, records: Iterable[StockRecord]) -> int:
        """Insert stock levels in bulk; returns how many were written."""
        rows = [(r.sku, r.total_count, r.reserved_count) for r in records]
        if rows:
            self.db.executemany(
                "INSERT INTO stock (sku, total_count, reserved_count) VALUES (?, ?, ?)",
                rows,
            )
        return len(rows)

    def get_by_sku(self, sku: int) -> StockRecord:
        """Return the stock levels of a SKU; raises LookupError if there are none."""
        row = self.db.execute(
            "SELECT sku, total_count, reserved_count FROM stock WHERE sku = ?",
            (sku,),
        ).fetchone()
        if row is None:
            raise LookupError(NO_ROWS_MESSAGE)
        return StockRecord(*row)

    def reserve_items(self, sku: int, reserved_count: int) -> None:
        """Add to the reserved count of a SKU."""
        self.db.execute(
            "UPDATE stock SET reserved_count = reserved_count + ? WHERE sku = ?",
            (reserved_count, sku),
        )

    def cancel_reservation_of_item(self, sku: int, reserved_count: int) -> None:
        """Release reserved items of a SKU."""
        self.db.execute(
            "UPDATE stock SET reserved_count = reserved_count - ? WHERE sku = ?",
            (reserved_count, sku),
        )

    def remove_reservation_of_item(self, sku: int, reserved_count: int) -> None:
        """Write off reserved items of a SKU from both reserved and total counts."""
        self.db.execute(
            "UPDATE stock SET reserved_count = reserved_count - ?, "
            "total_count = total_count - ? WHERE sku = ?",
            (reserved_count, reserved_count, sku),
        )


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class OutboxQueries:
    """Queries on the event outbox table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create_event(self, order_id: int, order_status: int) -> None:
        """Append a new, unsent event for an order's status change."""
        self.db.execute(
            "INSERT INTO outbox (orderID, order_status, event_status) VALUES (?, ?, 'new')",
            (order_id, int(order_status)),
        )

    def get_next_event(self) -> OutboxRecord:
        """Return the oldest unsent event; raises LookupError if there is none."""
        row = self.db.execute(
            "SELECT id, orderID, order_status, event_status, dttm_inserted FROM outbox "
            "WHERE event_status = 'new' ORDER BY dttm_inserted, id LIMIT 1"
        ).fetchone()
        if row is None:
            raise LookupError(NO_ROWS_MESSAGE)
        event_id, order_id, order_status, event_status, inserted = row
        return OutboxRecord(
            id=event_id,
            order_id=order_id,
            order_status=Status(order_status),
            event_status=EventStatus.parse(event_status),
            inserted_at=_parse_timestamp(inserted),
        )

    def mark_event_as_sent(self, event_id: int) -> None:
        """Mark an event as delivered."""
        self.db.execute(
            "UPDATE outbox SET event_status = 'sent' WHERE id = ?", (event_id,)
        )