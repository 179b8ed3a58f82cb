# lomsvc

Order and stock management for a shop back end. It keeps orders and stock
reservations, moves each order through its statuses, and records an outbox
of order events that can be handed on to a message producer.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Parts

- `lomsvc.models`: the shared data types `Status`, `EventStatus` (with
  `EventStatus.parse`), `Item`, `OrderInfo`, `Event`, `StockRecord` and
  `OutboxRecord`.
- `lomsvc.memory_order`: `MemoryOrderRepository`, which keeps orders in
  memory, and `OrderNotFoundError`.
- `lomsvc.memory_stock`: `MemoryStocksRepository`, which keeps stock levels
  per SKU in memory, its errors `ReserveNotFoundError`,
  `ReserveTooLargeError` and `CancelOrPayNumTooLargeError`, and
  `stocks_repository_from_json`, which loads a `stock-data.json` file from a
  directory (by default the one named by `RESOURCES_PATH`). A missing or
  unreadable file is logged and gives an empty repository.
- `lomsvc.legacy_service`: `LegacyLOMSService`, which works on an order
  repository and a stock repository such as the in-memory ones, and
  `ReservationError`.
- `lomsvc.queries`: SQL over the `order`, `order_stock`, `stock` and
  `outbox` tables (`OrderQueries`, `StockQueries`, `OutboxQueries`), the row
  types `OrderLine` and `OrderRow`, and `create_schema`, which creates the
  tables. The queries use `?` placeholders and expect a DB-API connection
  whose `execute` returns a cursor, such as `sqlite3.Connection`.
- `lomsvc.connection_pool`: `ConnectionPool`, which holds a master and a
  replica connection; `acquire` alternates between them, starting with the
  replica, and `master` is used for writes.
- `lomsvc.metrics`: `DbMetrics` and the shared `measure_metrics`, which
  count requests per `RequestType` and keep their durations per type and
  error message.
- `lomsvc.storage`: `LomsStorage`, which creates, pays and cancels orders in
  savepoints on the master connection and records an outbox event for every
  status change; `fetch_and_mark` sends the oldest unsent event through a
  sender and marks it sent. Also `load_stocks`, which inserts the records of
  `stock-data.json` into the master database, and the errors
  `StorageReservationError`, `StorageOrderNotFoundError` and
  `StockNotFoundError`.
- `lomsvc.service`: `LOMSService`, which wraps a storage and turns its
  failures into `ServiceError`, and `OutboxService`, whose `dispatch` sends
  the next pending event.
- `lomsvc.producer`: `EventHandler`, which encodes events as compact JSON
  with `encode_event` and hands them as `ProducerMessage`s to a producer;
  `ProducerConfig` names the topic.

## Order life cycle

An order starts as `NEW`. If its items can be reserved it becomes
`AWAITING_PAYMENT`. If they cannot, a reservation error is raised:
`LomsStorage` then keeps the order as `FAILED`, while `LegacyLOMSService`
marks it `FAILED` only when the stock was too small (`ReserveTooLargeError`).
Paying an order takes the reserved items out of stock and sets it to
`PAYED`. Cancelling releases the reservation and sets it to `CANCELLED`.

## Example

```python
from lomsvc.legacy_service import LegacyLOMSService
from lomsvc.memory_order import MemoryOrderRepository
from lomsvc.memory_stock import MemoryStocksRepository
from lomsvc.models import Item

stocks = MemoryStocksRepository()
stocks.add(sku=1, total_count=100, reserved_count=0)

service = LegacyLOMSService(MemoryOrderRepository(), stocks)
order_id = service.order_create(user_id=1, items=[Item(sku=1, count=10)])
print(service.stocks_info(1))      # 90
service.order_pay(order_id)
print(service.order_info(order_id).status)   # Status.PAYED
```

Errors come back as exceptions, for example `OrderNotFoundError`,
`ReserveTooLargeError` and `ReservationError`.

## What it does not do

- It has no command line and no network server; it is a library to be
  called from an application.
- It has no message broker client. `EventHandler` needs a producer object
  with `send_message(message)`, returning a `(partition, offset)` pair, and
  `close()`.
- Metrics are kept in memory in `DbMetrics`; nothing exports them.