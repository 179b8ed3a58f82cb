"""In-memory stock repository."""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from lomsvc.models import Item

logger = logging.getLogger(__name__)

STOCK_DATA_FILE = "stock-data.json"


class ReserveNotFoundError(LookupError):
    """No stock is kept for the requested SKU."""

    def __init__(self, message: str = "couldn't find reservation with specified sku"):
        super().__init__(message)


class ReserveTooLargeError(ValueError):
    """More items requested than are available."""

    def __init__(
        self, message: str = "reservation amount is larger thant total amount"
    ):
        super().__init__(message)


class CancelOrPayNumTooLargeError(ValueError):
    """More items to pay or cancel than are reserved or in stock."""

    def __init__(
        self,
        message: str = "number of items to pay/cancel is larger than available in stock",
    ):
        super().__init__(message)


@dataclass
class _Reservation:
    total_count: int
    reserved_count: int


class MemoryStocksRepository:
    """Keeps stock levels per SKU in a dictionary."""

    def __init__(self) -> None:
        self._storage: dict[int, _Reservation] = {}
        self._lock = threading.RLock()

    def add(self, sku: int, total_count: int, reserved_count: int = 0) -> None:
        """Set the stock levels of a SKU."""
        with self._lock:
            self._storage[sku] = _Reservation(total_count, reserved_count)

    def _find(self, sku: int) -> _Reservation:
        try:
            return self._storage[sku]
        except KeyError:
            raise ReserveNotFoundError() from None

    def reserve(self, items: Iterable[Item]) -> None:
        """Reserve each item in turn; stops at the first that cannot be reserved."""
        with self._lock:
            for item in items:
                stock = self._find(item.sku)
                if item.count > stock.total_count - stock.reserved_count:
                    raise ReserveTooLargeError()
                stock.reserved_count += item.count

    def remove_reservation(self, items: Iterable[Item]) -> None:
        """Write off reserved items as sold."""
        with self._lock:
            for item in items:
                stock = self._find(item.sku)
                if item.count > stock.reserved_count or item.count > stock.total_count:
                    raise CancelOrPayNumTooLargeError()
                stock.reserved_count -= item.count
                stock.total_count -= item.count

    def cancel_reservation(self, items: Iterable[Item]) -> None:
        """Release reserved items back into available stock."""
        with self._lock:
            for item in items:
                stock = self._find(item.sku)
                if item.count > stock.reserved_count or item.count > stock.total_count:
                    raise CancelOrPayNumTooLargeError()
                stock.reserved_count -= item.count

    def get_by_sku(self, sku: int) -> int:
        """Return how many items of a SKU are available to reserve."""
        with self._lock:
            stock = self._find(sku)
            return stock.total_count - stock.reserved_count


def stocks_repository_from_json(
    resources_path: str | os.PathLike[str] | None = None,
) -> MemoryStocksRepository:
    """Build a repository from ``stock-data.json`` in the resources directory.

    Without a path, ``RESOURCES_PATH`` from the environment is used. A missing
    or unreadable file is logged and yields an empty repository.
    """
    if resources_path is None:
        resources_path = os.environ.get("RESOURCES_PATH", "")
    repo = MemoryStocksRepository()
    path = Path(resources_path) / STOCK_DATA_FILE
    try:
        with path.open(encoding="utf-8") as fh:
            records = json.load(fh)
    except (OSError, json.JSONDecodeError) as err:
        logger.warning("cannot load stock data from %s: %s", path, err)
        return repo
    for record in records or []:
        repo.add(
            int(record.get("sku", 0)),
            int(record.get("total_count", 0)),
            int(record.get("reserved", 0)),
        )
    return repo