"""Round-robin access to a primary database and its replica."""

from __future__ import annotations

import threading
from typing import Generic, Protocol, TypeVar


class _Closable(Protocol):
    def close(self) -> None: ...


C = TypeVar("C", bound=_Closable)


class ConnectionPool(Generic[C]):
    """Holds a master and a replica connection and alternates reads between them."""

    def __init__(self, master: C, replica: C) -> None:
        self._master = master
        self._replica = replica
        self._current = 0
        self._lock = threading.Lock()

    @property
    def master(self) -> C:
        """The connection used for writes."""
        return self._master

    def acquire(self) -> C:
        """Return master or replica in turn, starting with the replica."""
        with self._lock:
            self._current += 1
            use_master = self._current % 2 == 0
        return self._master if use_master else self._replica

    def close(self) -> None:
        """Close both connections."""
        self._master.close()
        self._replica.close()