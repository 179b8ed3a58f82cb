"""Counters and latency records for database requests."""

from __future__ import annotations

import enum
import threading
import time
from collections import defaultdict

REQUESTS_TOTAL_NAME = "db_requests_total"
REQUESTS_TOTAL_HELP = "Tracks the number of requests to db."
REQUEST_DURATION_NAME = "db_request_duration_seconds"
REQUEST_DURATION_HELP = "Tracks the latencies for requests to db."


class RequestType(str, enum.Enum):
    """Kind of database request, used as a metric label."""

    FIND = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


def _error_label(error: BaseException | None) -> str:
    return "" if error is None else str(error)


class DbMetrics:
    """Request counts per type and durations per type and error."""

    def __init__(self) -> None:
        self._totals: dict[str, int] = defaultdict(int)
        self._durations: dict[tuple[str, str], list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def measure(
        self,
        request_type: RequestType,
        start: float,
        error: BaseException | None = None,
    ) -> float:
        """Record a request begun at ``start`` (a ``time.monotonic`` value).

        Returns the observed duration in seconds.
        """
        elapsed = time.monotonic() - start
        label = RequestType(request_type).value
        with self._lock:
            self._durations[(label, _error_label(error))].append(elapsed)
            self._totals[label] += 1
        return elapsed

    def request_total(self, request_type: RequestType) -> int:
        """Number of requests recorded for a type."""
        with self._lock:
            return self._totals.get(RequestType(request_type).value, 0)

    def durations(
        self, request_type: RequestType, error: BaseException | str | None = None
    ) -> list[float]:
        """Durations recorded for a type and error label, oldest first."""
        label = error if isinstance(error, str) else _error_label(error)
        with self._lock:
            return list(self._durations.get((RequestType(request_type).value, label), []))


metric = DbMetrics()


def measure_metrics(
    request_type: RequestType, start: float, error: BaseException | None = None
) -> float:
    """Record a request in the shared metrics."""
    return metric.measure(request_type, start, error)