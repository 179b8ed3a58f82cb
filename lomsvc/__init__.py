"""Order and stock management with stock reservations and an outbox of order events."""

__version__ = "0.1.0"

__all__ = [
    "connection_pool",
    "legacy_service",
    "memory_order",
    "memory_stock",
    "metrics",
    "models",
    "producer",
    "queries",
    "service",
    "storage",
]