from .registry import (
    DB_ACTIVE_OBSERVERS,
    DB_OPERATION_LATENCY_SECONDS,
    DB_OPERATION_TOTAL,
    DB_WRITE_LATENCY_SECONDS,
    DB_WRITE_TOTAL,
)

__all__ = [
    "DB_ACTIVE_OBSERVERS",
    "DB_OPERATION_LATENCY_SECONDS",
    "DB_OPERATION_TOTAL",
    "DB_WRITE_LATENCY_SECONDS",
    "DB_WRITE_TOTAL",
]
