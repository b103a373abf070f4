from __future__ import annotations

from ..metrics.registry import (
    DB_ACTIVE_OBSERVERS,
    DB_OPERATION_LATENCY_SECONDS,
    DB_OPERATION_TOTAL,
    DB_WRITE_LATENCY_SECONDS,
    DB_WRITE_TOTAL,
)


def observe_db_write(table: str, op_type: str, status: str, latency_s: float) -> None:
    DB_WRITE_TOTAL.labels(table=table, op_type=op_type, status=status).inc()
    DB_WRITE_LATENCY_SECONDS.labels(table=table, op_type=op_type).observe(latency_s)


def observe_operation(operation: str, kind: str, status: str, latency_s: float | None = None) -> None:
    """
    Count one wrapped operation outcome.

    Observe emissions have no meaningful latency, pass None to skip the histogram.
    """
    DB_OPERATION_TOTAL.labels(operation=operation, kind=kind, status=status).inc()
    if latency_s is not None:
        DB_OPERATION_LATENCY_SECONDS.labels(operation=operation, kind=kind).observe(latency_s)


def observer_started(operation: str) -> None:
    DB_ACTIVE_OBSERVERS.labels(operation=operation).inc()


def observer_stopped(operation: str) -> None:
    DB_ACTIVE_OBSERVERS.labels(operation=operation).dec()
