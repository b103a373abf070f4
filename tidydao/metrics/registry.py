from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Statement-level writes, emitted by DbSession at commit/rollback time.
DB_WRITE_TOTAL = Counter(
    "tidydao_db_write_total",
    "Write statements executed, by table, statement type and outcome",
    ["table", "op_type", "status"],
)

DB_WRITE_LATENCY_SECONDS = Histogram(
    "tidydao_db_write_latency_seconds",
    "Time from statement execution to transaction end",
    ["table", "op_type"],
)

# Wrapped operations, emitted by OperationWrapper.
DB_OPERATION_TOTAL = Counter(
    "tidydao_db_operation_total",
    "Wrapped database operations, by name, kind and outcome",
    ["operation", "kind", "status"],
)

DB_OPERATION_LATENCY_SECONDS = Histogram(
    "tidydao_db_operation_latency_seconds",
    "Wall time of wrapped database operations",
    ["operation", "kind"],
)

DB_ACTIVE_OBSERVERS = Gauge(
    "tidydao_db_active_observers",
    "Live subscriptions currently registered",
    ["operation"],
)
