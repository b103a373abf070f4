from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.sql import TextClause

from .helpers import parse_sql_operation
from .metrics import observe_db_write

logger = logging.getLogger(__name__)

CommitCallback = Callable[[frozenset[str]], None]


class DbSession:
    """
    Transactional wrapper around a SQLAlchemy Engine connection.

    Use as:
        with DbSession(engine) as session:
            session.execute(...)
            row = session.fetch_one(...)

    Write statements (INSERT/REPLACE/UPDATE/DELETE) are tracked per table.
    After a successful commit ``on_commit`` receives the set of written
    tables; nothing is reported when the transaction rolls back.
    """

    def __init__(self, engine: Engine, on_commit: Optional[CommitCallback] = None) -> None:
        self.engine = engine
        self.on_commit = on_commit
        self._conn: Connection | None = None
        self._tx = None
        self._writes: list[tuple[str, str, float]] = []

    def __enter__(self) -> "DbSession":
        if self._conn is not None:
            raise RuntimeError("DbSession is already active; nested sessions are not allowed")
        self._conn = self.engine.connect()
        self._tx = self._conn.begin()
        self._writes = []
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        committed = False
        try:
            if self._tx is not None:
                if exc_type:
                    self._tx.rollback()
                else:
                    self._tx.commit()
                    committed = True
        finally:
            if self._conn is not None:
                self._conn.close()

            self._conn = None
            self._tx = None
            writes, self._writes = self._writes, []
            self._emit_metrics(writes, "success" if committed else "error")

        if committed and writes and self.on_commit is not None:
            self.on_commit(frozenset(table for table, _, _ in writes))

        # propagate exceptions (if any)
        return False

    @staticmethod
    def _emit_metrics(writes: list[tuple[str, str, float]], status: str) -> None:
        end_time = time.monotonic()
        try:
            for table, op_type, start_time in writes:
                observe_db_write(table, op_type, status, end_time - start_time)
        except Exception:  # pragma: no cover
            # metrics must never mask the real outcome
            logger.debug("Failed to emit write metrics", exc_info=True)

    def _connection(self) -> Connection:
        if self._conn is None:
            raise RuntimeError("DbSession is not active; use within a context manager")
        return self._conn

    def _run(self, sql: str | TextClause, params: Mapping[str, Any] | None) -> CursorResult:
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        start_time = time.monotonic()
        result = conn.execute(stmt, dict(params or {}))
        table, op_type = parse_sql_operation(stmt)
        if op_type != "unknown":
            self._writes.append((table, op_type, start_time))
        return result

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """
        Execute a non-SELECT statement and return affected row count.
        """
        result = self._run(sql, params)
        try:
            if result.rowcount is None:
                raise RuntimeError(
                    "execute() received None rowcount for statement. "
                    "This may indicate a DDL statement or unsupported operation type."
                )
            return int(result.rowcount)
        finally:
            result.close()

    def insert(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int | None:
        """
        Execute an INSERT/REPLACE and return the id of the written row.
        """
        result = self._run(sql, params)
        try:
            return result.lastrowid
        finally:
            result.close()

    def execute_scalar(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Execute a statement expected to return a single scalar value.
        """
        result = self._run(sql, params)
        try:
            return result.scalar_one_or_none()
        finally:
            result.close()

    def fetch_one(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Execute a SELECT expected to return 0 or 1 row. Raises if more than one row.
        """
        result = self._run(sql, params)
        try:
            row = result.mappings().one_or_none()
            if row is None:
                return None
            return dict(row)
        finally:
            result.close()

    def fetch_all(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a SELECT expected to return multiple rows.
        """
        result = self._run(sql, params)
        try:
            return [dict(row) for row in result.mappings()]
        finally:
            result.close()
