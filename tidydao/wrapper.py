from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import Executor
from typing import Any, AsyncIterator, Callable, Optional, TypeVar

from .db.invalidation import LiveQuery
from .db.metrics import observe_operation, observer_started, observer_stopped
from .models import DbOperation, OperationKind

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_TAG = "tidydao.db"


class OperationWrapper:
    """
    Runs persistence calls on a background executor with uniform logging.

    Every operation produces a ``call`` record before it starts and either a
    ``success`` or a ``failure`` record afterwards. Failures are re-raised
    unchanged; the wrapper never retries and never translates errors.

    Records carry ``db_event``, ``db_operation`` and ``db_kind`` in ``extra``
    so handlers can filter on them.

    Usage:
        wrapper = OperationWrapper(executor)
        people = await wrapper.execute_read("get_all", dao.get_all)
        async for snapshot in wrapper.execute_observe("observe", dao.observe_all()):
            ...
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        tag: str = DEFAULT_TAG,
        check_open: Optional[Callable[[], None]] = None,
    ) -> None:
        # None means the event loop's default executor
        self.executor = executor
        self.tag = tag
        self.logger = logging.getLogger(tag)
        # raises DatabaseClosedError once the owning Database is closed
        self.check_open = check_open

    def _log(self, level: int, event: str, name: str, kind: OperationKind, msg: str, *args: Any) -> None:
        self.logger.log(
            level,
            msg,
            *args,
            extra={"db_event": event, "db_operation": name, "db_kind": kind.value},
        )

    def _log_call(self, name: str, kind: OperationKind, payload: Any = None) -> None:
        if payload is None:
            self._log(logging.DEBUG, "call", name, kind, "call %s", name)
        else:
            self._log(logging.DEBUG, "call", name, kind, "call %s with %r", name, payload)

    def _log_success(self, name: str, kind: OperationKind) -> None:
        self._log(logging.DEBUG, "success", name, kind, "success %s", name)

    def _log_failure(self, name: str, kind: OperationKind, exc: BaseException) -> None:
        self._log(logging.ERROR, "failure", name, kind, "failure %s: %r", name, exc)

    @staticmethod
    def _emit(metric: Callable[..., None], *args: Any) -> None:
        try:
            metric(*args)
        except Exception:
            # metrics must never mask the real outcome
            logger.debug("Failed to emit %s metrics", args[0], exc_info=True)

    def _ensure_open(self) -> None:
        if self.check_open is not None:
            self.check_open()

    def _submit(self, loop: asyncio.AbstractEventLoop, operation: Callable[[], T]) -> "asyncio.Future[T]":
        self._ensure_open()
        try:
            return loop.run_in_executor(self.executor, operation)
        except RuntimeError:
            # executor shut down by a close() racing the check above
            self._ensure_open()
            raise

    async def _run(self, name: str, kind: OperationKind, operation: Callable[[], T], payload: Any = None) -> T:
        loop = asyncio.get_running_loop()
        self._log_call(name, kind, payload)
        start_time = time.monotonic()
        try:
            result = await self._submit(loop, operation)
        except Exception as exc:
            self._emit(observe_operation, name, kind.value, "error", time.monotonic() - start_time)
            self._log_failure(name, kind, exc)
            raise
        self._emit(observe_operation, name, kind.value, "success", time.monotonic() - start_time)
        self._log_success(name, kind)
        return result

    async def execute_write(self, name: str, operation: Callable[[], T], payload: Any = None) -> T:
        """
        Run a write on the executor. ``payload`` is only logged.

        Returns whatever the operation returns (row ids, affected counts).
        """
        return await self._run(name, OperationKind.WRITE, operation, payload)

    async def execute_read(self, name: str, operation: Callable[[], T]) -> T:
        """
        Run a read on the executor and return its result unchanged.
        """
        return await self._run(name, OperationKind.READ, operation)

    async def execute_observe(self, name: str, query: LiveQuery[T]) -> AsyncIterator[T]:
        """
        Yield a snapshot now and again after every committed change to the
        watched tables.

        Each snapshot is logged as a success; a failing snapshot query is
        logged as a failure and re-raised, which ends the subscription.
        Closing the iterator (or cancelling its consumer) unregisters it.
        Closing the database ends the iteration normally.
        """
        kind = OperationKind.OBSERVE
        loop = asyncio.get_running_loop()
        self._log_call(name, kind)
        try:
            self._ensure_open()
            observer = query.tracker.register(query.tables)
        except Exception as exc:
            self._emit(observe_operation, name, kind.value, "error")
            self._log_failure(name, kind, exc)
            raise
        self._emit(observer_started, name)
        try:
            while not observer.closed:
                # clear before reading so a change during the query triggers a re-read
                observer.clear()
                try:
                    snapshot = await self._submit(loop, query.fetch)
                except Exception as exc:
                    self._emit(observe_operation, name, kind.value, "error")
                    self._log_failure(name, kind, exc)
                    raise
                self._emit(observe_operation, name, kind.value, "success")
                self._log_success(name, kind)
                yield snapshot
                await observer.wait()
            logger.debug("observe %s ended: database closed", name)
        finally:
            query.tracker.unregister(observer)
            self._emit(observer_stopped, name)

    def execute(self, op: DbOperation) -> Any:
        """
        Dispatch a DbOperation by kind.

        Returns a coroutine for READ/WRITE and an async iterator for OBSERVE.
        """
        if op.kind == OperationKind.READ:
            return self.execute_read(op.name, op.work)
        if op.kind == OperationKind.WRITE:
            return self.execute_write(op.name, op.work, op.payload)
        if op.kind == OperationKind.OBSERVE:
            if not isinstance(op.work, LiveQuery):
                raise TypeError(f"OBSERVE operation {op.name!r} needs a LiveQuery, got {type(op.work).__name__}")
            return self.execute_observe(op.name, op.work)
        raise ValueError(f"Unsupported operation kind: {op.kind}")
