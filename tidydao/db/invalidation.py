from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

from ..errors import DatabaseClosedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observer:
    """
    One registration with an InvalidationTracker.

    Bound to the event loop it was created on. Wake-ups arriving while the
    observer is not waiting coalesce into a single pending change. Once the
    tracker is closed the observer stays set and ``closed`` is True.
    """

    def __init__(self, tables: frozenset[str], loop: asyncio.AbstractEventLoop) -> None:
        self.tables = tables
        self._loop = loop
        self._changed = asyncio.Event()
        self.closed = False

    def clear(self) -> None:
        if not self.closed:
            self._changed.clear()

    @property
    def pending(self) -> bool:
        return self._changed.is_set()

    async def wait(self) -> None:
        """Return once a watched table changed since the last clear(), or on close."""
        await self._changed.wait()

    def _wake(self) -> bool:
        # may run on any thread
        if self._loop.is_closed():
            return False
        try:
            self._loop.call_soon_threadsafe(self._changed.set)
        except RuntimeError:
            # loop closed between the check and the call
            return False
        return True


class InvalidationTracker:
    """
    Thread-safe registry of table observers.

    Writers call notify() with the tables a committed transaction touched;
    every observer watching one of them is woken on its own event loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observers: dict[str, set[Observer]] = {}
        self._closed = False

    def register(self, tables: Iterable[str]) -> Observer:
        """
        Register an observer for ``tables``.

        Must be called from a coroutine; the observer is woken on the running loop.
        """
        watched = frozenset(t.lower() for t in tables)
        if not watched:
            raise ValueError("an observer must watch at least one table")
        observer = Observer(watched, asyncio.get_running_loop())
        with self._lock:
            if self._closed:
                raise DatabaseClosedError("Change tracker is closed")
            for table in watched:
                self._observers.setdefault(table, set()).add(observer)
        logger.debug("Registered observer on %s", sorted(watched))
        return observer

    def unregister(self, observer: Observer) -> None:
        with self._lock:
            for table in observer.tables:
                bucket = self._observers.get(table)
                if bucket is None:
                    continue
                bucket.discard(observer)
                if not bucket:
                    del self._observers[table]

    def notify(self, tables: Iterable[str]) -> None:
        with self._lock:
            targets: set[Observer] = set()
            for table in tables:
                targets.update(self._observers.get(table.lower(), ()))
        dead = [observer for observer in targets if not observer._wake()]
        for observer in dead:
            logger.warning("Dropping observer on %s: event loop is closed", sorted(observer.tables))
            self.unregister(observer)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """
        Wake every observer for the last time and refuse new registrations.

        Woken observers see ``Observer.closed`` and end their subscription.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            targets: set[Observer] = set()
            for bucket in self._observers.values():
                targets.update(bucket)
            self._observers.clear()
        for observer in targets:
            observer.closed = True
            observer._wake()
        if targets:
            logger.debug("Closed change tracker with %d live observer(s)", len(targets))

    def observer_count(self) -> int:
        with self._lock:
            unique: set[Observer] = set()
            for bucket in self._observers.values():
                unique.update(bucket)
            return len(unique)


@dataclass(frozen=True)
class LiveQuery(Generic[T]):
    """
    A live subscription: the tables to watch and the snapshot query to re-run.
    """
    tracker: InvalidationTracker
    tables: tuple[str, ...]
    fetch: Callable[[], T]
