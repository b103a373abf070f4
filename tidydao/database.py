from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from .config import DbConfig
from .dao import PersonDao
from .db.invalidation import InvalidationTracker
from .db.session import DbSession
from .errors import DatabaseClosedError, SchemaVersionError
from .wrapper import OperationWrapper

logger = logging.getLogger(__name__)

SCHEMA_TABLE = "tidydao_schema"


def people_table(metadata: MetaData, name: str) -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("first_name", String(255), nullable=True),
        Column("last_name", String(255), nullable=True),
        sqlite_autoincrement=True,
    )


def schema_table(metadata: MetaData) -> Table:
    return Table(
        SCHEMA_TABLE,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("version", Integer, nullable=False),
    )


def make_engine(url: str) -> Engine:
    """
    Create an Engine suitable for use from the worker threads.

    In-memory sqlite lives in a single connection, so it gets a StaticPool.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if parsed.database in (None, "", ":memory:"):
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, connect_args=connect_args)


class Database:
    """
    Owned handle to one database: engine, schema, change tracker and the
    background work queue every wrapped operation runs on.

    Create one per process (or per test) and pass it to whoever needs it:

        with Database.open(DbConfig()) as db:
            repo = PersonRepository.from_database(db)
    """

    def __init__(
        self,
        engine: Engine,
        config: DbConfig,
        executor: Optional[ThreadPoolExecutor] = None,
        owns_engine: bool = True,
    ) -> None:
        self.engine = engine
        self.config = config
        self.tracker = InvalidationTracker()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.max_workers,
            thread_name_prefix="tidydao-db",
        )
        self._owns_engine = owns_engine
        self._closed = False
        self._close_lock = threading.Lock()

    @classmethod
    def open(
        cls,
        config: Optional[DbConfig] = None,
        testing: bool = False,
        engine: Optional[Engine] = None,
    ) -> "Database":
        """
        Open the production (or test) database and bring its schema up to date.

        Raises:
            SchemaVersionError: stored version differs and destructive
                migration is disabled
        """
        config = config or DbConfig()
        owns_engine = engine is None
        if engine is None:
            engine = make_engine(config.database_url(testing))

        db = cls(engine, config, owns_engine=owns_engine)
        try:
            db._ensure_schema()
        except Exception:
            db.close()
            raise
        return db

    def _ensure_schema(self) -> None:
        metadata = MetaData()
        meta = schema_table(metadata)
        people = people_table(metadata, self.config.table_name)
        wanted = self.config.schema_version

        with self.engine.begin() as conn:
            meta.create(conn, checkfirst=True)
            stored = conn.execute(
                text(f"SELECT version FROM {SCHEMA_TABLE} WHERE id = 1")
            ).scalar_one_or_none()

            if stored is None:
                people.create(conn, checkfirst=True)
                conn.execute(
                    text(f"INSERT INTO {SCHEMA_TABLE} (id, version) VALUES (1, :version)"),
                    {"version": wanted},
                )
                logger.info("Created schema version %d for table %s", wanted, people.name)
                return

            if stored == wanted:
                people.create(conn, checkfirst=True)
                return

            if not self.config.destructive_migration:
                raise SchemaVersionError(
                    f"Database schema version {stored} does not match configured version {wanted}; "
                    "enable destructive_migration to recreate the tables"
                )

            logger.warning(
                "Destructive migration of table %s from version %d to %d",
                people.name,
                stored,
                wanted,
            )
            people.drop(conn, checkfirst=True)
            people.create(conn)
            conn.execute(
                text(f"UPDATE {SCHEMA_TABLE} SET version = :version WHERE id = 1"),
                {"version": wanted},
            )

    def schema_version(self) -> int:
        with self.session() as session:
            return int(session.execute_scalar(f"SELECT version FROM {SCHEMA_TABLE} WHERE id = 1"))

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise DatabaseClosedError("Database is closed")

    def session(self) -> DbSession:
        """A new DbSession whose commits notify the change tracker."""
        self._check_open()
        return DbSession(self.engine, on_commit=self.tracker.notify)

    def person_dao(self) -> PersonDao:
        self._check_open()
        return PersonDao(self)

    def wrapper(self) -> OperationWrapper:
        self._check_open()
        return OperationWrapper(self.executor, tag=self.config.log_tag, check_open=self._check_open)

    def close(self) -> None:
        """
        Close the handle; idempotent.

        Live observe streams are woken and end. Blocks until operations
        already running on the executor finish, so coroutines should prefer
        aclose().
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self.tracker.close()
        self.executor.shutdown(wait=True)
        if self._owns_engine:
            self.engine.dispose()
        logger.debug("Closed database %s", self.engine.url)

    async def aclose(self) -> None:
        """close() on the loop's default executor, keeping the event loop free."""
        await asyncio.get_running_loop().run_in_executor(None, self.close)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
        return False
