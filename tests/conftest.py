from __future__ import annotations

import os
import re
import uuid
from collections.abc import Callable, Iterator

import pytest
from sqlalchemy.engine import Engine

from tidydao.config import DbConfig
from tidydao.dao import PersonDao
from tidydao.database import Database, make_engine
from tidydao.repository import PersonRepository


@pytest.fixture
def db_config(tmp_path) -> DbConfig:
    """
    Per-test configuration pointing the test database at ``tmp_path``.

    Set TIDYDAO_TEST_DB_URL to run against another server instead
    (e.g. mysql+pymysql://...); the table is emptied before each test then.
    """
    return DbConfig(
        directory=str(tmp_path),
        url=os.environ.get("TIDYDAO_TEST_DB_URL") or None,
    )


@pytest.fixture
def engine(db_config: DbConfig) -> Iterator[Engine]:
    """
    SQLAlchemy engine for the test database.

    We fail fast if the database is unreachable, so failures are actionable.
    """
    url = db_config.database_url(testing=True)
    eng = make_engine(url)
    try:
        with eng.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
    except Exception as exc:  # pragma: no cover
        pytest.fail(
            "Test database is not reachable.\n"
            f"- url={url!r}\n"
            f"- Underlying error: {exc}",
            pytrace=False,
        )

    yield eng
    eng.dispose()


def _sanitize_table_name(name: str) -> str:
    name = re.sub(r"[^a-zA-Z0-9_]+", "_", name).strip("_").lower()
    if not name:
        name = "t"
    return name[:48]


@pytest.fixture
def table_factory(engine: Engine, request: pytest.FixtureRequest) -> Iterator[Callable[[str], str]]:
    """
    Factory fixture creating per-test tables.

    Usage:
        table = table_factory("id INTEGER PRIMARY KEY, value INTEGER NOT NULL")
    """
    created: list[str] = []

    def _create(schema_sql: str) -> str:
        base = _sanitize_table_name(f"t_{request.node.name}")
        suffix = uuid.uuid4().hex[:10]
        table = f"{base}_{suffix}"

        with engine.begin() as conn:
            conn.exec_driver_sql(f"DROP TABLE IF EXISTS `{table}`")
            conn.exec_driver_sql(f"CREATE TABLE `{table}` ({schema_sql})")

        created.append(table)
        return table

    yield _create

    with engine.begin() as conn:
        for table in created:
            conn.exec_driver_sql(f"DROP TABLE IF EXISTS `{table}`")


@pytest.fixture
def fresh_table(table_factory: Callable[[str], str]) -> str:
    """
    A default table schema used across session tests.
    """
    schema_sql = """
        id INTEGER NOT NULL,
        value INTEGER NOT NULL DEFAULT 0,
        name VARCHAR(255) NULL,
        PRIMARY KEY (id)
    """
    return table_factory(schema_sql)


@pytest.fixture
def database(db_config: DbConfig) -> Iterator[Database]:
    db = Database.open(db_config, testing=True)
    db.person_dao().delete_all()
    yield db
    db.close()


@pytest.fixture
def dao(database: Database) -> PersonDao:
    return database.person_dao()


@pytest.fixture
def repository(database: Database) -> PersonRepository:
    return PersonRepository.from_database(database)
