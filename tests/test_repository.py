from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from tidydao.database import Database
from tidydao.errors import DatabaseClosedError
from tidydao.models import Person
from tidydao.repository import PersonRepository


async def _next(stream, timeout: float = 5):
    return await asyncio.wait_for(stream.__anext__(), timeout=timeout)


@pytest.mark.asyncio
async def test_insert_then_delete_round_trip(repository: PersonRepository) -> None:
    person_id = await repository.insert_or_update(Person(first_name="Ada", last_name="Lovelace"))

    people = await repository.get_all()
    assert len(people) == 1
    assert people[0].id is not None
    assert people[0].id == person_id
    assert (people[0].first_name, people[0].last_name) == ("Ada", "Lovelace")

    assert await repository.delete(people[0]) == 1
    assert await repository.get_all() == []


@pytest.mark.asyncio
async def test_get_by_id(repository: PersonRepository) -> None:
    person_id = await repository.insert_or_update(Person(first_name="Alan", last_name="Turing"))

    assert await repository.get(person_id) == Person(id=person_id, first_name="Alan", last_name="Turing")
    assert await repository.get(person_id + 1000) is None


@pytest.mark.asyncio
async def test_insert_or_update_existing_id_does_not_duplicate(repository: PersonRepository) -> None:
    person_id = await repository.insert_or_update(Person(first_name="Grace", last_name="Murray"))

    await repository.insert_or_update(Person(id=person_id, first_name="Grace", last_name="Hopper"))

    assert await repository.get_all() == [Person(id=person_id, first_name="Grace", last_name="Hopper")]


@pytest.mark.asyncio
async def test_delete_all_then_get_all_is_empty(repository: PersonRepository) -> None:
    ids = await repository.insert_or_update_all(
        [Person(first_name="Ada"), Person(first_name="Alan"), Person(first_name="Grace")]
    )
    assert len(ids) == 3

    assert await repository.delete_all() == 3
    assert await repository.get_all() == []


@pytest.mark.asyncio
async def test_operations_are_logged_by_method_name(
    repository: PersonRepository, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.DEBUG, logger="tidydao.db")

    await repository.insert_or_update(Person(first_name="Ada"))
    await repository.get_all()

    events = [(r.db_event, r.db_operation) for r in caplog.records if hasattr(r, "db_event")]
    assert events == [
        ("call", "insert_or_update"),
        ("success", "insert_or_update"),
        ("call", "get_all"),
        ("success", "get_all"),
    ]


@pytest.mark.asyncio
async def test_closed_database_raises_database_closed_error(
    database: Database, repository: PersonRepository, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.DEBUG, logger="tidydao.db")
    database.close()

    with pytest.raises(DatabaseClosedError):
        await repository.get_all()
    with pytest.raises(DatabaseClosedError):
        await repository.insert_or_update(Person(first_name="Ada"))
    with pytest.raises(DatabaseClosedError):
        await repository.observe().__anext__()

    failures = [r.db_operation for r in caplog.records if getattr(r, "db_event", None) == "failure"]
    assert failures == ["get_all", "insert_or_update", "observe"]


@pytest.mark.asyncio
async def test_aclose_waits_for_running_work_without_blocking_the_loop(database: Database) -> None:
    release = threading.Event()
    wrapper = database.wrapper()
    busy = asyncio.create_task(wrapper.execute_read("slow", lambda: release.wait(5)))
    await asyncio.sleep(0.05)

    closing = asyncio.create_task(database.aclose())
    await asyncio.sleep(0.05)
    # the loop still runs while close() waits for the worker
    assert not closing.done()

    release.set()
    await asyncio.wait_for(closing, timeout=5)
    assert database.closed is True
    assert await busy is True


class TestObserve:
    @pytest.mark.asyncio
    async def test_emits_after_insert_update_and_delete(self, repository: PersonRepository) -> None:
        stream = repository.observe()
        try:
            assert await _next(stream) == []

            person_id = await repository.insert_or_update(Person(first_name="Ada", last_name="Byron"))
            assert await _next(stream) == [Person(id=person_id, first_name="Ada", last_name="Byron")]

            await repository.insert_or_update(Person(id=person_id, first_name="Ada", last_name="Lovelace"))
            assert await _next(stream) == [Person(id=person_id, first_name="Ada", last_name="Lovelace")]

            await repository.delete(Person(id=person_id))
            assert await _next(stream) == []
        finally:
            await stream.aclose()

    @pytest.mark.asyncio
    async def test_unrelated_table_changes_do_not_emit(self, database: Database, repository: PersonRepository) -> None:
        with database.engine.begin() as conn:
            conn.exec_driver_sql("CREATE TABLE IF NOT EXISTS pets (id INTEGER PRIMARY KEY, name VARCHAR(64))")

        stream = repository.observe()
        try:
            assert await _next(stream) == []

            with database.session() as session:
                session.execute("INSERT INTO pets (name) VALUES (:name)", {"name": "Rex"})

            with pytest.raises(asyncio.TimeoutError):
                await _next(stream, timeout=0.3)
        finally:
            await stream.aclose()
            with database.engine.begin() as conn:
                conn.exec_driver_sql("DROP TABLE IF EXISTS pets")

    @pytest.mark.asyncio
    async def test_closing_the_stream_unregisters_the_observer(
        self, database: Database, repository: PersonRepository
    ) -> None:
        stream = repository.observe()
        await _next(stream)
        assert database.tracker.observer_count() == 1

        await stream.aclose()

        assert database.tracker.observer_count() == 0

    @pytest.mark.asyncio
    async def test_each_subscriber_gets_its_own_stream(self, repository: PersonRepository) -> None:
        first = repository.observe()
        second = repository.observe()
        try:
            assert await _next(first) == []
            assert await _next(second) == []

            person_id = await repository.insert_or_update(Person(first_name="Ada"))

            expected = [Person(id=person_id, first_name="Ada")]
            assert await _next(first) == expected
            assert await _next(second) == expected
        finally:
            await first.aclose()
            await second.aclose()

    @pytest.mark.asyncio
    async def test_closing_the_database_ends_the_stream(
        self, database: Database, repository: PersonRepository
    ) -> None:
        stream = repository.observe()
        assert await _next(stream) == []

        await database.aclose()

        with pytest.raises(StopAsyncIteration):
            await _next(stream, timeout=1)
        assert database.tracker.observer_count() == 0
