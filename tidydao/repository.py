from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, AsyncIterator, Iterable, Optional

from .dao import PersonDao
from .models import Person
from .wrapper import OperationWrapper

if TYPE_CHECKING:
    from .database import Database


class PersonRepository:
    """
    Public API for people. Everything goes through the operation wrapper,
    nothing outside this class touches the DAO.
    """

    def __init__(self, dao: PersonDao, wrapper: OperationWrapper) -> None:
        self._dao = dao
        self._wrapper = wrapper

    @classmethod
    def from_database(cls, database: "Database") -> "PersonRepository":
        return cls(database.person_dao(), database.wrapper())

    async def get(self, person_id: int) -> Optional[Person]:
        return await self._wrapper.execute_read("get", partial(self._dao.get, person_id))

    async def get_all(self) -> list[Person]:
        return await self._wrapper.execute_read("get_all", self._dao.get_all)

    async def insert_or_update(self, person: Person) -> int:
        return await self._wrapper.execute_write(
            "insert_or_update",
            partial(self._dao.insert_or_replace, person),
            payload=person,
        )

    async def insert_or_update_all(self, people: Iterable[Person]) -> list[int]:
        batch = list(people)
        return await self._wrapper.execute_write(
            "insert_or_update_all",
            partial(self._dao.insert_or_replace_all, batch),
            payload=batch,
        )

    async def delete(self, person: Person) -> int:
        return await self._wrapper.execute_write(
            "delete",
            partial(self._dao.delete, person),
            payload=person,
        )

    async def delete_all(self) -> int:
        return await self._wrapper.execute_write("delete_all", self._dao.delete_all)

    def observe(self) -> AsyncIterator[list[Person]]:
        return self._wrapper.execute_observe("observe", self._dao.observe_all())
