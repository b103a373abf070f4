from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional

from .db.helpers import validate_identifier
from .db.invalidation import LiveQuery
from .db.session import DbSession
from .models import Person

if TYPE_CHECKING:
    from .database import Database


class PersonDao:
    """
    The operations permitted against the people table.

    Synchronous; every call runs in its own transaction. Callers that must
    not block go through OperationWrapper instead of calling this directly.
    """

    def __init__(self, database: "Database") -> None:
        self._database = database
        self.table = validate_identifier(database.config.table_name, "table")

    def _session(self) -> DbSession:
        return self._database.session()

    def get(self, person_id: int) -> Optional[Person]:
        with self._session() as session:
            row = session.fetch_one(
                f"SELECT id, first_name, last_name FROM {self.table} WHERE id = :id",
                {"id": person_id},
            )
        return Person.from_row(row) if row else None

    def get_all(self) -> list[Person]:
        with self._session() as session:
            rows = session.fetch_all(
                f"SELECT id, first_name, last_name FROM {self.table} ORDER BY id"
            )
        return [Person.from_row(row) for row in rows]

    def _replace(self, session: DbSession, person: Person) -> int:
        include_id = person.id is not None
        row = person.to_row(include_id=include_id)
        cols = list(row.keys())
        col_names = ", ".join(cols)
        placeholders = ", ".join(f":{c}" for c in cols)
        # REPLACE is understood by both sqlite and MySQL
        row_id = session.insert(
            f"REPLACE INTO {self.table} ({col_names}) VALUES ({placeholders})",
            row,
        )
        if include_id:
            return int(person.id)
        if row_id is None:
            raise RuntimeError(f"Storage did not report a generated id for {self.table}")
        return int(row_id)

    def insert_or_replace(self, person: Person) -> int:
        """
        Insert ``person``, replacing any row with the same id.

        Returns the row id, generated by storage when ``person.id`` is None.
        """
        with self._session() as session:
            return self._replace(session, person)

    def insert_or_replace_all(self, people: Iterable[Person]) -> list[int]:
        """Batch variant of insert_or_replace, in a single transaction."""
        with self._session() as session:
            return [self._replace(session, person) for person in people]

    def delete(self, person: Person) -> int:
        """Delete the row with ``person.id``; returns rows removed."""
        if person.id is None:
            return 0
        with self._session() as session:
            return session.execute(
                f"DELETE FROM {self.table} WHERE id = :id",
                {"id": person.id},
            )

    def delete_all(self) -> int:
        with self._session() as session:
            return session.execute(f"DELETE FROM {self.table}")

    def observe_all(self) -> LiveQuery[list[Person]]:
        """The whole table, re-read after every committed change to it."""
        return LiveQuery(
            tracker=self._database.tracker,
            tables=(self.table,),
            fetch=self.get_all,
        )
