from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

from .db.invalidation import LiveQuery


@dataclass(frozen=True)
class Person:
    """
    A row of the people table.

    ``id`` is None until storage assigns one on insert.
    """
    id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Person":
        return cls(
            id=row["id"],
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
        )

    def to_row(self, include_id: bool = True) -> dict[str, Any]:
        row: dict[str, Any] = {
            "first_name": self.first_name,
            "last_name": self.last_name,
        }
        if include_id:
            row["id"] = self.id
        return row

    def with_id(self, person_id: int) -> "Person":
        return replace(self, id=person_id)


class OperationKind(str, Enum):
    READ = "read"
    WRITE = "write"
    OBSERVE = "observe"


@dataclass
class DbOperation:
    """
    A single wrapped database operation.
    """
    name: str
    kind: OperationKind
    work: Union[Callable[[], Any], LiveQuery]  # LiveQuery only for OBSERVE
    # payload is only used for log correlation, never by the wrapper itself
    payload: Optional[Any] = None
