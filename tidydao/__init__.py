from .config import DbConfig
from .database import Database
from .dao import PersonDao
from .errors import DatabaseClosedError, SchemaVersionError, TidyDaoError
from .models import DbOperation, OperationKind, Person
from .repository import PersonRepository
from .wrapper import OperationWrapper

__all__ = [
    "Database",
    "DatabaseClosedError",
    "DbConfig",
    "DbOperation",
    "OperationKind",
    "OperationWrapper",
    "Person",
    "PersonDao",
    "PersonRepository",
    "SchemaVersionError",
    "TidyDaoError",
]
