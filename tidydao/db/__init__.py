from .helpers import parse_sql_operation, validate_identifier
from .invalidation import InvalidationTracker, LiveQuery, Observer
from .session import DbSession

__all__ = [
    "DbSession",
    "InvalidationTracker",
    "LiveQuery",
    "Observer",
    "parse_sql_operation",
    "validate_identifier",
]
