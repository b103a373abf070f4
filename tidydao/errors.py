class TidyDaoError(Exception):
    """Base exception for tidydao errors."""


class SchemaVersionError(TidyDaoError):
    """Stored schema version does not match the configured one."""


class DatabaseClosedError(TidyDaoError):
    """The database handle was used after close()."""
