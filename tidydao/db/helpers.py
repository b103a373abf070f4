from __future__ import annotations

import re

from sqlalchemy.sql.elements import TextClause

_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# Leading keyword(s) of a write statement followed by the (optionally quoted) table name.
_WRITE_RE = re.compile(
    r"""^\s*
    (?:
        (?P<insert>INSERT(?:\s+OR\s+(?P<conflict>REPLACE|IGNORE|ABORT|FAIL|ROLLBACK))?\s+INTO)
      | (?P<replace>REPLACE\s+INTO)
      | (?P<update>UPDATE(?:\s+OR\s+\w+)?)
      | (?P<delete>DELETE\s+FROM)
    )
    \s+[`"\[]?(?P<table>[A-Za-z_][A-Za-z0-9_]*)[`"\]]?
    """,
    re.IGNORECASE | re.VERBOSE,
)


def validate_identifier(name: str, identifier_type: str = "identifier") -> str:
    """
    Validate that an identifier (table/column name) is safe for SQL interpolation.

    Identifiers are interpolated into SQL strings, so they MUST be trusted
    (hardcoded or validated at application boundaries, not user input).
    We restrict to alphanumeric + underscore for security and portability.

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        TypeError: If identifier is not a string
        ValueError: If identifier contains unsafe characters or is invalid

    Example:
        >>> validate_identifier("people", "table")
        'people'
        >>> validate_identifier("'; DROP TABLE--", "table")
        ValueError: Invalid table "'; DROP TABLE--": ...
    """
    if not isinstance(name, str):
        raise TypeError(f"{identifier_type} must be a string, got {type(name).__name__}")

    if not name:
        raise ValueError(f"{identifier_type} cannot be empty")

    if not _IDENTIFIER_RE.match(name):
        raise ValueError(
            f"Invalid {identifier_type} {name!r}: "
            "must start with letter/underscore and contain only alphanumeric characters and underscores"
        )

    # MySQL limit; sqlite has none but we keep the stricter one
    if len(name) > 64:
        raise ValueError(f"{identifier_type} {name!r} exceeds the 64-character limit")

    return name


def parse_sql_operation(sql: str | TextClause) -> tuple[str, str]:
    """
    Extract (table, op_type) from a write statement.

    op_type is one of "insert", "replace", "update", "delete". Anything else
    (SELECT, DDL, control statements) yields ("unknown", "unknown").
    """
    raw = sql.text if isinstance(sql, TextClause) else str(sql)
    match = _WRITE_RE.match(raw)
    if match is None:
        return "unknown", "unknown"

    table = match.group("table").lower()
    if match.group("insert"):
        conflict = (match.group("conflict") or "").upper()
        return table, "replace" if conflict == "REPLACE" else "insert"
    if match.group("replace"):
        return table, "replace"
    if match.group("update"):
        return table, "update"
    return table, "delete"
