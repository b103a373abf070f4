from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

from .db.helpers import validate_identifier

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DbConfig:
    database_name: str = "people.db"
    test_database_name: str = "people_test.db"
    schema_version: int = 1
    table_name: str = "people"
    url: Optional[str] = None
    directory: Optional[str] = None
    max_workers: int = 4
    destructive_migration: bool = False
    log_tag: str = "tidydao.db"

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.schema_version < 1:
            raise ValueError("schema_version must be >= 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if not self.database_name or not self.test_database_name:
            raise ValueError("database_name and test_database_name cannot be empty")
        if self.database_name == self.test_database_name:
            raise ValueError("test_database_name must differ from database_name")
        validate_identifier(self.table_name, "table_name")

    def database_url(self, testing: bool = False) -> str:
        """
        SQLAlchemy URL for the production or the test database.

        An explicit ``url`` wins over the file names.
        """
        if self.url:
            return self.url
        name = self.test_database_name if testing else self.database_name
        path = Path(self.directory) / name if self.directory else Path(name)
        return f"sqlite:///{path}"

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        prefix: str = "TIDYDAO_",
    ) -> "DbConfig":
        """
        Build a config from environment variables.

        Recognised variables (with the default prefix): TIDYDAO_DB_URL,
        TIDYDAO_DB_NAME, TIDYDAO_TEST_DB_NAME, TIDYDAO_SCHEMA_VERSION,
        TIDYDAO_TABLE_NAME, TIDYDAO_DB_DIR, TIDYDAO_MAX_WORKERS,
        TIDYDAO_DESTRUCTIVE_MIGRATION, TIDYDAO_LOG_TAG.
        Unset variables keep the dataclass defaults.
        """
        env = os.environ if environ is None else environ
        mapping = {
            "url": "DB_URL",
            "database_name": "DB_NAME",
            "test_database_name": "TEST_DB_NAME",
            "schema_version": "SCHEMA_VERSION",
            "table_name": "TABLE_NAME",
            "directory": "DB_DIR",
            "max_workers": "MAX_WORKERS",
            "destructive_migration": "DESTRUCTIVE_MIGRATION",
            "log_tag": "LOG_TAG",
        }
        kwargs: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(prefix + mapping[f.name])
            if raw is None or raw == "":
                continue
            if f.name in ("schema_version", "max_workers"):
                try:
                    kwargs[f.name] = int(raw)
                except ValueError as exc:
                    raise ValueError(
                        f"{prefix}{mapping[f.name]} must be an integer, got {raw!r}"
                    ) from exc
            elif f.name == "destructive_migration":
                kwargs[f.name] = raw.strip().lower() in _TRUE_VALUES
            else:
                kwargs[f.name] = raw
        return cls(**kwargs)
