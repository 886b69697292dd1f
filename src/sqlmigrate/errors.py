"""Exception types raised by sqlmigrate.

Every failure of a migration run surfaces as a subclass of `MigrationError`.
Nothing is retried; the caller decides what to do next.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Direction, Migration


class MigrationError(Exception):
    """Base class for all migration failures."""

    pass


class ConnectivityError(MigrationError):
    """Raised when the target database cannot be opened."""

    pass


class LockError(MigrationError):
    """Raised when the database lock cannot be acquired."""

    pass


class BookkeepingTableError(MigrationError):
    """Raised when schema_migrations cannot be checked, created or read."""

    pass


class ReconciliationError(MigrationError):
    """Raised when the database records a version that has no definition.

    Usually means the deployed code is older than the database history.
    """

    def __init__(self, version: int) -> None:
        super().__init__(
            f"unable to find migration for schema_migrations version {version}"
        )
        self.version = version


class MigrationExecutionError(MigrationError):
    """A single migration failed and its transaction was rolled back."""

    stage = "executing"

    def __init__(self, migration: Migration, direction: Direction, cause: BaseException) -> None:
        super().__init__(
            f"migrate {direction.value}: error {self.stage} {migration}: {cause}"
        )
        self.migration = migration
        self.direction = direction
        self.version = migration.version
        self.name = migration.name


class ScriptExecutionError(MigrationExecutionError):
    """The up or down script itself failed."""

    stage = "running script for"


class BookkeepingWriteError(MigrationExecutionError):
    """The script ran but the schema_migrations insert/delete failed."""

    stage = "recording"


class CommitError(MigrationExecutionError):
    """Script and bookkeeping succeeded but the commit did not."""

    stage = "committing"


class MigrationLoadError(MigrationError):
    """Raised when migration files on disk are malformed or incomplete."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class DuplicateMigrationError(ValueError):
    """Raised when a version is registered twice on one Migrator."""

    def __init__(self, version: int) -> None:
        super().__init__(f"migration version {version} is already registered")
        self.version = version
