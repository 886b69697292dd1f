"""sqlmigrate - versioned SQLite schema migrations that are safe to run concurrently.

Usage:
    from sqlmigrate import Migration, Migrator

    m = Migrator("app.db")
    m.register(Migration(1, "widgets_init", up="create table widgets (id integer)", down="drop table widgets"))
    m.apply_all()
"""

from .errors import (
    BookkeepingTableError,
    BookkeepingWriteError,
    CommitError,
    ConnectivityError,
    DuplicateMigrationError,
    LockError,
    MigrationError,
    MigrationExecutionError,
    MigrationLoadError,
    ReconciliationError,
    ScriptExecutionError,
)
from .loader import load_migrations
from .migrator import Migrator
from .models import UNBOUNDED, Direction, Migration, MigrationStatus

__all__ = [
    "BookkeepingTableError",
    "BookkeepingWriteError",
    "CommitError",
    "ConnectivityError",
    "Direction",
    "DuplicateMigrationError",
    "LockError",
    "Migration",
    "MigrationError",
    "MigrationExecutionError",
    "MigrationLoadError",
    "MigrationStatus",
    "Migrator",
    "ReconciliationError",
    "ScriptExecutionError",
    "UNBOUNDED",
    "load_migrations",
]
