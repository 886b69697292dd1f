"""Migration coordinator.

Every public operation runs as one self-contained session:

    connect -> lock -> ensure schema_migrations -> reconcile -> execute -> unlock -> close

Nothing about the database is cached between sessions; the applied state is
re-read under the lock every time, so any number of threads or processes may
call these methods against the same database.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .db import Database, is_memory_database
from .errors import (
    BookkeepingWriteError,
    CommitError,
    DuplicateMigrationError,
    ReconciliationError,
    ScriptExecutionError,
)
from .locks import AdvisoryLock
from .models import UNBOUNDED, CatalogState, Direction, Migration, MigrationStatus

logger = logging.getLogger(__name__)


class Migrator:
    """Applies and reverts registered migrations against one SQLite database.

    Usage:
        m = Migrator("app.db")
        m.register(Migration(1, "widgets_init", up="create table ...", down="drop table ..."))
        m.apply_all()
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        timeout: float | None = None,
    ) -> None:
        if is_memory_database(db_path):
            raise ValueError(
                f"in-memory database {str(db_path)!r} cannot be migrated: "
                "every session would open a new, empty database"
            )
        self.db_path = Path(db_path).expanduser()
        self.timeout = 5.0 if timeout is None else timeout
        self._catalog: list[Migration] = []
        self._catalog_lock = threading.Lock()

    # Catalog

    def register(self, migration: Migration) -> Migrator:
        """Add one migration definition.

        Call before any apply/revert runs concurrently. Raises
        DuplicateMigrationError if the version is already registered.
        """
        if not isinstance(migration, Migration):
            raise TypeError(f"expected Migration, got {type(migration).__name__}")
        with self._catalog_lock:
            if any(m.version == migration.version for m in self._catalog):
                raise DuplicateMigrationError(migration.version)
            self._catalog.append(migration)
        return self

    def add(self, *migrations: Migration) -> Migrator:
        for migration in migrations:
            self.register(migration)
        return self

    @property
    def migrations(self) -> tuple[Migration, ...]:
        """Registered migrations, lowest version first."""
        return tuple(sorted(self._snapshot(), key=lambda m: m.version))

    def _snapshot(self) -> list[Migration]:
        with self._catalog_lock:
            return list(self._catalog)

    # Public operations

    def apply_one(self) -> list[Migration]:
        """Apply the next pending migration, if any."""
        return self._run(Direction.UP, 1)

    def apply_all(self) -> list[Migration]:
        """Apply all pending migrations, if any."""
        return self._run(Direction.UP, UNBOUNDED)

    def revert_one(self) -> list[Migration]:
        """Revert the most recently applied migration, if any."""
        return self._run(Direction.DOWN, 1)

    def revert_all(self) -> list[Migration]:
        """Revert all applied migrations, if any."""
        return self._run(Direction.DOWN, UNBOUNDED)

    def status(self) -> list[MigrationStatus]:
        """Applied state of every registered migration, read under the lock."""
        with self._session() as (_, state):
            return state.statuses()

    # Session

    @contextmanager
    def _session(self) -> Iterator[tuple[Database, CatalogState]]:
        logger.info("migrate: connecting...")
        db = Database(self.db_path, timeout=self.timeout)
        db.connect()
        try:
            lock = AdvisoryLock(db.identity)
            logger.info("migrate: obtaining lock...")
            lock.acquire()
            logger.info("migrate: obtained lock!")
            try:
                db.ping()
                db.ensure_bookkeeping_table()
                state = self._reconcile(db)
                yield db, state
            finally:
                logger.info("migrate: releasing lock...")
                lock.release()
        finally:
            logger.info("migrate: closing connection...")
            try:
                db.close()
            except sqlite3.Error as e:
                logger.warning("migrate: unable to close connection: %s", e)

    def _reconcile(self, db: Database) -> CatalogState:
        """Match recorded versions against the catalog.

        Must run while holding the lock. Raises ReconciliationError for a
        recorded version that has no registered definition.
        """
        catalog = self._snapshot()
        known = {m.version for m in catalog}
        applied = db.applied_versions()
        for version in applied:
            if version not in known:
                logger.error(
                    "migrate: unable to find migration for schema_migrations version %d; "
                    "registered versions: %s",
                    version,
                    sorted(known),
                )
                raise ReconciliationError(version)
        return CatalogState.build(catalog, applied)

    # Executor

    def _run(self, direction: Direction, limit: int) -> list[Migration]:
        with self._session() as (db, state):
            pending = state.pending(direction, limit)
            if direction is Direction.UP:
                logger.info(
                    "migrate up: there are %d pending migrations.",
                    len(state.pending(direction)),
                )
            else:
                logger.info(
                    "migrate down: there are %d applied migrations.",
                    len(state.pending(direction)),
                )

            done: list[Migration] = []
            for migration in pending:
                self._execute(db, migration, direction)
                done.append(migration)
            return done

    def _execute(self, db: Database, migration: Migration, direction: Direction) -> None:
        """Run one migration and its bookkeeping write in a single transaction."""
        verb, past = ("applying", "applied") if direction is Direction.UP else ("reverting", "reverted")
        started = time.monotonic()
        logger.info("migrate %s: %s %s...", direction.value, verb, migration)

        script = migration.script(direction)
        try:
            db.begin_with_script(script)
        except sqlite3.Error as e:
            logger.error("migrate %s: fatal error %s %s: %s", direction.value, verb, migration, e)
            logger.error("source: %s", script)
            db.rollback()
            raise ScriptExecutionError(migration, direction, e) from e

        try:
            if direction is Direction.UP:
                db.record_version(migration.version)
            else:
                db.forget_version(migration.version)
        except sqlite3.Error as e:
            logger.error("migrate %s: fatal error %s %s: %s", direction.value, verb, migration, e)
            db.rollback()
            raise BookkeepingWriteError(migration, direction, e) from e

        try:
            db.commit()
        except sqlite3.Error as e:
            logger.error("migrate %s: fatal error %s %s: %s", direction.value, verb, migration, e)
            db.rollback()
            raise CommitError(migration, direction, e) from e

        logger.info(
            "migrate %s: successfully %s %s in %.3fs.",
            direction.value,
            past,
            migration,
            time.monotonic() - started,
        )
