from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from .errors import BookkeepingTableError, ConnectivityError

logger = logging.getLogger(__name__)

BOOKKEEPING_TABLE = "schema_migrations"


def is_memory_database(db_path: Path | str) -> bool:
    """True for names sqlite treats as a private, per-connection database."""
    raw = str(db_path).strip()
    if raw in {"", ":memory:"}:
        return True
    return raw.startswith("file:") and (
        raw.startswith("file::memory:") or "mode=memory" in raw
    )


def database_identity(db_path: Path | str) -> str:
    """Stable identity of a database file, shared by every process that opens it."""
    return str(Path(db_path).expanduser().resolve())


class Database:
    """One SQLite connection used for the length of a migration session.

    The connection runs with `isolation_level=None` so that sqlite3 never opens
    or commits transactions on its own; the migrator decides where each
    transaction begins and ends.
    """

    def __init__(self, db_path: Path | str, *, timeout: float = 5.0) -> None:
        self.db_path = Path(db_path).expanduser()
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    @property
    def identity(self) -> str:
        return database_identity(self.db_path)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ConnectivityError(f"database {self.db_path} is not connected")
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    def connect(self) -> sqlite3.Connection:
        """Open or return an existing connection.

        Takes no SQLite locks; a session may connect while another session
        is mid-migration and then wait on the advisory lock.
        """
        if self._conn is not None:
            return self._conn
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        except (sqlite3.Error, OSError) as e:
            raise ConnectivityError(f"unable to open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        self._conn = conn
        return conn

    def ping(self) -> None:
        """Read the schema so an unusable file fails as a connectivity error.

        sqlite opens lazily, so this is the first real access to the file.
        Call it only while holding the advisory lock.
        """
        try:
            self.conn.execute("SELECT 1 FROM sqlite_master LIMIT 1").fetchall()
        except sqlite3.Error as e:
            raise ConnectivityError(f"unable to open database {self.db_path}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        conn = self._conn
        if conn is not None:
            self._conn = None
            conn.close()

    def __enter__(self) -> Database:
        self.connect()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # Bookkeeping table

    def table_exists(self, name: str) -> bool:
        row = self.conn.execute(
            "SELECT EXISTS (SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?)",
            (name,),
        ).fetchone()
        return bool(row[0])

    def ensure_bookkeeping_table(self) -> bool:
        """Create schema_migrations if it doesn't exist.

        Returns True when the table had to be created.
        """
        try:
            if self.table_exists(BOOKKEEPING_TABLE):
                return False
            logger.info("migrate: %s table does not exist, creating...", BOOKKEEPING_TABLE)
            self.conn.execute(
                f"CREATE TABLE {BOOKKEEPING_TABLE} (version BIGINT PRIMARY KEY)"
            )
            return True
        except sqlite3.Error as e:
            raise BookkeepingTableError(
                f"unable to ensure {BOOKKEEPING_TABLE} table exists: {e}"
            ) from e

    def applied_versions(self) -> list[int]:
        """All recorded versions, ascending."""
        try:
            rows = self.conn.execute(
                f"SELECT version FROM {BOOKKEEPING_TABLE} ORDER BY version ASC"
            ).fetchall()
        except sqlite3.Error as e:
            raise BookkeepingTableError(f"unable to read {BOOKKEEPING_TABLE}: {e}") from e
        return [int(row[0]) for row in rows]

    # Transactions

    def begin_with_script(self, script: str) -> None:
        """Open a transaction and run `script` inside it.

        The transaction is left open on success and on failure; the caller
        commits or rolls back. `BEGIN` travels in the same executescript call
        because executescript commits any transaction that is already open.
        """
        self.conn.executescript(f"BEGIN;\n{script}")

    def record_version(self, version: int) -> None:
        self.conn.execute(f"INSERT INTO {BOOKKEEPING_TABLE} (version) VALUES (?)", (version,))

    def forget_version(self, version: int) -> None:
        cur = self.conn.execute(f"DELETE FROM {BOOKKEEPING_TABLE} WHERE version = ?", (version,))
        if cur.rowcount != 1:
            raise sqlite3.IntegrityError(
                f"expected to delete 1 {BOOKKEEPING_TABLE} row for version {version}, "
                f"deleted {cur.rowcount}"
            )

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        """Roll back the open transaction, if any. Never raises."""
        conn = self._conn
        if conn is None or not conn.in_transaction:
            return
        try:
            conn.rollback()
        except sqlite3.Error as e:
            logger.warning("migrate: rollback failed: %s", e)
