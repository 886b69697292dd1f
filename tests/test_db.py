from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest

from sqlmigrate.db import BOOKKEEPING_TABLE, Database, is_memory_database
from sqlmigrate.errors import ConnectivityError


@pytest.fixture
def temp_db(tmp_path: Path) -> Iterator[Database]:
    db = Database(tmp_path / "test.db")
    db.connect()
    yield db
    db.close()


def test_ensure_bookkeeping_table_is_idempotent(temp_db: Database) -> None:
    assert temp_db.ensure_bookkeeping_table() is True
    assert temp_db.ensure_bookkeeping_table() is False
    assert temp_db.table_exists(BOOKKEEPING_TABLE)

    cols = temp_db.conn.execute(f"PRAGMA table_info({BOOKKEEPING_TABLE})").fetchall()
    assert [(c["name"], c["type"], c["pk"]) for c in cols] == [("version", "BIGINT", 1)]


def test_applied_versions_ascending(temp_db: Database) -> None:
    temp_db.ensure_bookkeeping_table()
    for v in (30, 10, 20):
        temp_db.conn.execute(f"INSERT INTO {BOOKKEEPING_TABLE} (version) VALUES (?)", (v,))

    assert temp_db.applied_versions() == [10, 20, 30]


def test_script_and_record_commit_together(temp_db: Database) -> None:
    temp_db.ensure_bookkeeping_table()

    temp_db.begin_with_script("create table t (id integer); insert into t values (1);")
    assert temp_db.in_transaction
    temp_db.record_version(1)
    temp_db.commit()

    assert not temp_db.in_transaction
    assert temp_db.applied_versions() == [1]
    assert temp_db.conn.execute("select count(*) from t").fetchone()[0] == 1


def test_rollback_discards_script_and_record(temp_db: Database) -> None:
    temp_db.ensure_bookkeeping_table()

    temp_db.begin_with_script("create table t (id integer);")
    temp_db.record_version(1)
    temp_db.rollback()

    assert temp_db.applied_versions() == []
    assert not temp_db.table_exists("t")


def test_failed_script_leaves_transaction_open_for_rollback(temp_db: Database) -> None:
    temp_db.ensure_bookkeeping_table()

    with pytest.raises(sqlite3.Error):
        temp_db.begin_with_script("create table t (id integer); bogus statement;")

    temp_db.rollback()
    assert not temp_db.in_transaction
    assert not temp_db.table_exists("t")


def test_forget_missing_version_is_an_error(temp_db: Database) -> None:
    temp_db.ensure_bookkeeping_table()
    temp_db.begin_with_script("")
    with pytest.raises(sqlite3.IntegrityError):
        temp_db.forget_version(42)
    temp_db.rollback()


def test_rollback_without_transaction_is_noop(temp_db: Database) -> None:
    temp_db.rollback()
    assert not temp_db.in_transaction


def test_conn_requires_connect(tmp_path: Path) -> None:
    db = Database(tmp_path / "x.db")
    with pytest.raises(ConnectivityError):
        _ = db.conn


def test_context_manager_closes(tmp_path: Path) -> None:
    with Database(tmp_path / "x.db") as db:
        assert db.conn is not None
    with pytest.raises(ConnectivityError):
        _ = db.conn


def test_connect_succeeds_while_the_database_is_busy(tmp_path: Path) -> None:
    path = tmp_path / "busy.db"
    busy = sqlite3.connect(str(path), isolation_level=None)
    busy.execute("BEGIN EXCLUSIVE")
    try:
        db = Database(path, timeout=0.05)
        db.connect()
        with pytest.raises(ConnectivityError):
            db.ping()
        db.close()
    finally:
        busy.execute("ROLLBACK")
        busy.close()


def test_ping_on_a_directory_is_a_connectivity_error(tmp_path: Path) -> None:
    target = tmp_path / "a-directory"
    target.mkdir()
    db = Database(target)
    with pytest.raises(ConnectivityError):
        db.connect()
        db.ping()
    db.close()


@pytest.mark.parametrize(
    ("target", "expected"),
    [
        (":memory:", True),
        ("", True),
        ("file::memory:", True),
        ("file:x?mode=memory&cache=shared", True),
        ("app.db", False),
        ("file:app.db", False),
    ],
)
def test_is_memory_database(target: str, expected: bool) -> None:
    assert is_memory_database(target) is expected
