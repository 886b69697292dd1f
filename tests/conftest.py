from __future__ import annotations

import sqlite3
from collections.abc import Callable
from pathlib import Path

import pytest

from sqlmigrate import Migration, Migrator

WIDGETS_INIT = Migration(
    version=1,
    name="widgets_init",
    up="""
        create table widgets (
            widget_id integer primary key,
            name text
        );
    """,
    down="""
        drop table if exists widgets;
    """,
)

USERS_INIT = Migration(
    version=2,
    name="users_init",
    up="""
        create table users (
            user_id integer primary key,
            name text
        );

        alter table widgets add column user_id integer;
    """,
    down="""
        alter table widgets drop column user_id;
        drop table if exists users;
    """,
)

USERS_ADD_BIRTHDAY = Migration(
    version=3,
    name="users_add_birthday",
    up="""
        alter table users add column birthday date;
        create index users_birthday on users (birthday);
    """,
    down="""
        drop index if exists users_birthday;
        alter table users drop column birthday;
    """,
)

USERS_ADD_CAT_OR_DOG = Migration(
    version=4,
    name="users_add_cat_or_dog",
    up="alter table users add column cat_or_dog text;",
    down="alter table users drop column cat_or_dog;",
)

USERS_RENAME_CAT_OR_DOG = Migration(
    version=5,
    name="users_rename_cat_or_dog_to_favorite_pet_type",
    up="alter table users rename column cat_or_dog to favorite_pet_type;",
    down="alter table users rename column favorite_pet_type to cat_or_dog;",
)

ALL_MIGRATIONS = [
    WIDGETS_INIT,
    USERS_INIT,
    USERS_ADD_BIRTHDAY,
    USERS_ADD_CAT_OR_DOG,
    USERS_RENAME_CAT_OR_DOG,
]


@pytest.fixture(autouse=True)
def _quiet_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CLI from installing root handlers bound to captured streams."""

    import sqlmigrate.logging_setup as logging_setup

    monkeypatch.setattr(logging_setup, "_CONFIGURED", True)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "migrate-test.db"


@pytest.fixture
def make_migrator(db_path: Path) -> Callable[..., Migrator]:
    """Build a Migrator on the test database with the given migrations."""

    def _make(*migrations: Migration) -> Migrator:
        return Migrator(db_path).add(*migrations)

    return _make


@pytest.fixture
def migrator(make_migrator: Callable[..., Migrator]) -> Migrator:
    return make_migrator(*ALL_MIGRATIONS)


def applied_versions(db_path: Path) -> list[int]:
    conn = sqlite3.connect(str(db_path))
    try:
        rows = conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
    finally:
        conn.close()
    return [row[0] for row in rows]


def table_names(db_path: Path) -> set[str]:
    conn = sqlite3.connect(str(db_path))
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    finally:
        conn.close()
    return {row[0] for row in rows}


def column_names(db_path: Path, table: str) -> list[str]:
    conn = sqlite3.connect(str(db_path))
    try:
        rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    finally:
        conn.close()
    return [row[1] for row in rows]
