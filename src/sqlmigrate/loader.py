"""Build migrations from SQL files on disk.

A migration is a pair of files sharing a version and a name:

    0001_widgets_init.up.sql
    0001_widgets_init.down.sql

The version is the leading number; the name is everything between the
first underscore and the `.up.sql` / `.down.sql` suffix.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .errors import MigrationLoadError
from .models import Migration

logger = logging.getLogger(__name__)

MIGRATION_FILE_RE = re.compile(r"^(\d+)_(.+)\.(up|down)\.sql$")
SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def load_migrations(directory: Path | str) -> list[Migration]:
    """Read every migration pair in `directory`, lowest version first.

    Raises:
        MigrationLoadError: If the directory is missing, a half of a pair is
            absent, or one version is used under two different names.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise MigrationLoadError(f"migrations directory not found: {directory}", directory)

    found: dict[int, tuple[str, dict[str, Path]]] = {}
    for sql_file in sorted(directory.glob("*.sql")):
        match = MIGRATION_FILE_RE.match(sql_file.name)
        if not match:
            logger.warning("Skipping malformed migration file: %s", sql_file.name)
            continue

        version = int(match.group(1))
        name = match.group(2)
        direction = match.group(3)

        existing_name, halves = found.setdefault(version, (name, {}))
        if existing_name != name:
            raise MigrationLoadError(
                f"version {version} is used by both {existing_name!r} and {name!r}",
                sql_file,
            )
        halves[direction] = sql_file

    migrations = []
    for version in sorted(found):
        name, halves = found[version]
        for direction in ("up", "down"):
            if direction not in halves:
                raise MigrationLoadError(
                    f"migration {version} ({name}) has no .{direction}.sql file",
                    directory,
                )
        migrations.append(
            Migration(
                version=version,
                name=name,
                up=halves["up"].read_text(encoding="utf-8"),
                down=halves["down"].read_text(encoding="utf-8"),
            )
        )

    logger.debug("Loaded %d migration(s) from %s", len(migrations), directory)
    return migrations


def next_version(directory: Path | str) -> int:
    """One past the highest version present in `directory` (1 when empty)."""
    directory = Path(directory)
    versions = [
        int(match.group(1))
        for match in (MIGRATION_FILE_RE.match(p.name) for p in directory.glob("*.sql"))
        if match
    ]
    return max(versions, default=0) + 1


def create_migration_files(directory: Path | str, name: str) -> tuple[Path, Path]:
    """Write an empty up/down pair for `name` using the next free version."""
    directory = Path(directory)
    slug = re.sub(r"[\s-]+", "_", name.strip()).lower()
    if not slug or not SAFE_NAME_RE.match(slug):
        raise MigrationLoadError(f"invalid migration name: {name!r}", directory)

    directory.mkdir(parents=True, exist_ok=True)
    version = next_version(directory)
    stem = f"{version:04d}_{slug}"
    up_path = directory / f"{stem}.up.sql"
    down_path = directory / f"{stem}.down.sql"
    up_path.write_text(f"-- {version}: {slug} (up)\n", encoding="utf-8")
    down_path.write_text(f"-- {version}: {slug} (down)\n", encoding="utf-8")
    return up_path, down_path
