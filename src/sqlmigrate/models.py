from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

# Count bound meaning "every pending migration".
UNBOUNDED = 0

_MAX_VERSION = 2**63 - 1
_MIN_VERSION = -(2**63)


class Direction(str, Enum):
    """Which way a migration run moves the schema."""

    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class Migration:
    """A versioned pair of schema change scripts.

    `up` moves the schema forward, `down` must undo exactly what `up` did.
    Versions define a strict total order and must be unique per Migrator.
    """

    version: int
    name: str
    up: str
    down: str

    def __post_init__(self) -> None:
        if isinstance(self.version, bool) or not isinstance(self.version, int):
            raise TypeError(f"migration version must be an int, got {self.version!r}")
        if not _MIN_VERSION <= self.version <= _MAX_VERSION:
            raise ValueError(f"migration version {self.version} does not fit in a BIGINT")

    def __str__(self) -> str:
        return f'"{self.version}: {self.name}"'

    def script(self, direction: Direction) -> str:
        return self.up if direction is Direction.UP else self.down


@dataclass(frozen=True)
class MigrationStatus:
    migration: Migration
    applied: bool

    @property
    def version(self) -> int:
        return self.migration.version

    @property
    def name(self) -> str:
        return self.migration.name


@dataclass(frozen=True)
class CatalogState:
    """The catalog as seen by one session.

    Holds an ascending copy of the registered migrations and the versions the
    database reports as applied. Built fresh under the lock every session and
    never shared between sessions.
    """

    migrations: tuple[Migration, ...]
    applied: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def build(cls, catalog: Iterable[Migration], applied: Iterable[int]) -> CatalogState:
        ordered = tuple(sorted(catalog, key=lambda m: m.version))
        return cls(migrations=ordered, applied=frozenset(applied))

    def is_applied(self, migration: Migration) -> bool:
        return migration.version in self.applied

    def pending(self, direction: Direction, limit: int = UNBOUNDED) -> list[Migration]:
        """Return the migrations a run in `direction` would touch, in order.

        Up: unapplied migrations, lowest version first.
        Down: applied migrations, highest version first.
        `limit` caps the result; UNBOUNDED returns everything.
        """
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        if direction is Direction.UP:
            selected = [m for m in self.migrations if not self.is_applied(m)]
        else:
            selected = [m for m in reversed(self.migrations) if self.is_applied(m)]

        if limit != UNBOUNDED:
            selected = selected[:limit]
        return selected

    def statuses(self) -> list[MigrationStatus]:
        return [MigrationStatus(migration=m, applied=self.is_applied(m)) for m in self.migrations]
