"""Database-scoped advisory lock.

All migrators targeting the same database file serialize on one lock file
whose name and location are derived from the database identity alone: it
sits beside the database file, so nothing a caller configures can split the
lock. The lock is an exclusive `flock` held on a descriptor opened per
session, so it works between threads of one process as well as between
processes, and the OS drops it when the descriptor is closed or the process
exits.
"""

from __future__ import annotations

import fcntl
import logging
import os
import zlib
from pathlib import Path
from typing import IO

from .errors import LockError

logger = logging.getLogger(__name__)


def lock_key(identity: str) -> int:
    """Deterministic 32-bit key for a database identity."""
    return zlib.crc32(identity.encode("utf-8")) & 0xFFFFFFFF


def lock_path(identity: str) -> Path:
    """Lock file for a database identity, in the same directory as the database."""
    return Path(identity).parent / f".sqlmigrate-{lock_key(identity):08x}.lock"


class AdvisoryLock:
    """Blocking, exclusive lock keyed by a database identity."""

    def __init__(self, identity: str) -> None:
        self.identity = identity
        self.key = lock_key(identity)
        self.path = lock_path(identity)
        self._fh: IO[bytes] | None = None

    @property
    def held(self) -> bool:
        return self._fh is not None

    def acquire(self) -> None:
        """Block until the lock is ours."""
        if self._fh is not None:
            raise LockError(f"lock {self.key:08x} is already held by this session")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fh = open(self.path, "ab")
        except OSError as e:
            raise LockError(f"unable to open lock file {self.path}: {e}") from e
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
        except OSError as e:
            fh.close()
            raise LockError(f"unable to obtain lock {self.key:08x}: {e}") from e
        self._fh = fh
        logger.debug("migrate: lock %08x held by pid %d", self.key, os.getpid())

    def release(self) -> None:
        """Release the lock. Errors are logged; closing the file frees it anyway."""
        fh = self._fh
        if fh is None:
            return
        self._fh = None
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logger.warning("migrate: unable to release lock %08x: %s", self.key, e)
        finally:
            fh.close()

    def __enter__(self) -> AdvisoryLock:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
