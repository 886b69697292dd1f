from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_path(name: str, default: Path | None = None) -> Path | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return Path(raw.strip()).expanduser()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the sqlmigrate CLI.

    Every field can be set through a SQLMIGRATE_* environment variable;
    command line options take precedence over the environment.
    """

    database: Path = Path("sqlmigrate.db")
    migrations_dir: Path = Path("migrations")
    busy_timeout: float = 5.0
    log_level: str = "INFO"
    log_format: str = "text"
    log_path: Path | None = None
    log_max_bytes: int = 1_000_000
    log_backup_count: int = 3


def load_settings() -> Settings:
    """Build Settings from the current environment.

    Raises ValueError when a numeric variable does not parse.
    """
    defaults = Settings()
    return Settings(
        database=_env_path("SQLMIGRATE_DATABASE", defaults.database) or defaults.database,
        migrations_dir=(
            _env_path("SQLMIGRATE_MIGRATIONS_DIR", defaults.migrations_dir)
            or defaults.migrations_dir
        ),
        busy_timeout=_env_float("SQLMIGRATE_BUSY_TIMEOUT", defaults.busy_timeout),
        log_level=os.environ.get("SQLMIGRATE_LOG_LEVEL", defaults.log_level),
        log_format=os.environ.get("SQLMIGRATE_LOG_FORMAT", defaults.log_format).strip().lower(),
        log_path=_env_path("SQLMIGRATE_LOG_PATH"),
        log_max_bytes=_env_int("SQLMIGRATE_LOG_MAX_BYTES", defaults.log_max_bytes),
        log_backup_count=_env_int("SQLMIGRATE_LOG_BACKUP_COUNT", defaults.log_backup_count),
    )
