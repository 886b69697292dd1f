from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .settings import Settings, load_settings

_CONFIGURED = False

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# LogRecord attributes that are not user supplied `extra` fields.
_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    {"timestamp": "...", "level": "INFO", "logger": "sqlmigrate.migrator", "message": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str, ensure_ascii=False)


def _make_formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JsonFormatter()
    return logging.Formatter(fmt=_TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")


def configure_logging(
    *,
    level: str | None = None,
    fmt: str | None = None,
    log_path: Path | None = None,
    config: Settings | None = None,
) -> None:
    """Configure logging for the sqlmigrate command line.

    - Logs to stderr.
    - Optionally logs to a rotating file when a log path is configured.

    Safe to call multiple times; it will not duplicate handlers. The library
    itself never calls this, applications embedding Migrator keep their own
    logging setup.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    cfg = config or load_settings()
    level_name = (level or cfg.log_level).upper().strip()
    resolved_level = getattr(logging, level_name, logging.INFO)
    formatter = _make_formatter((fmt or cfg.log_format).lower())

    root = logging.getLogger()
    root.setLevel(resolved_level)

    if not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root.handlers
    ):
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(resolved_level)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    resolved_log_path = log_path or cfg.log_path
    if resolved_log_path is not None:
        try:
            resolved_log_path.parent.mkdir(parents=True, exist_ok=True)
            if not any(
                isinstance(h, RotatingFileHandler)
                and getattr(h, "baseFilename", None) == str(resolved_log_path.resolve())
                for h in root.handlers
            ):
                file_handler = RotatingFileHandler(
                    filename=str(resolved_log_path),
                    maxBytes=cfg.log_max_bytes,
                    backupCount=cfg.log_backup_count,
                    encoding="utf-8",
                )
                file_handler.setLevel(resolved_level)
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)
        except OSError as e:
            root.warning("Could not create log file at %s: %s", resolved_log_path, e)

    _CONFIGURED = True
