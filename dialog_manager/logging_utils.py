"""Log file placement and handler construction for the dialog manager."""
from __future__ import annotations

import logging
import os
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

LOG_DIR_ENV_VAR = "DIALOG_MANAGER_LOG_DIR"
LOG_DIR_NAME = "DialogManager"
FILE_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
ROTATE_BYTES = 512 * 1024


def _candidate_dirs(log_dir_name: str) -> Iterator[Path]:
    override = os.environ.get(LOG_DIR_ENV_VAR)
    if override:
        yield Path(override).expanduser()
    home = Path.home()
    yield Path(os.environ.get("XDG_STATE_HOME", home / ".local" / "state")) / log_dir_name / "logs"
    yield Path(os.environ.get("XDG_CACHE_HOME", home / ".cache")) / log_dir_name / "logs"
    yield Path.cwd() / "logs" / log_dir_name


def resolve_logs_dir(log_dir_name: str = LOG_DIR_NAME) -> Path:
    """
    Return the first writable log directory.

    Order: $DIALOG_MANAGER_LOG_DIR as given, the XDG state dir, the XDG cache
    dir, `cwd/logs/<name>`, and finally the system temp dir.
    """
    for target in _candidate_dirs(log_dir_name):
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError:
            continue
        return target
    fallback = Path(tempfile.gettempdir()) / log_dir_name
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def build_rotating_file_handler(
    log_dir: Path,
    filename: str,
    *,
    retention: int = 5,
    max_bytes: int = ROTATE_BYTES,
    formatter: Optional[logging.Formatter] = None,
) -> RotatingFileHandler:
    """File handler keeping ``retention`` files in total: the live log plus backups."""
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / filename,
        maxBytes=max_bytes,
        backupCount=max(1, retention) - 1,
        encoding="utf-8",
    )
    handler.setFormatter(formatter or logging.Formatter(FILE_LOG_FORMAT))
    return handler


def resolve_log_level(verbose: bool) -> int:
    return logging.DEBUG if verbose else logging.INFO
