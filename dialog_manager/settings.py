"""JSON-backed settings for the dialog position manager."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

_LOGGER = logging.getLogger("DialogManager.Settings")

SETTINGS_FILE = "dialog_manager_settings.json"
VERBOSE_ENV_VAR = "DIALOG_MANAGER_VERBOSE"
MAX_JSON_LENGTH_DEFAULT = 7500
MAX_JSON_LENGTH_MIN = 1000
MAX_JSON_LENGTH_MAX = 8000
LOG_RETENTION_DEFAULT = 5
LOG_RETENTION_MAX = 20


def _coerce_titles(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    titles: List[str] = []
    for value in raw:
        if not isinstance(value, str):
            continue
        token = value.strip()
        if token and token not in titles:
            titles.append(token)
    return titles


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    token = value.strip().lower()
    if token in {"1", "true", "yes", "on"}:
        return True
    if token in {"0", "false", "no", "off"}:
        return False
    return None


@dataclass
class ManagerSettings:
    """Tracking policy and logging options.

    ``settings_dir`` of None keeps everything in memory (``save`` is a no-op).
    """

    settings_dir: Optional[Path] = None
    track_all_windows: bool = True
    targeted_titles: List[str] = field(default_factory=list)
    excluded_ids: List[str] = field(default_factory=list)
    verbose_logging: bool = False
    max_json_length: int = MAX_JSON_LENGTH_DEFAULT
    log_retention: int = LOG_RETENTION_DEFAULT

    def __post_init__(self) -> None:
        self._path: Optional[Path] = None
        if self.settings_dir is not None:
            self.settings_dir = Path(self.settings_dir)
            self._path = self.settings_dir / SETTINGS_FILE
            self._load()
        env_verbose = _env_flag(VERBOSE_ENV_VAR)
        if env_verbose is not None:
            self.verbose_logging = env_verbose

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # Persistence ---------------------------------------------------------

    def _load(self) -> None:
        assert self._path is not None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            _LOGGER.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return
        if not isinstance(data, dict):
            return
        self.track_all_windows = bool(data.get("track_all_windows", True))
        self.targeted_titles = _coerce_titles(data.get("targeted_titles"))
        self.excluded_ids = _coerce_titles(data.get("excluded_ids"))
        self.verbose_logging = bool(data.get("verbose_logging", False))
        try:
            max_length = int(data.get("max_json_length", MAX_JSON_LENGTH_DEFAULT))
        except (TypeError, ValueError):
            max_length = MAX_JSON_LENGTH_DEFAULT
        self.max_json_length = max(MAX_JSON_LENGTH_MIN, min(max_length, MAX_JSON_LENGTH_MAX))
        try:
            retention = int(data.get("log_retention", LOG_RETENTION_DEFAULT))
        except (TypeError, ValueError):
            retention = LOG_RETENTION_DEFAULT
        self.log_retention = max(1, min(retention, LOG_RETENTION_MAX))

    def save(self) -> None:
        if self._path is None:
            return
        payload: Dict[str, Any] = {
            "track_all_windows": bool(self.track_all_windows),
            "targeted_titles": list(self.targeted_titles),
            "excluded_ids": list(self.excluded_ids),
            "verbose_logging": bool(self.verbose_logging),
            "max_json_length": int(self.max_json_length),
            "log_retention": int(self.log_retention),
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
