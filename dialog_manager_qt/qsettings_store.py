"""QSettings-backed preference storage for dialog positions."""
from __future__ import annotations

from typing import Optional

from PyQt6.QtCore import QSettings

from dialog_manager.position_store import PREFERENCE_VALUE_LIMIT

ORGANIZATION = "DialogManager"
APPLICATION = "DialogPositionManager"


class QSettingsKeyValueStore:
    """Stores single string values in the platform's native settings store."""

    def __init__(
        self,
        settings: Optional[QSettings] = None,
        *,
        max_value_length: int = PREFERENCE_VALUE_LIMIT,
    ) -> None:
        self._settings = settings if settings is not None else QSettings(ORGANIZATION, APPLICATION)
        self.max_value_length = max_value_length

    def get(self, key: str) -> Optional[str]:
        value = self._settings.value(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        if len(value) > self.max_value_length:
            raise ValueError(f"Value too long for {key}: {len(value)} > {self.max_value_length}")
        self._settings.setValue(key, value)
        self._settings.sync()
        status = self._settings.status()
        if status != QSettings.Status.NoError:
            raise OSError(f"QSettings write failed for {key}: {status.name}")
