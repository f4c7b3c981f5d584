"""Position tracking, validation and persistence for floating host dialogs."""
from __future__ import annotations

from dialog_manager.dialog_state import DialogRecord, Modality, is_fallback_id
from dialog_manager.position_manager import DialogPositionManager
from dialog_manager.position_store import (
    JsonFileKeyValueStore,
    MemoryKeyValueStore,
    PositionStore,
)
from dialog_manager.screen_geometry import ScreenInfo

__all__ = [
    "DialogPositionManager",
    "DialogRecord",
    "JsonFileKeyValueStore",
    "MemoryKeyValueStore",
    "Modality",
    "PositionStore",
    "ScreenInfo",
    "is_fallback_id",
]
