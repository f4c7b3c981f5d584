"""Durable storage for dialog records under the host preference size limit.

All records live in one preference value: a compact JSON object keyed by window
id. Keys are shortened, coordinates rounded to integers and default values
omitted so more dialogs fit under the limit. The reader also accepts the older
verbose key names.
"""
from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, MutableMapping, Optional, Protocol

from dialog_manager.dialog_state import DialogRecord, Modality, is_fallback_id

_LOGGER = logging.getLogger("DialogManager.Store")

PREF_KEY = "dialogManager.positions"
MAX_JSON_LENGTH = 7500
# Native preference backends cap a single value at this length.
PREFERENCE_VALUE_LIMIT = 8192
STORE_FILENAME = "dialog_positions.json"

# compact key -> legacy verbose alias
_ALIASES = {
    "x": None,
    "y": None,
    "w": "width",
    "h": "height",
    "m": "modality",
    "si": "screenIndex",
    "sx": "scaleX",
    "sy": "scaleY",
}


class RecordFormatError(ValueError):
    """Raised when a persisted entry cannot be turned into a DialogRecord."""


class KeyValueStore(Protocol):
    """Single-string preference storage that survives process restarts."""

    max_value_length: int

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryKeyValueStore:
    """In-process backend, mainly for tests and headless runs."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None, *, max_value_length: int = PREFERENCE_VALUE_LIMIT) -> None:
        self._values: Dict[str, str] = dict(initial or {})
        self.max_value_length = max_value_length

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        if len(value) > self.max_value_length:
            raise ValueError(f"Value too long for {key}: {len(value)} > {self.max_value_length}")
        self._values[key] = value


class JsonFileKeyValueStore:
    """Key-value pairs kept in a small JSON file beside the extension settings."""

    def __init__(self, path: Path, *, max_value_length: int = PREFERENCE_VALUE_LIMIT) -> None:
        self._path = Path(path)
        self.max_value_length = max_value_length

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Dict[str, Any]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        if len(value) > self.max_value_length:
            raise ValueError(f"Value too long for {key}: {len(value)} > {self.max_value_length}")
        data = self._read()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# Codec ------------------------------------------------------------------------


def _lookup(entry: Mapping[str, Any], key: str) -> Any:
    if key in entry:
        return entry[key]
    alias = _ALIASES.get(key)
    if alias is not None and alias in entry:
        return entry[alias]
    return None


def _number(entry: Mapping[str, Any], key: str, default: float) -> float:
    raw = _lookup(entry, key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        raise RecordFormatError(f"field {key!r} is not numeric: {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise RecordFormatError(f"field {key!r} is not numeric: {raw!r}") from exc
    if not math.isfinite(value):
        raise RecordFormatError(f"field {key!r} is not finite: {raw!r}")
    return value


def record_to_json(record: DialogRecord) -> Dict[str, Any]:
    """Compact form of ``record``; the id/title live in the surrounding map key."""

    payload: Dict[str, Any] = {
        "x": int(round(record.x)),
        "y": int(round(record.y)),
        "w": int(round(record.width)),
        "h": int(round(record.height)),
    }
    if record.modality is not Modality.NONE:
        payload["m"] = record.modality.value
    if record.screen_index != 0:
        payload["si"] = int(record.screen_index)
    if record.scale_x != 1.0:
        payload["sx"] = float(record.scale_x)
    if record.scale_y != 1.0:
        payload["sy"] = float(record.scale_y)
    return payload


def record_from_json(window_id: str, entry: Any) -> DialogRecord:
    if not isinstance(entry, Mapping):
        raise RecordFormatError(f"entry is not an object: {type(entry).__name__}")
    x = int(_number(entry, "x", 0))
    y = int(_number(entry, "y", 0))
    width = int(_number(entry, "w", 0))
    height = int(_number(entry, "h", 0))
    modality = Modality.parse(_lookup(entry, "m"))
    screen_index = int(_number(entry, "si", 0))
    scale_x = _number(entry, "sx", 1.0)
    scale_y = _number(entry, "sy", 1.0)
    title = entry.get("title")
    return DialogRecord(
        id=window_id,
        title=title if isinstance(title, str) and title else window_id,
        x=float(x),
        y=float(y),
        width=float(width),
        height=float(height),
        modality=modality,
        is_open=False,
        screen_index=screen_index,
        scale_x=scale_x if scale_x > 0 else 1.0,
        scale_y=scale_y if scale_y > 0 else 1.0,
    )


def dumps_compact(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


# Store ------------------------------------------------------------------------


class PositionStore:
    """Read-modify-write access to the persisted record map.

    Nothing here raises into callers: backend failures are logged and the
    operation degrades to a no-op (writes) or an empty map (reads).
    """

    def __init__(
        self,
        backend: KeyValueStore,
        *,
        max_length: int = MAX_JSON_LENGTH,
        key: str = PREF_KEY,
    ) -> None:
        self._backend = backend
        self._key = key
        backend_limit = getattr(backend, "max_value_length", None)
        limit = int(max_length)
        if isinstance(backend_limit, int) and backend_limit > 0:
            limit = min(limit, backend_limit)
        self._max_length = max(2, limit)
        self._initialized = False

    @property
    def max_length(self) -> int:
        return self._max_length

    def initialize(self) -> int:
        """Prepare the store and drop fallback entries left behind by older versions."""

        if self._initialized:
            return 0
        self._initialized = True
        return self.cleanup_fallback_entries()

    def _read_raw(self) -> Dict[str, Any]:
        try:
            text = self._backend.get(self._key)
        except Exception as exc:
            _LOGGER.warning("Failed to read dialog positions, using empty map: %s", exc)
            return {}
        if text is None or not text.strip():
            return {}
        try:
            root = json.loads(text)
        except json.JSONDecodeError as exc:
            _LOGGER.warning("Stored dialog positions are not valid JSON, using empty map: %s", exc)
            return {}
        if not isinstance(root, dict):
            _LOGGER.warning("Stored dialog positions are not an object (%s), using empty map", type(root).__name__)
            return {}
        return root

    def load_all(self) -> Dict[str, DialogRecord]:
        result: Dict[str, DialogRecord] = {}
        for window_id, entry in self._read_raw().items():
            try:
                result[window_id] = record_from_json(window_id, entry)
            except RecordFormatError as exc:
                _LOGGER.debug("Skipping invalid entry %r: %s", window_id, exc)
        _LOGGER.debug("Loaded %d dialog positions from preferences", len(result))
        return result

    def get_all(self) -> Mapping[str, DialogRecord]:
        return MappingProxyType(self.load_all())

    def save_all(self, records: Mapping[str, DialogRecord]) -> None:
        root: Dict[str, Any] = {}
        for window_id, record in records.items():
            if not window_id or is_fallback_id(window_id):
                continue
            root[window_id] = record_to_json(record)

        text = dumps_compact(root)
        if len(text) > self._max_length:
            _LOGGER.warning("Dialog positions JSON too large (%d chars), pruning entries", len(text))
            while len(text) > self._max_length and root:
                evicted = next(iter(root))
                del root[evicted]
                text = dumps_compact(root)
                _LOGGER.debug("Removed dialog position for %r to reduce size", evicted)

        try:
            self._backend.set(self._key, text)
        except Exception as exc:
            _LOGGER.error("Failed to save dialog positions: %s", exc, exc_info=exc)
            return
        _LOGGER.debug("Saved %d dialog positions to preferences", len(root))

    def save(self, record: DialogRecord) -> None:
        if is_fallback_id(record.id):
            _LOGGER.debug("Not persisting fallback id %r", record.id)
            return
        records: MutableMapping[str, DialogRecord] = self.load_all()
        # Re-insert so the most recently written record is evicted last.
        records.pop(record.id, None)
        records[record.id] = record.with_open_status(False)
        self.save_all(records)

    def remove(self, window_id: str) -> bool:
        records = self.load_all()
        if records.pop(window_id, None) is None:
            return False
        self.save_all(records)
        _LOGGER.debug("Removed dialog position for %r", window_id)
        return True

    def clear_all(self) -> None:
        try:
            self._backend.set(self._key, "{}")
        except Exception as exc:
            _LOGGER.error("Failed to clear dialog positions: %s", exc, exc_info=exc)
            return
        _LOGGER.info("Cleared all saved dialog positions")

    def cleanup_fallback_entries(self) -> int:
        records = self.load_all()
        stale = [window_id for window_id in records if is_fallback_id(window_id)]
        if not stale:
            return 0
        for window_id in stale:
            del records[window_id]
        self.save_all(records)
        _LOGGER.info("Cleaned up %d fallback dialog position entries", len(stale))
        return len(stale)
