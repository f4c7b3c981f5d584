"""Observable list of dialog records shown by the management UI."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, List, Optional

from dialog_manager.dialog_state import DialogRecord

_LOGGER = logging.getLogger("DialogManager.Records")

RecordListener = Callable[[List[DialogRecord]], None]


class RecordList:
    """Keeps at most one record per id, in first-seen order, and notifies listeners on change."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: List[DialogRecord] = []
        self._listeners: List[RecordListener] = []

    def __iter__(self) -> Iterator[DialogRecord]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def snapshot(self) -> List[DialogRecord]:
        with self._lock:
            return list(self._records)

    def get(self, window_id: str) -> Optional[DialogRecord]:
        with self._lock:
            for record in self._records:
                if record.id == window_id:
                    return record
        return None

    def add_listener(self, listener: RecordListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: RecordListener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def upsert(self, record: DialogRecord) -> None:
        with self._lock:
            for position, existing in enumerate(self._records):
                if existing.id == record.id:
                    self._records[position] = record
                    break
            else:
                self._records.append(record)
        self._notify()

    def remove(self, window_id: str) -> bool:
        with self._lock:
            before = len(self._records)
            self._records = [record for record in self._records if record.id != window_id]
            changed = len(self._records) != before
        if changed:
            self._notify()
        return changed

    def retain(self, predicate: Callable[[DialogRecord], bool]) -> int:
        with self._lock:
            before = len(self._records)
            self._records = [record for record in self._records if predicate(record)]
            removed = before - len(self._records)
        if removed:
            self._notify()
        return removed

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
            snapshot = list(self._records)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as exc:
                _LOGGER.warning("Record listener %r failed: %s", listener, exc, exc_info=exc)
