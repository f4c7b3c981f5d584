"""Per-window listeners that keep the live record current and persist on hide."""
from __future__ import annotations

import logging
from typing import Callable, List

from dialog_manager.dialog_state import DialogRecord
from dialog_manager.window_system import GEOMETRY_PROPERTIES, ManagedWindow, Subscription, WindowSystem

_LOGGER = logging.getLogger("DialogManager.Tracker")

CaptureFn = Callable[[ManagedWindow], DialogRecord]
PublishFn = Callable[[DialogRecord], None]
PersistFn = Callable[[DialogRecord], None]


class WindowTracker:
    """Subscribes to x/y/width/height and visibility of one window.

    Geometry changes only refresh the published record; the record is written
    to durable storage when the window hides, so dragging does not trigger a
    write per pixel. ``detach`` releases all five subscriptions and the window
    reference; it is safe to call more than once.
    """

    def __init__(
        self,
        window_system: WindowSystem,
        window: ManagedWindow,
        *,
        capture_fn: CaptureFn,
        publish_fn: PublishFn,
        persist_fn: PersistFn,
    ) -> None:
        self._window = window
        self._capture = capture_fn
        self._publish = publish_fn
        self._persist = persist_fn
        self._subscriptions: List[Subscription] = []
        for prop in GEOMETRY_PROPERTIES:
            self._subscriptions.append(window_system.subscribe_geometry(window, prop, self._on_geometry_changed))
        self._subscriptions.append(window_system.subscribe_visibility(window, self._on_visibility_changed))

    @property
    def window(self) -> ManagedWindow | None:
        return self._window

    @property
    def attached(self) -> bool:
        return self._window is not None

    def detach(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                subscription.cancel()
            except Exception as exc:
                _LOGGER.debug("Failed to cancel window subscription: %s", exc)
        self._window = None

    def _on_geometry_changed(self, _value: object) -> None:
        window = self._window
        if window is None:
            return
        self._publish(self._capture(window))

    def _on_visibility_changed(self, showing: object) -> None:
        window = self._window
        if window is None or showing:
            return
        record = self._capture(window).with_open_status(False)
        _LOGGER.debug("Window hiding, saving %s", record)
        self._persist(record)
