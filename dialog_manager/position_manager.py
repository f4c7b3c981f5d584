"""Orchestrates which dialogs are tracked and where they reappear.

Window-system callbacks arrive on the host UI thread. A coarse re-entrant lock
still guards the tracked-window tables so hosts that deliver events from other
threads keep a consistent view; no operation here is performance sensitive.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from dialog_manager.dialog_state import DialogRecord, fallback_id
from dialog_manager.position_store import PositionStore
from dialog_manager.record_list import RecordList
from dialog_manager.screen_geometry import (
    ScreenInfo,
    center_on,
    describe_screens,
    is_sufficiently_visible,
    primary_screen,
    screen_for_rect,
    select_restore_screen,
)
from dialog_manager.settings import ManagerSettings
from dialog_manager.window_system import ManagedWindow, Subscription, WindowSystem
from dialog_manager.window_tracker import WindowTracker

_LOGGER = logging.getLogger("DialogManager.PositionManager")


class PlacementAction(str, Enum):
    RESTORE = "restore"
    RESTORE_SCALE_CHANGED = "restore_scale_changed"
    CENTER = "center"


@dataclass(frozen=True)
class Placement:
    action: PlacementAction
    screen: ScreenInfo
    x: float
    y: float
    width: float
    height: float
    position_valid: bool
    scale_changed: bool


def resolve_placement(screens: Sequence[ScreenInfo], saved: DialogRecord) -> Placement:
    """Validate ``saved`` against the current screens and choose where to put the window.

    A visible position is restored as-is whether or not the display scale
    changed; coordinates are in virtual units, so a scale change alone is only
    reported. Anything not sufficiently visible is centered on the restore
    screen using the saved size.
    """

    screen = select_restore_screen(screens, saved)
    position_valid = saved.has_valid_position() and is_sufficiently_visible(
        screens, saved.x, saved.y, saved.width, saved.height
    )
    scale_changed = saved.has_valid_scale_factors() and saved.has_scale_changed(screen.scale_x, screen.scale_y)
    if position_valid:
        action = PlacementAction.RESTORE_SCALE_CHANGED if scale_changed else PlacementAction.RESTORE
        return Placement(action, screen, saved.x, saved.y, saved.width, saved.height, True, scale_changed)
    x, y = center_on(screen, saved.width, saved.height)
    return Placement(PlacementAction.CENTER, screen, x, y, saved.width, saved.height, False, scale_changed)


class PendingState(str, Enum):
    AWAITING_TITLE = "awaiting_title"
    AWAITING_SHOW = "awaiting_show"
    TRACKED = "tracked"
    INELIGIBLE = "ineligible"


@dataclass(eq=False)
class PendingWindow:
    """A window seen by the manager but not yet tracked; holds one one-shot subscription."""

    window: ManagedWindow
    state: PendingState
    subscription: Optional[Subscription] = None
    saved: Optional[DialogRecord] = None

    def transition(self, state: PendingState) -> None:
        self.release()
        self.state = state

    def release(self) -> None:
        subscription, self.subscription = self.subscription, None
        if subscription is not None:
            subscription.cancel()


class DialogPositionManager:
    """Tracks host dialogs, restores saved placements and exposes management actions."""

    def __init__(
        self,
        window_system: WindowSystem,
        store: PositionStore,
        settings: Optional[ManagerSettings] = None,
    ) -> None:
        self._ws = window_system
        self._store = store
        self._settings = settings or ManagerSettings()
        self._lock = threading.RLock()
        self._tracked: Dict[ManagedWindow, WindowTracker] = {}
        self._pending: Dict[ManagedWindow, PendingWindow] = {}
        self._live_ids: Dict[ManagedWindow, str] = {}
        self._records = RecordList()
        self._main_window: Optional[ManagedWindow] = None
        self._window_subscription: Optional[Subscription] = None
        self._initialized = False

    # Lifecycle ------------------------------------------------------------

    def initialize(self, main_window: Optional[ManagedWindow] = None) -> None:
        with self._lock:
            if self._initialized:
                _LOGGER.warning("Dialog position manager already initialized")
                return
            self._initialized = True
            self._main_window = main_window
            _LOGGER.info("Screen configuration at startup:\n%s", self.screen_diagnostics())
            self._store.initialize()
            self._load_saved_records()
            self._window_subscription = self._ws.subscribe_windows(self._on_window_added, self._on_window_removed)
            for window in self._ws.windows():
                self._on_window_added(window)
            _LOGGER.info("Dialog position manager initialized, tracking %d windows", len(self._tracked))

    def shutdown(self) -> None:
        with self._lock:
            if not self._initialized:
                return
            self._initialized = False
            subscription, self._window_subscription = self._window_subscription, None
            if subscription is not None:
                subscription.cancel()
            for pending in list(self._pending.values()):
                pending.release()
            self._pending.clear()
            for window in list(self._tracked):
                self._stop_tracking(window)
            self._live_ids.clear()
            _LOGGER.info("Dialog position manager stopped")

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def records(self) -> RecordList:
        return self._records

    @property
    def settings(self) -> ManagerSettings:
        return self._settings

    def tracked_windows(self) -> List[ManagedWindow]:
        with self._lock:
            return list(self._tracked)

    def pending_state(self, window: ManagedWindow) -> Optional[PendingState]:
        with self._lock:
            if window in self._tracked:
                return PendingState.TRACKED
            pending = self._pending.get(window)
            return pending.state if pending is not None else None

    # Policy ---------------------------------------------------------------

    def set_track_all_windows(self, track_all: bool) -> None:
        with self._lock:
            self._settings.track_all_windows = bool(track_all)
            self._save_settings()
            _LOGGER.info("Track all windows: %s", bool(track_all))
            if track_all:
                self._reevaluate_open_windows()

    def add_targeted_title(self, title: str) -> None:
        token = (title or "").strip()
        if not token:
            return
        with self._lock:
            if token not in self._settings.targeted_titles:
                self._settings.targeted_titles.append(token)
                self._save_settings()
            _LOGGER.debug("Added targeted title: %s", token)
            self._reevaluate_open_windows()

    def remove_targeted_title(self, title: str) -> None:
        token = (title or "").strip()
        with self._lock:
            if token in self._settings.targeted_titles:
                self._settings.targeted_titles.remove(token)
                self._save_settings()
                _LOGGER.debug("Removed targeted title: %s", token)

    def add_excluded_id(self, window_id: str) -> None:
        token = (window_id or "").strip()
        if not token:
            return
        with self._lock:
            if token not in self._settings.excluded_ids:
                self._settings.excluded_ids.append(token)
                self._save_settings()

    def remove_excluded_id(self, window_id: str) -> None:
        token = (window_id or "").strip()
        with self._lock:
            if token in self._settings.excluded_ids:
                self._settings.excluded_ids.remove(token)
                self._save_settings()
                self._reevaluate_open_windows()

    def should_track(self, window: Optional[ManagedWindow]) -> bool:
        if window is None or window == self._main_window:
            return False
        if not window.is_top_level():
            return False
        if self.window_id(window) in self._settings.excluded_ids:
            return False
        if self._settings.track_all_windows:
            return True
        return (window.title() or "").strip() in self._settings.targeted_titles

    # Management operations ------------------------------------------------

    def center(self, window_id: str) -> bool:
        window = self._find_open_window(window_id)
        if window is None:
            _LOGGER.warning("Cannot center dialog - not currently open: %s", window_id)
            return False

        def _center() -> None:
            self._center_window(window, primary_screen(self._ws.screens()))
            _LOGGER.info("Centered dialog: %s", window_id)

        self._ws.post(_center)
        return True

    def bring_to_front(self, window_id: str) -> bool:
        window = self._find_open_window(window_id)
        if window is None:
            return False

        def _raise() -> None:
            window.raise_()
            window.request_focus()

        self._ws.post(_raise)
        return True

    def close(self, window_id: str) -> bool:
        window = self._find_open_window(window_id)
        if window is None:
            return False

        def _close() -> None:
            window.close()
            _LOGGER.info("Closed dialog: %s", window_id)

        self._ws.post(_close)
        return True

    def reset(self, window_id: str) -> None:
        with self._lock:
            self._store.remove(window_id)
            self._records.remove(window_id)
        _LOGGER.info("Reset dialog position to default: %s", window_id)

    def clear_all(self) -> None:
        with self._lock:
            self._store.clear_all()
            self._records.retain(lambda record: record.is_open)

    def recover_off_screen(self) -> int:
        """Center every open tracked dialog whose current geometry is not usefully visible."""

        recovered = 0
        with self._lock:
            live = [self.capture_record(window) for window in self._tracked]
        for record in live:
            if self.is_on_screen(record):
                continue
            if self.center(record.id):
                recovered += 1
                _LOGGER.info("Recovered off-screen dialog: %s", record.id)
        if recovered == 0:
            _LOGGER.info("No off-screen dialogs found")
        else:
            _LOGGER.info("Recovered %d off-screen dialog(s)", recovered)
        return recovered

    def is_on_screen(self, record: DialogRecord) -> bool:
        if not record.has_valid_position():
            return False
        return is_sufficiently_visible(self._ws.screens(), record.x, record.y, record.width, record.height)

    def screen_diagnostics(self) -> str:
        return describe_screens(self._ws.screens())

    # Identity and capture -------------------------------------------------

    def window_id(self, window: ManagedWindow) -> str:
        title = (window.title() or "").strip()
        if title:
            return title
        return fallback_id(window.kind(), window.identity())

    def capture_record(self, window: ManagedWindow) -> DialogRecord:
        x, y, width, height = window.geometry()
        screens = self._ws.screens()
        screen = screen_for_rect(screens, x, y, width, height)
        if screen is None:
            screen_index = 0
            scale = primary_screen(screens)
        else:
            screen_index = screen.index
            scale = screen
        window_id = self.window_id(window)
        title = (window.title() or "").strip() or window_id
        return DialogRecord(
            id=window_id,
            title=title,
            x=float(x),
            y=float(y),
            width=float(width),
            height=float(height),
            modality=window.modality(),
            is_open=window.is_showing(),
            screen_index=screen_index,
            scale_x=scale.scale_x,
            scale_y=scale.scale_y,
        )

    # Window-system callbacks ----------------------------------------------

    def _on_window_added(self, window: ManagedWindow) -> None:
        with self._lock:
            if window is None or window == self._main_window:
                return
            if not window.is_top_level():
                _LOGGER.debug("Ignoring non top-level window: %s", window.kind())
                return
            if window in self._tracked or window in self._pending:
                return
            title = (window.title() or "").strip()
            _LOGGER.debug("Window added: %r (showing=%s)", title, window.is_showing())
            if not title:
                _LOGGER.debug("Window has no title yet, waiting for one")
                pending = PendingWindow(window, PendingState.AWAITING_TITLE)
                self._pending[window] = pending
                pending.subscription = self._ws.subscribe_title(
                    window, lambda value, p=pending: self._on_pending_title(p, value)
                )
                return
            if self.should_track(window):
                _LOGGER.info("Tracking window: %r", title)
                self._process_new_window(window)
            else:
                _LOGGER.debug("Window %r not tracked (excluded or not targeted)", title)

    def _on_pending_title(self, pending: PendingWindow, value: object) -> None:
        with self._lock:
            if pending.state is not PendingState.AWAITING_TITLE:
                return
            title = str(value or "").strip()
            if not title:
                return
            _LOGGER.debug("Window title set to: %r", title)
            self._pending.pop(pending.window, None)
            if self.should_track(pending.window):
                pending.transition(PendingState.TRACKED)
                _LOGGER.info("Now tracking window: %r", title)
                self._process_new_window(pending.window)
            else:
                pending.transition(PendingState.INELIGIBLE)
                _LOGGER.debug("Window %r not tracked once titled", title)

    def _process_new_window(self, window: ManagedWindow) -> None:
        """Restore-then-validate-then-correct for a newly eligible window."""

        if window in self._tracked or window in self._pending:
            return
        window_id = self.window_id(window)
        saved = self._store.load_all().get(window_id)
        if saved is not None:
            _LOGGER.info("Found saved position for %r: (%.0f, %.0f)", window_id, saved.x, saved.y)
        else:
            _LOGGER.debug("No saved position for %r", window_id)

        if window.is_showing():
            if saved is not None:
                _LOGGER.info("Restoring position for %r (window already showing)", window_id)
                self._restore_with_validation(window, saved)
            self._start_tracking(window)
            return

        if saved is not None:
            _LOGGER.info("Pre-setting position for %r before show", window_id)
            self._restore_with_validation(window, saved)
        pending = PendingWindow(window, PendingState.AWAITING_SHOW, saved=saved)
        self._pending[window] = pending
        pending.subscription = self._ws.subscribe_visibility(
            window, lambda showing, p=pending: self._on_pending_shown(p, showing)
        )

    def _on_pending_shown(self, pending: PendingWindow, showing: object) -> None:
        with self._lock:
            if not showing or pending.state is not PendingState.AWAITING_SHOW:
                return
            self._pending.pop(pending.window, None)
            pending.transition(PendingState.TRACKED)
            window = pending.window
            saved = pending.saved
            if saved is not None:
                # Some dialogs re-center themselves right after showing; apply again afterwards.
                _LOGGER.debug("Re-applying position for %r after show", saved.id)
                self._ws.post(lambda: self._reapply(window, saved))
            self._start_tracking(window)

    def _reapply(self, window: ManagedWindow, saved: DialogRecord) -> None:
        with self._lock:
            if window not in self._tracked:
                return
            self._restore_with_validation(window, saved)

    def _on_window_removed(self, window: ManagedWindow) -> None:
        with self._lock:
            pending = self._pending.pop(window, None)
            if pending is not None:
                pending.release()
                _LOGGER.debug("Pending window removed before tracking (%s)", pending.state.value)
            if window in self._tracked:
                self._stop_tracking(window)

    # Tracking -------------------------------------------------------------

    def _start_tracking(self, window: ManagedWindow) -> None:
        if window in self._tracked:
            return
        tracker = WindowTracker(
            self._ws,
            window,
            capture_fn=self.capture_record,
            publish_fn=lambda record, w=window: self._publish(w, record),
            persist_fn=self._persist,
        )
        self._tracked[window] = tracker
        _LOGGER.debug("Started tracking window: %s", self.window_id(window))
        self._publish(window, self.capture_record(window).with_open_status(True))

    def _stop_tracking(self, window: ManagedWindow) -> None:
        tracker = self._tracked.pop(window, None)
        if tracker is None:
            return
        tracker.detach()
        try:
            final = self._final_record(window)
            if final is None:
                return
            self._persist(final)
            self._publish(window, final)
            _LOGGER.debug("Window removed and state saved: %s", final.id)
        finally:
            self._live_ids.pop(window, None)

    def _final_record(self, window: ManagedWindow) -> Optional[DialogRecord]:
        try:
            return self.capture_record(window).with_open_status(False)
        except RuntimeError as exc:
            # The native window is already gone; fall back to the last published state.
            last_id = self._live_ids.get(window)
            last = self._records.get(last_id) if last_id is not None else None
            if last is None:
                _LOGGER.warning("Window removed before its final state could be read: %s", exc)
                return None
            _LOGGER.debug("Window %s destroyed before removal, saving last known geometry", last.id)
            return last.with_open_status(False)

    def _publish(self, window: ManagedWindow, record: DialogRecord) -> None:
        with self._lock:
            previous = self._live_ids.get(window)
            if previous is not None and previous != record.id:
                stale = self._records.get(previous)
                if stale is not None and stale.is_open:
                    self._records.remove(previous)
            if record.is_fallback and not record.is_open:
                self._records.remove(record.id)
                self._live_ids.pop(window, None)
                return
            self._live_ids[window] = record.id
            self._records.upsert(record)

    def _persist(self, record: DialogRecord) -> None:
        try:
            self._store.save(record)
        except Exception as exc:
            _LOGGER.error("Failed to persist position for %s: %s", record.id, exc, exc_info=exc)

    # Placement ------------------------------------------------------------

    def _restore_with_validation(self, window: ManagedWindow, saved: DialogRecord) -> Placement:
        screens = self._ws.screens()
        placement = resolve_placement(screens, saved)
        if placement.scale_changed:
            _LOGGER.debug(
                "Scale factor changed for %s: saved=%.2fx%.2f, current=%.2fx%.2f",
                saved.id,
                saved.scale_x,
                saved.scale_y,
                placement.screen.scale_x,
                placement.screen.scale_y,
            )
        if placement.action is PlacementAction.CENTER:
            _LOGGER.info(
                "Saved position for %s is invalid or off-screen, centering on %s",
                saved.id,
                "primary screen" if placement.screen.primary else "available screen",
            )
            window.move(placement.x, placement.y)
            return placement
        self._apply_saved_geometry(window, saved)
        if placement.action is PlacementAction.RESTORE_SCALE_CHANGED:
            _LOGGER.info("Restored %s with scale change (position still valid)", saved.id)
        else:
            _LOGGER.debug("Restored position for: %s", saved.id)
        return placement

    def _apply_saved_geometry(self, window: ManagedWindow, saved: DialogRecord) -> None:
        if saved.has_valid_position():
            window.move(saved.x, saved.y)
        if saved.has_valid_size() and window.is_resizable():
            window.resize(saved.width, saved.height)

    def _center_window(self, window: ManagedWindow, screen: ScreenInfo) -> Tuple[float, float]:
        _, _, width, height = window.geometry()
        x, y = center_on(screen, width, height)
        window.move(x, y)
        return x, y

    # Helpers --------------------------------------------------------------

    def _find_open_window(self, window_id: str) -> Optional[ManagedWindow]:
        with self._lock:
            for window in self._tracked:
                if self.window_id(window) == window_id:
                    return window
        return None

    def _reevaluate_open_windows(self) -> None:
        if not self._initialized:
            return
        for window in self._ws.windows():
            self._on_window_added(window)

    def _load_saved_records(self) -> None:
        saved = self._store.load_all()
        for record in saved.values():
            self._records.upsert(record.with_open_status(False))
        _LOGGER.debug("Loaded %d saved dialog states", len(saved))

    def _save_settings(self) -> None:
        try:
            self._settings.save()
        except OSError as exc:
            _LOGGER.warning("Failed to save dialog manager settings: %s", exc)
