"""PyQt6 implementation of the window-system contract.

Qt has no window-list signal, so one application-wide event filter watches
top-level widgets: Polish (first construction) or Show marks a window added,
a non-spontaneous Hide or DeferredDelete marks it removed, and
Move/Resize/WindowTitleChange feed the per-window listeners. DeferredDelete is
delivered while the widget is still intact, so removal listeners can read its
final geometry.
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple

from PyQt6.QtCore import QEvent, QObject, Qt, QTimer
from PyQt6.QtGui import QGuiApplication
from PyQt6.QtWidgets import QApplication, QWidget

from dialog_manager.dialog_state import Modality
from dialog_manager.screen_geometry import ScreenInfo
from dialog_manager.window_system import (
    CallbackSubscription,
    Geometry,
    ValueCallback,
    WindowCallback,
)

_LOGGER = logging.getLogger("DialogManager.Qt")

_TRANSIENT_TYPES = (
    Qt.WindowType.Popup,
    Qt.WindowType.ToolTip,
    Qt.WindowType.SplashScreen,
    Qt.WindowType.Desktop,
)

_MODALITY_MAP = {
    Qt.WindowModality.NonModal: Modality.NONE,
    Qt.WindowModality.WindowModal: Modality.WINDOW_MODAL,
    Qt.WindowModality.ApplicationModal: Modality.APPLICATION_MODAL,
}

_QWIDGETSIZE_MAX = (1 << 24) - 1


class QtWindow:
    """Identity-hashed handle around a top-level QWidget."""

    __slots__ = ("_widget",)

    def __init__(self, widget: QWidget) -> None:
        self._widget = widget

    def __eq__(self, other: object) -> bool:
        return isinstance(other, QtWindow) and other._widget is self._widget

    def __hash__(self) -> int:
        return hash(id(self._widget))

    def __repr__(self) -> str:
        return f"QtWindow({self.kind()}, {self._widget.windowTitle()!r})"

    @property
    def widget(self) -> QWidget:
        return self._widget

    def title(self) -> str:
        return self._widget.windowTitle() or ""

    def kind(self) -> str:
        return type(self._widget).__name__

    def identity(self) -> int:
        return id(self._widget)

    def geometry(self) -> Geometry:
        widget = self._widget
        return float(widget.x()), float(widget.y()), float(widget.width()), float(widget.height())

    def move(self, x: float, y: float) -> None:
        self._widget.move(int(round(x)), int(round(y)))

    def resize(self, width: float, height: float) -> None:
        self._widget.resize(int(round(width)), int(round(height)))

    def modality(self) -> Modality:
        return _MODALITY_MAP.get(self._widget.windowModality(), Modality.NONE)

    def is_showing(self) -> bool:
        return bool(self._widget.isVisible())

    def is_resizable(self) -> bool:
        widget = self._widget
        if widget.minimumSize() == widget.maximumSize():
            return False
        return widget.maximumWidth() > 0 and widget.maximumHeight() > 0

    def is_top_level(self) -> bool:
        widget = self._widget
        if not widget.isWindow():
            return False
        return widget.windowType() not in _TRANSIENT_TYPES

    def close(self) -> None:
        self._widget.close()

    def raise_(self) -> None:
        self._widget.raise_()

    def request_focus(self) -> None:
        self._widget.activateWindow()


class QtWindowSystem(QObject):
    """Window system backed by the running QApplication."""

    def __init__(self, app: Optional[QApplication] = None) -> None:
        super().__init__()
        self._app = app
        self._installed = False
        self._wrappers: Dict[int, QtWindow] = {}
        self._known: set[int] = set()
        self._destroy_hooks: Dict[int, Tuple[QWidget, Callable[..., None]]] = {}
        self._window_listeners: List[Tuple[WindowCallback, WindowCallback]] = []
        self._listeners: Dict[Tuple[int, str], List[ValueCallback]] = {}

    # Lifecycle ------------------------------------------------------------

    def start(self) -> None:
        if self._installed:
            return
        app = self._app or QApplication.instance()
        if app is None:
            raise RuntimeError("QApplication must exist before starting the window system")
        self._app = app
        app.installEventFilter(self)
        self._installed = True
        for widget in QApplication.topLevelWidgets():
            if widget.isVisible():
                self._known.add(id(widget))

    def stop(self) -> None:
        if not self._installed or self._app is None:
            return
        self._app.removeEventFilter(self)
        self._installed = False
        self._window_listeners.clear()
        self._listeners.clear()
        for key in list(self._destroy_hooks):
            self._release_destroy_hook(key)
        self._wrappers.clear()
        self._known.clear()

    def wrap(self, widget: QWidget) -> QtWindow:
        key = id(widget)
        wrapper = self._wrappers.get(key)
        if wrapper is None or wrapper.widget is not widget:
            self._release_destroy_hook(key)
            wrapper = QtWindow(widget)
            self._wrappers[key] = wrapper
            hook = partial(self._on_destroyed, key)
            widget.destroyed.connect(hook)
            self._destroy_hooks[key] = (widget, hook)
        return wrapper

    # WindowSystem ---------------------------------------------------------

    def screens(self) -> List[ScreenInfo]:
        primary = QGuiApplication.primaryScreen()
        result: List[ScreenInfo] = []
        for index, screen in enumerate(QGuiApplication.screens()):
            rect = screen.availableGeometry()
            ratio = float(screen.devicePixelRatio() or 1.0)
            result.append(
                ScreenInfo(
                    index=index,
                    bounds=(float(rect.x()), float(rect.y()), float(rect.width()), float(rect.height())),
                    scale_x=ratio,
                    scale_y=ratio,
                    primary=screen is primary,
                    name=screen.name(),
                )
            )
        return result

    def windows(self) -> List[QtWindow]:
        return [self.wrap(widget) for widget in QApplication.topLevelWidgets() if widget.isWindow() and widget.isVisible()]

    def subscribe_windows(self, on_added: WindowCallback, on_removed: WindowCallback) -> CallbackSubscription:
        entry = (on_added, on_removed)
        self._window_listeners.append(entry)
        return CallbackSubscription(lambda: self._discard(self._window_listeners, entry))

    def subscribe_geometry(self, window: QtWindow, prop: str, callback: ValueCallback) -> CallbackSubscription:
        return self._subscribe(window, prop, callback)

    def subscribe_visibility(self, window: QtWindow, callback: ValueCallback) -> CallbackSubscription:
        return self._subscribe(window, "visible", callback)

    def subscribe_title(self, window: QtWindow, callback: ValueCallback) -> CallbackSubscription:
        return self._subscribe(window, "title", callback)

    def post(self, callback: Callable[[], None]) -> None:
        def _run() -> None:
            try:
                callback()
            except Exception as exc:
                _LOGGER.warning("Deferred window task failed: %s", exc, exc_info=exc)

        QTimer.singleShot(0, _run)

    # Event filter ---------------------------------------------------------

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:  # noqa: N802 - Qt override
        if not isinstance(obj, QWidget) or not obj.isWindow():
            return False
        event_type = event.type()
        key = id(obj)
        if event_type == QEvent.Type.Polish:
            if key not in self._known:
                self._known.add(key)
                self._emit_window(obj, added=True)
        elif event_type == QEvent.Type.Show:
            if key not in self._known:
                self._known.add(key)
                self._emit_window(obj, added=True)
            self._emit(key, "visible", True)
        elif event_type == QEvent.Type.Hide and not event.spontaneous():
            self._emit(key, "visible", False)
            if key in self._known:
                self._known.discard(key)
                self._emit_window(obj, added=False)
        elif event_type == QEvent.Type.DeferredDelete:
            if key in self._known:
                self._known.discard(key)
                self._emit_window(obj, added=False)
        elif event_type == QEvent.Type.Move:
            self._emit(key, "x", obj.x())
            self._emit(key, "y", obj.y())
        elif event_type == QEvent.Type.Resize:
            self._emit(key, "width", obj.width())
            self._emit(key, "height", obj.height())
        elif event_type == QEvent.Type.WindowTitleChange:
            self._emit(key, "title", obj.windowTitle())
        return False

    # Helpers --------------------------------------------------------------

    def _subscribe(self, window: QtWindow, channel: str, callback: ValueCallback) -> CallbackSubscription:
        bucket = self._listeners.setdefault((window.identity(), channel), [])
        bucket.append(callback)
        return CallbackSubscription(lambda: self._discard(bucket, callback))

    @staticmethod
    def _discard(bucket: list, item: object) -> None:
        try:
            bucket.remove(item)
        except ValueError:
            pass

    def _emit(self, key: int, channel: str, value: object) -> None:
        for callback in list(self._listeners.get((key, channel), ())):
            try:
                callback(value)
            except Exception as exc:
                _LOGGER.warning("Window %s listener failed: %s", channel, exc, exc_info=exc)

    def _emit_window(self, widget: QWidget, *, added: bool) -> None:
        wrapper = self.wrap(widget)
        for on_added, on_removed in list(self._window_listeners):
            try:
                (on_added if added else on_removed)(wrapper)
            except Exception as exc:
                _LOGGER.warning("Window %s listener failed: %s", "added" if added else "removed", exc, exc_info=exc)

    def _release_destroy_hook(self, key: int) -> None:
        entry = self._destroy_hooks.pop(key, None)
        if entry is None:
            return
        widget, hook = entry
        try:
            widget.destroyed.disconnect(hook)
        except (TypeError, RuntimeError):
            # Already disconnected, or the widget is gone.
            pass

    def _on_destroyed(self, key: int, _obj: Optional[QObject] = None) -> None:
        self._destroy_hooks.pop(key, None)
        if not self._installed:
            return
        wrapper = self._wrappers.pop(key, None)
        if wrapper is not None and key in self._known:
            self._known.discard(key)
            # Destroyed without a Hide or DeferredDelete, e.g. with its parent.
            for _on_added, on_removed in list(self._window_listeners):
                try:
                    on_removed(wrapper)
                except Exception as exc:
                    _LOGGER.warning("Removal of destroyed window failed: %s", exc, exc_info=exc)
        self._known.discard(key)
        for listener_key in [k for k in self._listeners if k[0] == key]:
            self._listeners.pop(listener_key, None)
