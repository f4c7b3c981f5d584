"""Host window-system contract consumed by the position manager.

The manager and tracker stay free of toolkit types; a host binding (see
``dialog_manager_qt``) implements these protocols with thin adapters.
"""
from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Tuple

from dialog_manager.dialog_state import Modality
from dialog_manager.screen_geometry import ScreenInfo

Geometry = Tuple[float, float, float, float]
GeometryProperty = str  # one of GEOMETRY_PROPERTIES

GEOMETRY_PROPERTIES: Tuple[str, ...] = ("x", "y", "width", "height")

WindowCallback = Callable[["ManagedWindow"], None]
ValueCallback = Callable[[object], None]


class Subscription(Protocol):
    def cancel(self) -> None:
        ...


class ManagedWindow(Protocol):
    """A live host window. Implementations must hash/compare by window identity."""

    def title(self) -> str:
        ...

    def kind(self) -> str:
        """Short class name used for fallback ids."""

    def identity(self) -> int:
        ...

    def geometry(self) -> Geometry:
        ...

    def move(self, x: float, y: float) -> None:
        ...

    def resize(self, width: float, height: float) -> None:
        ...

    def modality(self) -> Modality:
        ...

    def is_showing(self) -> bool:
        ...

    def is_resizable(self) -> bool:
        ...

    def is_top_level(self) -> bool:
        """False for popups, tooltips and other transient window classes."""

    def close(self) -> None:
        ...

    def raise_(self) -> None:
        ...

    def request_focus(self) -> None:
        ...


class WindowSystem(Protocol):
    def screens(self) -> List[ScreenInfo]:
        ...

    def windows(self) -> List[ManagedWindow]:
        ...

    def subscribe_windows(self, on_added: WindowCallback, on_removed: WindowCallback) -> Subscription:
        ...

    def subscribe_geometry(
        self,
        window: ManagedWindow,
        prop: GeometryProperty,
        callback: ValueCallback,
    ) -> Subscription:
        ...

    def subscribe_visibility(self, window: ManagedWindow, callback: ValueCallback) -> Subscription:
        ...

    def subscribe_title(self, window: ManagedWindow, callback: ValueCallback) -> Subscription:
        ...

    def post(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on the UI thread after the current event cycle."""


class CallbackSubscription:
    """Subscription that runs a release callback exactly once."""

    def __init__(self, release: Optional[Callable[[], None]]) -> None:
        self._release = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def cancel(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()
