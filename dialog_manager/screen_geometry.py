"""Screen topology helpers: visibility overlap, restore-screen choice and centering."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from dialog_manager.dialog_state import DialogRecord

Bounds = Tuple[float, float, float, float]

MIN_VISIBLE_PIXELS = 100.0
FALLBACK_WIDTH = 400.0
FALLBACK_HEIGHT = 300.0


@dataclass(frozen=True)
class ScreenInfo:
    """A connected screen. ``bounds`` are the usable (visual) bounds as x, y, w, h."""

    index: int
    bounds: Bounds
    scale_x: float = 1.0
    scale_y: float = 1.0
    primary: bool = False
    name: str = ""

    @property
    def min_x(self) -> float:
        return self.bounds[0]

    @property
    def min_y(self) -> float:
        return self.bounds[1]

    @property
    def max_x(self) -> float:
        return self.bounds[0] + self.bounds[2]

    @property
    def max_y(self) -> float:
        return self.bounds[1] + self.bounds[3]

    def contains(self, x: float, y: float) -> bool:
        return self.min_x <= x < self.max_x and self.min_y <= y < self.max_y

    def intersects(self, x: float, y: float, width: float, height: float) -> bool:
        if width <= 0 or height <= 0:
            return False
        return x < self.max_x and x + width > self.min_x and y < self.max_y and y + height > self.min_y


# Used whenever the host reports no screens at all, so selection never fails.
SYNTHETIC_PRIMARY = ScreenInfo(index=0, bounds=(0.0, 0.0, 1920.0, 1080.0), primary=True, name="synthetic")


def _overlap(screen: ScreenInfo, x: float, y: float, width: float, height: float) -> Tuple[float, float]:
    overlap_w = min(x + width, screen.max_x) - max(x, screen.min_x)
    overlap_h = min(y + height, screen.max_y) - max(y, screen.min_y)
    return overlap_w, overlap_h


def is_sufficiently_visible(
    screens: Sequence[ScreenInfo],
    x: float,
    y: float,
    width: float,
    height: float,
    *,
    min_visible: float = MIN_VISIBLE_PIXELS,
) -> bool:
    """True when some screen shows at least ``min_visible`` units of the rect on both axes."""

    values = (x, y, width, height)
    if not all(math.isfinite(value) for value in values):
        return False
    for screen in screens:
        overlap_w, overlap_h = _overlap(screen, x, y, width, height)
        if overlap_w >= min_visible and overlap_h >= min_visible:
            return True
    return False


def primary_screen(screens: Sequence[ScreenInfo]) -> ScreenInfo:
    for screen in screens:
        if screen.primary:
            return screen
    if screens:
        return screens[0]
    return SYNTHETIC_PRIMARY


def select_restore_screen(screens: Sequence[ScreenInfo], record: DialogRecord) -> ScreenInfo:
    """Pick the screen a saved record should be restored onto.

    Preference order: the saved screen index when that screen still holds the
    saved corner or overlaps the saved rect, then the first screen containing the
    corner, then the first screen overlapping the rect, then the primary screen.
    """

    x, y, width, height = record.x, record.y, record.width, record.height
    index = record.screen_index
    if 0 <= index < len(screens):
        saved = screens[index]
        if saved.contains(x, y) or saved.intersects(x, y, width, height):
            return saved
    for screen in screens:
        if screen.contains(x, y):
            return screen
    for screen in screens:
        if screen.intersects(x, y, width, height):
            return screen
    return primary_screen(screens)


def screen_for_rect(
    screens: Sequence[ScreenInfo],
    x: float,
    y: float,
    width: float,
    height: float,
) -> Optional[ScreenInfo]:
    """Return the screen with the largest overlap area, or None when nothing overlaps."""

    best: Optional[ScreenInfo] = None
    best_area = 0.0
    for screen in screens:
        overlap_w, overlap_h = _overlap(screen, x, y, width, height)
        area = max(0.0, overlap_w) * max(0.0, overlap_h)
        if area > best_area:
            best_area = area
            best = screen
    return best


def center_on(screen: ScreenInfo, width: float, height: float) -> Tuple[float, float]:
    if not math.isfinite(width) or width <= 0:
        width = FALLBACK_WIDTH
    if not math.isfinite(height) or height <= 0:
        height = FALLBACK_HEIGHT
    _, _, screen_w, screen_h = screen.bounds
    return (
        screen.min_x + (screen_w - width) / 2.0,
        screen.min_y + (screen_h - height) / 2.0,
    )


def describe_screens(screens: Sequence[ScreenInfo]) -> str:
    lines = [f"Detected {len(screens)} screen(s):"]
    for position, screen in enumerate(screens):
        x, y, width, height = screen.bounds
        lines.append(
            "  Screen %d: %.0fx%.0f at (%.0f,%.0f) scale=%.2fx%.2f%s"
            % (
                position,
                width,
                height,
                x,
                y,
                screen.scale_x,
                screen.scale_y,
                " [PRIMARY]" if screen.primary else "",
            )
        )
    return "\n".join(lines)
