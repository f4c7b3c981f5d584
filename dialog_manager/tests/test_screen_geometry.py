from __future__ import annotations

import math

import pytest

from dialog_manager.dialog_state import DialogRecord
from dialog_manager.screen_geometry import (
    FALLBACK_HEIGHT,
    FALLBACK_WIDTH,
    SYNTHETIC_PRIMARY,
    ScreenInfo,
    center_on,
    describe_screens,
    is_sufficiently_visible,
    primary_screen,
    screen_for_rect,
    select_restore_screen,
)

PRIMARY = ScreenInfo(index=0, bounds=(0.0, 0.0, 1920.0, 1080.0), primary=True)
RIGHT = ScreenInfo(index=1, bounds=(1920.0, 0.0, 2560.0, 1440.0), scale_x=1.5, scale_y=1.5)
LEFT = ScreenInfo(index=2, bounds=(-1280.0, 0.0, 1280.0, 1024.0))


def _record(x: float, y: float, width: float = 400.0, height: float = 300.0, screen_index: int = 0) -> DialogRecord:
    return DialogRecord(id="Log", title="Log", x=x, y=y, width=width, height=height, screen_index=screen_index)


@pytest.mark.parametrize(
    "rect,expected",
    [
        ((100.0, 100.0, 400.0, 300.0), True),
        ((1820.0, 100.0, 400.0, 300.0), True),  # exactly 100 visible on x
        ((1821.0, 100.0, 400.0, 300.0), False),
        ((-300.0, 980.0, 400.0, 300.0), True),
        ((-301.0, 100.0, 400.0, 300.0), False),
        ((100.0, 981.0, 400.0, 300.0), False),
        ((5000.0, 5000.0, 400.0, 300.0), False),
        ((100.0, 100.0, 50.0, 300.0), False),  # narrower than the threshold
        ((math.nan, 100.0, 400.0, 300.0), False),
        ((100.0, 100.0, math.inf, 300.0), False),
    ],
)
def test_visibility_requires_threshold_on_both_axes(rect, expected):
    assert is_sufficiently_visible([PRIMARY], *rect) is expected


def test_visibility_is_per_screen_not_summed():
    screens = [PRIMARY, RIGHT]

    # 60 px on each side of the seam: 120 in total but neither screen shows 100.
    assert not is_sufficiently_visible(screens, 1860.0, 100.0, 120.0, 300.0)
    assert is_sufficiently_visible(screens, 1860.0, 100.0, 400.0, 300.0)
    assert not is_sufficiently_visible([], 100.0, 100.0, 400.0, 300.0)


def test_threshold_can_be_overridden():
    assert is_sufficiently_visible([PRIMARY], 1900.0, 10.0, 400.0, 300.0, min_visible=20.0)
    assert not is_sufficiently_visible([PRIMARY], 1900.0, 10.0, 400.0, 300.0)


def test_contains_is_half_open():
    assert PRIMARY.contains(0.0, 0.0)
    assert PRIMARY.contains(1919.5, 1079.0)
    assert not PRIMARY.contains(1920.0, 10.0)
    assert RIGHT.contains(1920.0, 10.0)
    assert not PRIMARY.intersects(100.0, 100.0, 0.0, 300.0)


def test_primary_screen_selection():
    assert primary_screen([RIGHT, PRIMARY]) is PRIMARY
    assert primary_screen([RIGHT, LEFT]) is RIGHT
    assert primary_screen([]) is SYNTHETIC_PRIMARY


def test_restore_screen_prefers_saved_index_when_it_still_fits():
    screens = [PRIMARY, RIGHT, LEFT]

    assert select_restore_screen(screens, _record(2000.0, 100.0, screen_index=1)) is RIGHT
    # Saved index points at a screen that no longer holds the rect.
    assert select_restore_screen(screens, _record(-1000.0, 100.0, screen_index=1)) is LEFT


def test_restore_screen_falls_back_through_overlap_to_primary():
    screens = [PRIMARY, RIGHT]

    # Corner above every screen, rect still reaches into RIGHT.
    assert select_restore_screen(screens, _record(2000.0, -200.0, screen_index=5)) is RIGHT
    assert select_restore_screen(screens, _record(4400.0, 100.0)) is RIGHT
    assert select_restore_screen(screens, _record(9000.0, 9000.0, screen_index=1)) is PRIMARY


@pytest.mark.parametrize("index", [-1, 3, 99])
def test_restore_screen_tolerates_out_of_range_indexes(index):
    screens = [PRIMARY, RIGHT]

    assert select_restore_screen(screens, _record(100.0, 100.0, screen_index=index)) is PRIMARY
    assert select_restore_screen(screens, _record(9000.0, 9000.0, screen_index=index)) is PRIMARY


def test_restore_screen_without_screens_uses_synthetic_primary():
    assert select_restore_screen([], _record(100.0, 100.0, screen_index=2)) is SYNTHETIC_PRIMARY


def test_screen_for_rect_picks_largest_overlap():
    screens = [PRIMARY, RIGHT]

    assert screen_for_rect(screens, 1800.0, 100.0, 400.0, 300.0) is RIGHT
    assert screen_for_rect(screens, 1700.0, 100.0, 400.0, 300.0) is PRIMARY
    assert screen_for_rect(screens, 9000.0, 9000.0, 400.0, 300.0) is None


def test_center_uses_screen_origin_and_size():
    assert center_on(PRIMARY, 600.0, 400.0) == (660.0, 340.0)
    assert center_on(RIGHT, 560.0, 440.0) == (1920.0 + 1000.0, 500.0)


def test_center_uses_fallback_dimensions_for_invalid_size():
    expected = ((1920.0 - FALLBACK_WIDTH) / 2.0, (1080.0 - FALLBACK_HEIGHT) / 2.0)

    assert center_on(PRIMARY, 0.0, -1.0) == expected
    assert center_on(PRIMARY, math.nan, math.inf) == expected


def test_describe_screens_lists_every_screen():
    text = describe_screens([PRIMARY, RIGHT])
    lines = text.splitlines()

    assert lines[0] == "Detected 2 screen(s):"
    assert lines[1] == "  Screen 0: 1920x1080 at (0,0) scale=1.00x1.00 [PRIMARY]"
    assert lines[2] == "  Screen 1: 2560x1440 at (1920,0) scale=1.50x1.50"
