from __future__ import annotations

import math

import pytest

from dialog_manager.dialog_state import DialogRecord, Modality, fallback_id, is_fallback_id


def _record(**overrides) -> DialogRecord:
    values = dict(id="Log", title="Log", x=100.0, y=50.0, width=600.0, height=400.0)
    values.update(overrides)
    return DialogRecord(**values)


def test_records_compare_by_id_only():
    first = _record()
    moved = first.with_position(900.0, 700.0)

    assert first == moved
    assert hash(first) == hash(moved)
    assert first != _record(id="Script editor")
    assert len({first, moved}) == 1


def test_copy_helpers_leave_original_untouched():
    original = _record()

    changed = (
        original.with_size(800.0, 500.0)
        .with_open_status(True)
        .with_screen_index(2)
        .with_scale_factors(1.5, 1.5)
    )

    assert (changed.width, changed.height) == (800.0, 500.0)
    assert changed.is_open is True
    assert changed.screen_index == 2
    assert (changed.scale_x, changed.scale_y) == (1.5, 1.5)
    assert original.is_open is False
    assert original.width == 600.0


@pytest.mark.parametrize(
    "x,y,expected",
    [
        (0.0, 0.0, True),
        (-10000.0, -10000.0, True),
        (-1920.0, 200.0, True),
        (-10000.5, 0.0, False),
        (0.0, -20000.0, False),
        (math.nan, 0.0, False),
        (0.0, math.inf, False),
    ],
)
def test_position_validity(x, y, expected):
    assert _record(x=x, y=y).has_valid_position() is expected


def test_size_and_scale_validity():
    assert _record().has_valid_size()
    assert not _record(width=0.0).has_valid_size()
    assert not _record(height=-5.0).has_valid_size()
    assert not _record(width=math.nan).has_valid_size()

    assert _record().has_valid_scale_factors()
    assert not _record(scale_x=0.0).has_valid_scale_factors()
    assert not _record(scale_y=math.inf).has_valid_scale_factors()


def test_scale_change_uses_tolerance():
    record = _record(scale_x=1.25, scale_y=1.25)

    assert not record.has_scale_changed(1.255, 1.245)
    assert record.has_scale_changed(1.5, 1.25)
    assert record.has_scale_changed(1.25, 1.0)


def test_modality_parse_falls_back_to_none():
    assert Modality.parse("window_modal") is Modality.WINDOW_MODAL
    assert Modality.parse("APPLICATION_MODAL") is Modality.APPLICATION_MODAL
    assert Modality.parse("sideways") is Modality.NONE
    assert Modality.parse(None) is Modality.NONE
    assert _record(modality=Modality.WINDOW_MODAL).is_modal()
    assert not _record().is_modal()


def test_fallback_ids_are_recognised():
    generated = fallback_id("QDialog", 140234)

    assert generated == "QDialog@140234"
    assert is_fallback_id(generated)
    assert is_fallback_id("PyQt6.QtWidgets.QDialog@77")
    assert fallback_id("", 5) == "Window@5"
    assert is_fallback_id("@12345")
    assert not is_fallback_id("Brightness & Contrast")
    assert not is_fallback_id("user@example")
    assert not is_fallback_id(None)
    assert _record(id=generated).is_fallback


def test_str_mentions_open_flag():
    text = str(_record(is_open=True))

    assert "Log" in text
    assert "OPEN" in text
    assert "600x400" in text
