"""Saved dialog state: position, size and the display context it was captured in."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from enum import Enum

# Anything above this is treated as a real coordinate; placeholder values from
# uninitialised windows sit far below it.
MIN_VALID_COORDINATE = -10000.0
SCALE_CHANGE_TOLERANCE = 0.01

_FALLBACK_ID_PATTERN = re.compile(r"^(?:[A-Za-z_][\w.]*)?@\d+$")


class Modality(str, Enum):
    NONE = "NONE"
    WINDOW_MODAL = "WINDOW_MODAL"
    APPLICATION_MODAL = "APPLICATION_MODAL"

    @classmethod
    def parse(cls, value: object) -> "Modality":
        token = str(value or "").strip().upper()
        try:
            return cls(token)
        except ValueError:
            return cls.NONE


def fallback_id(kind: str, identity: int) -> str:
    """Process-local id for a window whose title never resolved."""

    return f"{kind or 'Window'}@{int(identity)}"


def is_fallback_id(window_id: object) -> bool:
    if not isinstance(window_id, str):
        return False
    return bool(_FALLBACK_ID_PATTERN.match(window_id))


@dataclass(frozen=True, eq=False)
class DialogRecord:
    """Geometry of a dialog in virtual (DPI-independent) desktop units.

    ``scale_x``/``scale_y`` record the output scale of the screen the dialog was
    on when captured, so a later restore can notice display-scale changes.
    ``screen_index`` is advisory only; monitor ordering is not stable between
    sessions. Records compare equal when their ids match.
    """

    id: str
    title: str
    x: float
    y: float
    width: float
    height: float
    modality: Modality = Modality.NONE
    is_open: bool = False
    screen_index: int = 0
    scale_x: float = 1.0
    scale_y: float = 1.0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DialogRecord):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        return "DialogRecord[%s at (%.0f, %.0f) size %.0fx%.0f scale=%.2fx%.2f%s]" % (
            self.id,
            self.x,
            self.y,
            self.width,
            self.height,
            self.scale_x,
            self.scale_y,
            " OPEN" if self.is_open else "",
        )

    # Copies ---------------------------------------------------------------

    def with_position(self, x: float, y: float) -> "DialogRecord":
        return replace(self, x=x, y=y)

    def with_size(self, width: float, height: float) -> "DialogRecord":
        return replace(self, width=width, height=height)

    def with_open_status(self, is_open: bool) -> "DialogRecord":
        return replace(self, is_open=bool(is_open))

    def with_screen_index(self, index: int) -> "DialogRecord":
        return replace(self, screen_index=int(index))

    def with_scale_factors(self, scale_x: float, scale_y: float) -> "DialogRecord":
        return replace(self, scale_x=scale_x, scale_y=scale_y)

    # Validation -----------------------------------------------------------

    def has_valid_position(self) -> bool:
        return (
            math.isfinite(self.x)
            and math.isfinite(self.y)
            and self.x >= MIN_VALID_COORDINATE
            and self.y >= MIN_VALID_COORDINATE
        )

    def has_valid_size(self) -> bool:
        return (
            math.isfinite(self.width)
            and math.isfinite(self.height)
            and self.width > 0
            and self.height > 0
        )

    def has_valid_scale_factors(self) -> bool:
        return (
            math.isfinite(self.scale_x)
            and math.isfinite(self.scale_y)
            and self.scale_x > 0
            and self.scale_y > 0
        )

    def has_scale_changed(self, current_scale_x: float, current_scale_y: float) -> bool:
        return (
            abs(self.scale_x - current_scale_x) > SCALE_CHANGE_TOLERANCE
            or abs(self.scale_y - current_scale_y) > SCALE_CHANGE_TOLERANCE
        )

    def is_modal(self) -> bool:
        return self.modality is not Modality.NONE

    @property
    def is_fallback(self) -> bool:
        return is_fallback_id(self.id)
