"""Text layout presets (pure Python, no Qt dependency)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LayoutType(str, Enum):
    """Named text-placement strategies. Each selects a vertical anchor."""

    CENTER_FOCUS = "center_focus"
    TOP_HEAVY = "top_heavy"
    BOTTOM_HEAVY = "bottom_heavy"
    SPLIT_HORIZONTAL = "split_horizontal"
    FRAME_STYLE = "frame_style"
    GRADIENT_FADE = "gradient_fade"

    @classmethod
    def coerce(cls, value: object) -> LayoutType:
        """Return the matching layout, or CENTER_FOCUS for anything unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        return cls.CENTER_FOCUS


@dataclass(frozen=True, slots=True)
class LayoutPreset:
    """Placement for one layout.

    ``y_ratio`` is the export-time vertical centre of the text block as a
    fraction of canvas height. The band fields describe the preview text box
    as percentages of the container (top/bottom/left/right insets).
    """

    y_ratio: float
    band_top: float
    band_bottom: float
    band_left: float = 10.0
    band_right: float = 10.0
    v_align: str = "middle"  # top, middle, bottom (within the band)

    @property
    def band_height_percent(self) -> float:
        return 100.0 - self.band_top - self.band_bottom

    def band_rect(self, width: float, height: float) -> tuple[float, float, float, float]:
        """Return the preview band as (x, y, w, h) in container pixels."""
        x = width * self.band_left / 100.0
        y = height * self.band_top / 100.0
        w = width * (100.0 - self.band_left - self.band_right) / 100.0
        h = height * self.band_height_percent / 100.0
        return x, y, w, h


LAYOUT_PRESETS: dict[LayoutType, LayoutPreset] = {
    LayoutType.CENTER_FOCUS: LayoutPreset(0.50, band_top=30.0, band_bottom=30.0),
    LayoutType.TOP_HEAVY: LayoutPreset(0.65, band_top=55.0, band_bottom=20.0, v_align="top"),
    LayoutType.BOTTOM_HEAVY: LayoutPreset(0.30, band_top=15.0, band_bottom=55.0, v_align="bottom"),
    LayoutType.SPLIT_HORIZONTAL: LayoutPreset(0.50, band_top=35.0, band_bottom=35.0),
    LayoutType.FRAME_STYLE: LayoutPreset(
        0.50, band_top=20.0, band_bottom=20.0, band_left=15.0, band_right=15.0
    ),
    LayoutType.GRADIENT_FADE: LayoutPreset(0.50, band_top=25.0, band_bottom=25.0),
}


def resolve_layout(value: object) -> LayoutPreset:
    """Map a layout name (or LayoutType) to its preset. Never raises."""
    return LAYOUT_PRESETS[LayoutType.coerce(value)]
