"""Per-asset overlay settings and their partial-update patches (pure Python, no Qt dependency).

Every update goes through an explicit patch type whose fields are all
optional. ``None`` means "leave this field alone", so updating a single
field never clears its siblings.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace

from storycanvas.models.errors import ValidationError
from storycanvas.models.layout import LayoutType
from storycanvas.utils.config import (
    BLUR_MAX,
    BLUR_MIN,
    BRIGHTNESS_MAX,
    BRIGHTNESS_MIN,
    FONT_SIZE_MAX,
    FONT_SIZE_MIN,
    LOGO_SCALE_MAX,
    LOGO_SCALE_MIN,
    POSITION_MAX,
    POSITION_MIN,
)


# ------------------------------------------------------------------ Validation

def _finite(name: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(name, value, "not a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(name, value, "not finite")
    return number


def clamp_float(name: str, value: object, lo: float, hi: float) -> float:
    """Clamp a numeric value into [lo, hi]. NaN, inf and non-numbers raise ValidationError."""
    return min(max(_finite(name, value), lo), hi)


def clamp_int(name: str, value: object, lo: int, hi: int) -> int:
    return int(round(clamp_float(name, value, lo, hi)))


def _check_bool(name: str, value: object) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(name, value, "expected a boolean")
    return value


def _check_str(name: str, value: object) -> str:
    if not isinstance(value, str):
        raise ValidationError(name, value, "expected a string")
    return value


def _check_layout(value: object) -> LayoutType:
    if isinstance(value, LayoutType):
        return value
    try:
        return LayoutType(value)
    except ValueError:
        raise ValidationError("layout", value, "unknown layout") from None


# ------------------------------------------------------------------ Values

@dataclass(slots=True)
class TextOverlay:
    """Text drawn over the background, one rendered line per line break."""

    visible: bool = True
    content: str = ""
    layout: LayoutType = LayoutType.CENTER_FOCUS
    font_size_base: int = 24  # at REFERENCE_WIDTH, scaled on export
    color: str = "#FFFFFF"

    @property
    def is_drawable(self) -> bool:
        return self.visible and bool(self.content)

    @property
    def lines(self) -> list[str]:
        return self.content.replace("\r\n", "\n").split("\n")

    def to_dict(self) -> dict:
        return {
            "visible": self.visible,
            "content": self.content,
            "layout": self.layout.value,
            "font_size_base": self.font_size_base,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TextOverlay:
        return cls(
            visible=bool(data.get("visible", True)),
            content=str(data.get("content", "")),
            layout=LayoutType.coerce(data.get("layout")),
            font_size_base=clamp_int(
                "font_size_base", data.get("font_size_base", 24), FONT_SIZE_MIN, FONT_SIZE_MAX
            ),
            color=str(data.get("color", "#FFFFFF")),
        )


@dataclass(slots=True)
class LogoOverlay:
    """Brand logo placement. ``x``/``y`` are the logo centre in percent of the canvas."""

    visible: bool = False
    x: float = 50.0
    y: float = 85.0
    scale: float = 1.0

    @classmethod
    def initial(cls) -> LogoOverlay:
        """Values used the first time logo placement is enabled."""
        return cls(visible=False, x=50.0, y=85.0, scale=1.0)

    def to_dict(self) -> dict:
        return {"visible": self.visible, "x": self.x, "y": self.y, "scale": self.scale}

    @classmethod
    def from_dict(cls, data: dict) -> LogoOverlay:
        return cls(
            visible=bool(data.get("visible", False)),
            x=clamp_float("x", data.get("x", 50.0), POSITION_MIN, POSITION_MAX),
            y=clamp_float("y", data.get("y", 85.0), POSITION_MIN, POSITION_MAX),
            scale=clamp_float("scale", data.get("scale", 1.0), LOGO_SCALE_MIN, LOGO_SCALE_MAX),
        )


# ------------------------------------------------------------------ Patches

@dataclass(frozen=True, slots=True)
class TextOverlayPatch:
    visible: bool | None = None
    content: str | None = None
    layout: LayoutType | str | None = None
    font_size_base: int | None = None
    color: str | None = None


@dataclass(frozen=True, slots=True)
class LogoOverlayPatch:
    visible: bool | None = None
    x: float | None = None
    y: float | None = None
    scale: float | None = None


@dataclass(frozen=True, slots=True)
class OverlaySettingsPatch:
    blur_radius: int | None = None
    brightness: int | None = None
    brand_overlay_enabled: bool | None = None
    text_overlay: TextOverlayPatch | None = None
    logo_overlay: LogoOverlayPatch | None = None


def merge_text_overlay(current: TextOverlay, patch: TextOverlayPatch) -> TextOverlay:
    """Return *current* with the fields present in *patch* replaced."""
    changes: dict = {}
    if patch.visible is not None:
        changes["visible"] = _check_bool("visible", patch.visible)
    if patch.content is not None:
        changes["content"] = _check_str("content", patch.content)
    if patch.layout is not None:
        changes["layout"] = _check_layout(patch.layout)
    if patch.font_size_base is not None:
        changes["font_size_base"] = clamp_int(
            "font_size_base", patch.font_size_base, FONT_SIZE_MIN, FONT_SIZE_MAX
        )
    if patch.color is not None:
        changes["color"] = _check_str("color", patch.color)
    return replace(current, **changes)


def merge_logo_overlay(current: LogoOverlay | None, patch: LogoOverlayPatch) -> LogoOverlay:
    """Return *current* with the fields present in *patch* replaced.

    A missing logo overlay starts from ``LogoOverlay.initial()``.
    """
    base = current if current is not None else LogoOverlay.initial()
    changes: dict = {}
    if patch.visible is not None:
        changes["visible"] = _check_bool("visible", patch.visible)
    if patch.x is not None:
        changes["x"] = clamp_float("x", patch.x, POSITION_MIN, POSITION_MAX)
    if patch.y is not None:
        changes["y"] = clamp_float("y", patch.y, POSITION_MIN, POSITION_MAX)
    if patch.scale is not None:
        changes["scale"] = clamp_float("scale", patch.scale, LOGO_SCALE_MIN, LOGO_SCALE_MAX)
    return replace(base, **changes)


# ------------------------------------------------------------------ Settings

@dataclass(slots=True)
class OverlaySettings:
    """Mutable editing state owned by exactly one GeneratedAsset."""

    blur_radius: int = 0
    brightness: int = 100
    brand_overlay_enabled: bool = False
    text_overlay: TextOverlay = field(default_factory=TextOverlay)
    logo_overlay: LogoOverlay | None = None

    def apply(self, patch: OverlaySettingsPatch) -> None:
        """Merge *patch* into these settings in place.

        All values are validated before anything is written, so a rejected
        patch leaves the settings untouched.
        """
        merged = merge_overlay_settings(self, patch)
        self.blur_radius = merged.blur_radius
        self.brightness = merged.brightness
        self.brand_overlay_enabled = merged.brand_overlay_enabled
        self.text_overlay = merged.text_overlay
        self.logo_overlay = merged.logo_overlay

    def enable_logo(self) -> LogoOverlay:
        """Create the logo overlay on first use and make it visible."""
        self.apply(OverlaySettingsPatch(logo_overlay=LogoOverlayPatch(visible=True)))
        return self.logo_overlay

    def copy(self) -> OverlaySettings:
        """Return a deep copy that shares no mutable state with this one."""
        return OverlaySettings(
            blur_radius=self.blur_radius,
            brightness=self.brightness,
            brand_overlay_enabled=self.brand_overlay_enabled,
            text_overlay=replace(self.text_overlay),
            logo_overlay=replace(self.logo_overlay) if self.logo_overlay else None,
        )

    def to_dict(self) -> dict:
        d = {
            "blur_radius": self.blur_radius,
            "brightness": self.brightness,
            "brand_overlay_enabled": self.brand_overlay_enabled,
            "text_overlay": self.text_overlay.to_dict(),
        }
        if self.logo_overlay:
            d["logo_overlay"] = self.logo_overlay.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict) -> OverlaySettings:
        logo_data = data.get("logo_overlay")
        return cls(
            blur_radius=clamp_int("blur_radius", data.get("blur_radius", 0), BLUR_MIN, BLUR_MAX),
            brightness=clamp_int(
                "brightness", data.get("brightness", 100), BRIGHTNESS_MIN, BRIGHTNESS_MAX
            ),
            brand_overlay_enabled=bool(data.get("brand_overlay_enabled", False)),
            text_overlay=TextOverlay.from_dict(data.get("text_overlay") or {}),
            logo_overlay=LogoOverlay.from_dict(logo_data) if logo_data else None,
        )


def merge_overlay_settings(current: OverlaySettings, patch: OverlaySettingsPatch) -> OverlaySettings:
    """Return a new OverlaySettings with *patch* merged over *current*."""
    merged = current.copy()
    if patch.blur_radius is not None:
        merged.blur_radius = clamp_int("blur_radius", patch.blur_radius, BLUR_MIN, BLUR_MAX)
    if patch.brightness is not None:
        merged.brightness = clamp_int(
            "brightness", patch.brightness, BRIGHTNESS_MIN, BRIGHTNESS_MAX
        )
    if patch.brand_overlay_enabled is not None:
        merged.brand_overlay_enabled = _check_bool(
            "brand_overlay_enabled", patch.brand_overlay_enabled
        )
    if patch.text_overlay is not None:
        merged.text_overlay = merge_text_overlay(merged.text_overlay, patch.text_overlay)
    if patch.logo_overlay is not None:
        merged.logo_overlay = merge_logo_overlay(merged.logo_overlay, patch.logo_overlay)
    return merged
