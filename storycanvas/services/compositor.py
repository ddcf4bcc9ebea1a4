"""Flatten a generated asset and its overlays into a single story image.

Layers are drawn strictly in this order, each over the previous one:

1. background (blur + brightness filter, stretched to the target size)
2. brand colour tint ("overlay" blend at 30% opacity)
3. text (multi-line, drop shadow, layout-anchored)
4. logo (scaled, width-clamped, centred on its x/y percentages)

The drawing state (filter, blend mode) lives on ``_Canvas`` and is reset
after the layer that uses it, so a filter can never leak into a later layer.
Given identical inputs the output bytes are identical.
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable

import numpy as np
from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont

from storycanvas.models.asset import GeneratedAsset
from storycanvas.models.brand import BrandConfig, FontSpec
from storycanvas.models.errors import ValidationError
from storycanvas.models.layout import resolve_layout
from storycanvas.models.overlay_settings import TextOverlay, clamp_float, clamp_int
from storycanvas.services.image_loader import load_image
from storycanvas.utils.config import (
    BLUR_MAX,
    BLUR_MIN,
    BRAND_OVERLAY_OPACITY,
    BRIGHTNESS_MAX,
    BRIGHTNESS_MIN,
    LOGO_MAX_WIDTH_RATIO,
    LOGO_SCALE_MAX,
    LOGO_SCALE_MIN,
    POSITION_MAX,
    POSITION_MIN,
    REFERENCE_WIDTH,
    TARGET_HEIGHT,
    TARGET_WIDTH,
    TEXT_LINE_HEIGHT,
    TEXT_MAX_WIDTH_RATIO,
    TEXT_SHADOW_BLUR,
    TEXT_SHADOW_COLOR,
)

logger = logging.getLogger(__name__)

ImageLoader = Callable[[str, str, str], Image.Image]

LAYER_BACKGROUND = "background"
LAYER_BRAND = "brand_overlay"
LAYER_TEXT = "text"
LAYER_LOGO = "logo"

OUTPUT_FORMATS = ("PNG", "JPEG", "WEBP")


# ------------------------------------------------------------------ Trace

@dataclass(slots=True)
class LayerRecord:
    layer: str
    filter: str | None
    blend: str


@dataclass
class RenderTrace:
    """Per-layer record of the drawing state each draw call ran with."""

    records: list[LayerRecord] = field(default_factory=list)

    def add(self, layer: str, filter_: str | None, blend: str) -> None:
        self.records.append(LayerRecord(layer, filter_, blend))

    @property
    def layers(self) -> list[str]:
        return [r.layer for r in self.records]

    def filters_for(self, layer: str) -> list[str | None]:
        return [r.filter for r in self.records if r.layer == layer]

    def filtered_layers(self) -> list[str]:
        return [r.layer for r in self.records if r.filter is not None]


# ------------------------------------------------------------------ Helpers

def parse_color(value: str, name: str) -> tuple[int, int, int, int]:
    """Parse any CSS-style colour Pillow understands into RGBA."""
    try:
        return ImageColor.getcolor(value, "RGBA")
    except (ValueError, AttributeError, TypeError):
        raise ValidationError(name, value, "unrecognised colour") from None


def composite_at(base: Image.Image, overlay: Image.Image, x: int, y: int) -> None:
    """Alpha-composite *overlay* onto *base* at (x, y), clipping anything off-canvas."""
    src_x = max(0, -x)
    src_y = max(0, -y)
    dst_x = max(0, x)
    dst_y = max(0, y)
    w = min(overlay.width - src_x, base.width - dst_x)
    h = min(overlay.height - src_y, base.height - dst_y)
    if w <= 0 or h <= 0:
        return
    base.alpha_composite(overlay, dest=(dst_x, dst_y), source=(src_x, src_y, src_x + w, src_y + h))


def apply_brightness(img: Image.Image, percent: float) -> Image.Image:
    """Scale RGB channels linearly by percent/100, leaving alpha untouched."""
    if percent == 100:
        return img
    arr = np.asarray(img.convert("RGBA"), dtype=np.float32).copy()
    arr[..., :3] = np.clip(np.rint(arr[..., :3] * (percent / 100.0)), 0, 255)
    return Image.fromarray(arr.astype(np.uint8), "RGBA")


def overlay_blend(backdrop: Image.Image, color: tuple[int, int, int], opacity: float) -> Image.Image:
    """Fill *backdrop* with *color* using the "overlay" blend mode at *opacity*."""
    arr = np.asarray(backdrop.convert("RGBA"), dtype=np.float64) / 255.0
    cb = arr[..., :3]
    ab = arr[..., 3:4]
    cs = np.asarray(color[:3], dtype=np.float64) / 255.0
    a_s = float(opacity)

    blended = np.where(cb <= 0.5, 2.0 * cb * cs, 1.0 - 2.0 * (1.0 - cb) * (1.0 - cs))
    co = a_s * (1.0 - ab) * cs + a_s * ab * blended + (1.0 - a_s) * ab * cb
    ao = a_s + ab * (1.0 - a_s)

    out = np.empty_like(arr)
    out[..., :3] = co / ao
    out[..., 3:4] = ao
    return Image.fromarray(np.clip(np.rint(out * 255.0), 0, 255).astype(np.uint8), "RGBA")


# ------------------------------------------------------------------ Fonts

_FONT_FILES: dict[str, tuple[list[str], list[str]]] = {
    # family: (bold candidates, regular candidates)
    "Noto Sans JP": (
        ["NotoSansJP-Bold.ttf", "NotoSansJP-Bold.otf", "NotoSansCJKjp-Bold.otf", "NotoSansCJK-Bold.ttc"],
        ["NotoSansJP-Regular.ttf", "NotoSansJP-Regular.otf", "NotoSansCJK-Regular.ttc"],
    ),
    "Inter": (
        ["Inter-ExtraBold.ttf", "Inter-ExtraBold.otf", "Inter-Bold.ttf"],
        ["Inter-Regular.ttf", "Inter-Regular.otf"],
    ),
    "M PLUS Rounded 1c": (
        ["MPLUSRounded1c-Bold.ttf"],
        ["MPLUSRounded1c-Regular.ttf"],
    ),
    "Shippori Mincho": (
        ["ShipporiMincho-Bold.ttf"],
        ["ShipporiMincho-Regular.ttf"],
    ),
}

_FALLBACK_BOLD = ["DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf"]
_FALLBACK_REGULAR = ["DejaVuSans.ttf", "Arial.ttf", "arial.ttf"]


def font_candidates(font: FontSpec) -> list[str]:
    bold = font.weight >= 600
    bold_files, regular_files = _FONT_FILES.get(font.family, ([], []))
    if bold:
        return bold_files + regular_files + _FALLBACK_BOLD + _FALLBACK_REGULAR
    return regular_files + bold_files + _FALLBACK_REGULAR + _FALLBACK_BOLD


@lru_cache(maxsize=64)
def load_font(family: str, weight: int, size: float) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Return the first installed font file for (family, weight), else Pillow's default."""
    for name in font_candidates(FontSpec(family, weight)):
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    logger.warning(f"No font file found for {family!r} ({weight}); using Pillow default")
    return ImageFont.load_default(size=size)


# ------------------------------------------------------------------ Text layout

@dataclass(frozen=True, slots=True)
class TextLayout:
    """Where each text line is centred on the output canvas."""

    lines: tuple[str, ...]
    font_size: float
    line_height: float
    start_y: float
    center_x: float
    max_width: float

    def line_center(self, index: int) -> tuple[float, float]:
        return self.center_x, self.start_y + index * self.line_height

    @property
    def block_center_y(self) -> float:
        total = len(self.lines) * self.line_height
        return self.start_y - self.line_height / 2 + total / 2


def compute_text_layout(text: TextOverlay, target_width: int, target_height: int) -> TextLayout:
    scaled = text.font_size_base * (target_width / REFERENCE_WIDTH)
    lines = tuple(text.lines)
    line_height = scaled * TEXT_LINE_HEIGHT
    total_height = len(lines) * line_height
    y_ratio = resolve_layout(text.layout).y_ratio
    start_y = y_ratio * target_height - total_height / 2 + line_height / 2
    return TextLayout(
        lines=lines,
        font_size=scaled,
        line_height=line_height,
        start_y=start_y,
        center_x=target_width / 2,
        max_width=target_width * TEXT_MAX_WIDTH_RATIO,
    )


def _render_line(line: str, font, fill: tuple[int, int, int, int], max_width: float):
    """Render one line centred on its anchor. Returns (image, left, top) relative to the anchor.

    Lines wider than *max_width* are condensed horizontally to fit.
    """
    left, top, right, bottom = font.getbbox(line, anchor="mm")
    w = max(1, math.ceil(right - left))
    h = max(1, math.ceil(bottom - top))
    img = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    ImageDraw.Draw(img).text((-left, -top), line, font=font, fill=fill, anchor="mm")
    if w > max_width:
        new_w = max(1, int(max_width))
        img = img.resize((new_w, h), Image.Resampling.LANCZOS)
        left = -new_w / 2
    return img, left, top


# ------------------------------------------------------------------ Logo geometry

@dataclass(frozen=True, slots=True)
class LogoPlacement:
    left: float
    top: float
    width: float
    height: float

    def box(self) -> tuple[int, int, int, int]:
        """Integer (left, top, width, height) used for the actual draw."""
        return (
            int(round(self.left)),
            int(round(self.top)),
            max(1, int(round(self.width))),
            max(1, int(round(self.height))),
        )


def compute_logo_placement(
    natural_width: int,
    natural_height: int,
    x: float,
    y: float,
    scale: float,
    target_width: int,
    target_height: int,
) -> LogoPlacement:
    scale = clamp_float("scale", scale, LOGO_SCALE_MIN, LOGO_SCALE_MAX)
    x = clamp_float("x", x, POSITION_MIN, POSITION_MAX)
    y = clamp_float("y", y, POSITION_MIN, POSITION_MAX)
    logo_w = natural_width * scale
    logo_h = natural_height * scale
    max_w = target_width * LOGO_MAX_WIDTH_RATIO
    if logo_w > max_w:
        ratio = max_w / logo_w
        logo_w *= ratio
        logo_h *= ratio
    left = x / 100.0 * target_width - logo_w / 2
    top = y / 100.0 * target_height - logo_h / 2
    return LogoPlacement(left, top, logo_w, logo_h)


# ------------------------------------------------------------------ Canvas

class _Canvas:
    """RGBA canvas with the filter/blend draw state of a 2D context."""

    def __init__(self, width: int, height: int, trace: RenderTrace | None = None):
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self.trace = trace
        self._blur: int = 0
        self._brightness: int = 100
        self._filter_set = False

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def filter(self) -> str | None:
        if not self._filter_set:
            return None
        return f"blur({self._blur}px) brightness({self._brightness}%)"

    def set_filter(self, blur: int, brightness: int) -> None:
        self._blur = blur
        self._brightness = brightness
        self._filter_set = True

    def reset_filter(self) -> None:
        self._blur = 0
        self._brightness = 100
        self._filter_set = False

    def _record(self, layer: str, blend: str = "source-over") -> None:
        if self.trace is not None:
            self.trace.add(layer, self.filter, blend)

    def _filtered(self, img: Image.Image) -> Image.Image:
        if not self._filter_set:
            return img
        if self._blur > 0:
            img = img.filter(ImageFilter.GaussianBlur(self._blur))
        return apply_brightness(img, self._brightness)

    def draw_image(self, layer: str, img: Image.Image, box: tuple[int, int, int, int]) -> None:
        left, top, w, h = box
        src = img.convert("RGBA")
        if src.size != (w, h):
            src = src.resize((w, h), Image.Resampling.LANCZOS)
        self._record(layer)
        composite_at(self.image, self._filtered(src), left, top)

    def fill_overlay(self, layer: str, color: tuple[int, int, int], opacity: float) -> None:
        self._record(layer, blend="overlay")
        self.image = overlay_blend(self.image, color, opacity)

    def draw_text_layer(self, layer: str, text_layer: Image.Image, shadow_blur: float) -> None:
        """Composite pre-rendered text with its drop shadow (zero offset)."""
        self._record(layer)
        alpha = text_layer.getchannel("A")
        shadow_alpha = alpha.point(lambda a: a * TEXT_SHADOW_COLOR[3] // 255)
        shadow = Image.new("RGBA", text_layer.size, TEXT_SHADOW_COLOR[:3] + (0,))
        shadow.putalpha(shadow_alpha)
        if shadow_blur > 0:
            # canvas shadowBlur maps to a Gaussian with sigma = blur / 2
            shadow = shadow.filter(ImageFilter.GaussianBlur(shadow_blur / 2))
        self.image.alpha_composite(shadow)
        self.image.alpha_composite(self._filtered(text_layer))


# ------------------------------------------------------------------ Flatten

def _draw_text(canvas: _Canvas, text: TextOverlay, brand: BrandConfig) -> None:
    font_choice = brand.font
    layout = compute_text_layout(text, canvas.width, canvas.height)
    font = load_font(font_choice.family, font_choice.weight, layout.font_size)
    fill = parse_color(text.color, "text_overlay.color")

    text_layer = Image.new("RGBA", canvas.image.size, (0, 0, 0, 0))
    for i, line in enumerate(layout.lines):
        if not line:
            continue
        cx, cy = layout.line_center(i)
        line_img, left, top = _render_line(line, font, fill, layout.max_width)
        composite_at(text_layer, line_img, int(round(cx + left)), int(round(cy + top)))
    canvas.draw_text_layer(LAYER_TEXT, text_layer, TEXT_SHADOW_BLUR)


def flatten_image(
    asset: GeneratedAsset,
    brand: BrandConfig,
    target_width: int = TARGET_WIDTH,
    target_height: int = TARGET_HEIGHT,
    *,
    loader: ImageLoader = load_image,
    trace: RenderTrace | None = None,
) -> Image.Image:
    """Compose all layers of *asset* into a new RGBA image of the target size.

    Raises:
        DecodeError: the background, or a required logo, could not be decoded.
        ValidationError: a colour could not be parsed.
    """
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"Invalid target size {target_width}x{target_height}")

    settings = asset.settings
    logo = settings.logo_overlay
    draw_logo = logo is not None and logo.visible and brand.has_logo

    # Every image is decoded before the first draw call.
    background = loader(asset.source_image, "background", asset.asset_id)
    logo_img = loader(brand.logo_image, "logo", asset.asset_id) if draw_logo else None
    brand_rgb = parse_color(brand.primary_color, "primary_color")[:3] if settings.brand_overlay_enabled else None

    canvas = _Canvas(target_width, target_height, trace)

    # 1. Background
    canvas.set_filter(
        clamp_int("blur_radius", settings.blur_radius, BLUR_MIN, BLUR_MAX),
        clamp_int("brightness", settings.brightness, BRIGHTNESS_MIN, BRIGHTNESS_MAX),
    )
    canvas.draw_image(LAYER_BACKGROUND, background, (0, 0, target_width, target_height))
    canvas.reset_filter()

    # 2. Brand tint
    if brand_rgb is not None:
        canvas.fill_overlay(LAYER_BRAND, brand_rgb, BRAND_OVERLAY_OPACITY)

    # 3. Text
    if settings.text_overlay.is_drawable:
        _draw_text(canvas, settings.text_overlay, brand)

    # 4. Logo
    if logo_img is not None:
        placement = compute_logo_placement(
            logo_img.width, logo_img.height, logo.x, logo.y, logo.scale,
            target_width, target_height,
        )
        canvas.draw_image(LAYER_LOGO, logo_img, placement.box())

    logger.debug(
        f"Flattened asset {asset.asset_id} at {target_width}x{target_height} "
        f"(layers: {trace.layers if trace else 'untraced'})"
    )
    return canvas.image


def output_format_for(source_image: str, requested: str | None = None) -> str:
    """Pick the encoder: an explicit request wins, otherwise lossless PNG."""
    if requested:
        fmt = requested.upper()
        if fmt == "JPG":
            fmt = "JPEG"
        if fmt not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format: {requested}")
        return fmt
    return "PNG"


def encode_image(img: Image.Image, fmt: str = "PNG") -> bytes:
    """Encode without timestamps or other varying metadata."""
    buf = io.BytesIO()
    if fmt == "JPEG":
        img.convert("RGB").save(buf, format="JPEG", quality=95)
    elif fmt == "WEBP":
        img.save(buf, format="WEBP", lossless=True)
    else:
        img.save(buf, format="PNG")
    return buf.getvalue()


def flatten(
    asset: GeneratedAsset,
    brand: BrandConfig,
    target_width: int = TARGET_WIDTH,
    target_height: int = TARGET_HEIGHT,
    *,
    fmt: str | None = None,
    loader: ImageLoader = load_image,
    trace: RenderTrace | None = None,
) -> bytes:
    """Flatten *asset* and return the encoded image bytes (PNG unless *fmt* says otherwise)."""
    img = flatten_image(
        asset, brand, target_width, target_height, loader=loader, trace=trace
    )
    return encode_image(img, output_format_for(asset.source_image, fmt))
