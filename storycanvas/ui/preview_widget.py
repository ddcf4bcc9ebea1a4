"""Live story preview using QGraphicsView with background, tint, text and logo layers."""

from __future__ import annotations

import logging

from PIL import Image
from PySide6.QtCore import QRectF, Qt, Signal
from PySide6.QtGui import (
    QBrush,
    QColor,
    QFont,
    QImage,
    QPainter,
    QPainterPath,
    QPen,
    QPixmap,
    QResizeEvent,
    QTextBlockFormat,
    QTextCursor,
)
from PySide6.QtWidgets import (
    QGraphicsBlurEffect,
    QGraphicsDropShadowEffect,
    QGraphicsEllipseItem,
    QGraphicsItemGroup,
    QGraphicsPathItem,
    QGraphicsPixmapItem,
    QGraphicsRectItem,
    QGraphicsScene,
    QGraphicsSimpleTextItem,
    QGraphicsTextItem,
    QGraphicsView,
)

from storycanvas.models.asset import GeneratedAsset
from storycanvas.models.brand import BrandConfig
from storycanvas.models.errors import DecodeError
from storycanvas.models.layout import resolve_layout
from storycanvas.services.compositor import apply_brightness
from storycanvas.services.image_loader import load_image
from storycanvas.ui.logo_positioner import LogoPositioner, preview_logo_width_percent
from storycanvas.utils.config import (
    BRAND_OVERLAY_OPACITY,
    GUIDE_TEXT_AREA_INSETS,
    PREVIEW_HEIGHT,
    PREVIEW_WIDTH,
    TEXT_LINE_HEIGHT,
    TEXT_SHADOW_BLUR,
    TEXT_SHADOW_COLOR,
)

logger = logging.getLogger(__name__)

Z_BACKGROUND = 0
Z_BRAND = 5
Z_TEXT = 10
Z_LOGO = 20
Z_GUIDE = 30

_GUIDE_FILL = QColor(255, 255, 255, 51)
_GUIDE_BORDER = QColor(255, 255, 255, 77)


def pil_to_qpixmap(img: Image.Image) -> QPixmap:
    rgba = img.convert("RGBA")
    data = rgba.tobytes("raw", "RGBA")
    qimg = QImage(data, rgba.width, rgba.height, rgba.width * 4, QImage.Format.Format_RGBA8888)
    # QImage does not own `data`
    return QPixmap.fromImage(qimg.copy())


class _OverlayRectItem(QGraphicsRectItem):
    """Rect filled with the "overlay" composition mode."""

    def paint(self, painter: QPainter, option, widget=None) -> None:
        painter.save()
        painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_Overlay)
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(self.brush())
        painter.drawRect(self.rect())
        painter.restore()


class StoryPreviewWidget(QGraphicsView):
    """Displays one asset with its overlays stacked, without flattening."""

    # Emitted while the logo is dragged: (x%, y%)
    logo_moved = Signal(float, float)

    def __init__(self, parent=None, interactive: bool = True):
        super().__init__(parent)
        self._asset: GeneratedAsset | None = None
        self._brand = BrandConfig()
        self._positioner = LogoPositioner(interactive=interactive)
        self.setMinimumSize(PREVIEW_WIDTH // 2, PREVIEW_HEIGHT // 2)

        self._scene = QGraphicsScene(self)
        self.setScene(self._scene)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        self.setStyleSheet("background-color: black; border: none;")

        # Decoded bitmaps, keyed by their reference
        self._bg_source: Image.Image | None = None
        self._bg_ref: str = ""
        self._logo_pixmap: QPixmap | None = None
        self._logo_ref: str = ""

        # Background (Z=0), the only layer that carries filters
        self._bg_item = QGraphicsPixmapItem()
        self._bg_item.setZValue(Z_BACKGROUND)
        self._bg_item.setTransformationMode(Qt.TransformationMode.SmoothTransformation)
        self._blur_effect = QGraphicsBlurEffect()
        self._blur_effect.setBlurHints(QGraphicsBlurEffect.BlurHint.QualityHint)
        self._blur_effect.setBlurRadius(0)
        self._bg_item.setGraphicsEffect(self._blur_effect)
        self._scene.addItem(self._bg_item)
        self._bg_brightness = 100

        # Brand tint (Z=5)
        self._tint_item = _OverlayRectItem()
        self._tint_item.setZValue(Z_BRAND)
        self._tint_item.setOpacity(BRAND_OVERLAY_OPACITY)
        self._tint_item.setVisible(False)
        self._scene.addItem(self._tint_item)

        # Text (Z=10)
        self._text_item = QGraphicsTextItem()
        self._text_item.setZValue(Z_TEXT)
        self._text_item.setVisible(False)
        shadow = QGraphicsDropShadowEffect()
        shadow.setBlurRadius(TEXT_SHADOW_BLUR)
        shadow.setOffset(0, 0)
        shadow.setColor(QColor(*TEXT_SHADOW_COLOR))
        self._text_item.setGraphicsEffect(shadow)
        self._scene.addItem(self._text_item)

        # Logo (Z=20)
        self._logo_item = QGraphicsPixmapItem()
        self._logo_item.setZValue(Z_LOGO)
        self._logo_item.setTransformationMode(Qt.TransformationMode.SmoothTransformation)
        self._logo_item.setVisible(False)
        self._scene.addItem(self._logo_item)

        # Story UI guide (Z=30): preview only, no filter, never exported
        self._guide_group = QGraphicsItemGroup()
        self._guide_group.setZValue(Z_GUIDE)
        self._guide_group.setAcceptedMouseButtons(Qt.MouseButton.NoButton)
        self._scene.addItem(self._guide_group)
        self._build_guide()

    # -------------------------------------------------------- Public API

    @property
    def asset(self) -> GeneratedAsset | None:
        return self._asset

    @property
    def positioner(self) -> LogoPositioner:
        return self._positioner

    @property
    def guide_visible(self) -> bool:
        return self._guide_group.isVisible()

    def set_guide_visible(self, visible: bool) -> None:
        """Show or hide the story UI guide drawn over the preview."""
        self._guide_group.setVisible(visible)

    def set_interactive(self, interactive: bool) -> None:
        self._positioner.interactive = interactive
        if not interactive:
            self._positioner.cancel()

    def set_asset(self, asset: GeneratedAsset | None) -> None:
        """Show *asset*. Decode failures leave the background empty and are logged."""
        self._asset = asset
        self._positioner.set_settings(asset.settings if asset else None)
        self._load_background()
        self.refresh()

    def set_brand(self, brand: BrandConfig) -> None:
        self._brand = brand
        self._load_logo()
        self.refresh()

    def refresh(self) -> None:
        """Re-stack every layer from the current asset settings."""
        self._scene.setSceneRect(0, 0, self._container_w(), self._container_h())
        self._update_background()
        self._update_tint()
        self._update_text()
        self._update_logo()
        self._update_guide()

    def layer_filters(self) -> dict[str, str | None]:
        """Which filter each visible layer is drawn with (None for no filter)."""
        filters: dict[str, str | None] = {}
        bg_filter = None
        if self._bg_item.graphicsEffect() is self._blur_effect:
            bg_filter = (
                f"blur({int(self._blur_effect.blurRadius())}px) "
                f"brightness({self._bg_brightness}%)"
            )
        filters["background"] = bg_filter
        filters["brand_overlay"] = None
        filters["text"] = (
            "blur" if isinstance(self._text_item.graphicsEffect(), QGraphicsBlurEffect) else None
        )
        filters["logo"] = "blur" if self._logo_item.graphicsEffect() is not None else None
        return filters

    def logo_rect(self) -> QRectF | None:
        """Scene rect of the visible logo item, or None."""
        if not self._logo_item.isVisible():
            return None
        return self._logo_item.sceneBoundingRect()

    def text_rect(self) -> QRectF | None:
        if not self._text_item.isVisible():
            return None
        return self._text_item.sceneBoundingRect()

    # -------------------------------------------------------- Loading

    def _load_background(self) -> None:
        ref = self._asset.source_image if self._asset else ""
        if ref == self._bg_ref:
            return
        self._bg_ref = ref
        self._bg_source = None
        if not ref:
            return
        try:
            self._bg_source = load_image(ref, "background", self._asset.asset_id)
        except DecodeError as e:
            logger.error(f"Preview background unavailable: {e}")

    def _load_logo(self) -> None:
        ref = self._brand.logo_image
        if ref == self._logo_ref:
            return
        self._logo_ref = ref
        self._logo_pixmap = None
        if not ref:
            return
        try:
            self._logo_pixmap = pil_to_qpixmap(load_image(ref, "logo"))
        except DecodeError as e:
            logger.error(f"Preview logo unavailable: {e}")

    # -------------------------------------------------------- Layers

    def _container_w(self) -> float:
        return float(max(1, self.viewport().width()))

    def _container_h(self) -> float:
        return float(max(1, self.viewport().height()))

    def _update_background(self) -> None:
        if self._asset is None or self._bg_source is None:
            self._bg_item.setVisible(False)
            return
        settings = self._asset.settings
        w, h = int(self._container_w()), int(self._container_h())
        scaled = self._bg_source.convert("RGBA").resize((w, h), Image.Resampling.BILINEAR)
        self._bg_brightness = settings.brightness
        self._bg_item.setPixmap(pil_to_qpixmap(apply_brightness(scaled, settings.brightness)))
        self._bg_item.setPos(0, 0)
        self._blur_effect.setBlurRadius(settings.blur_radius)
        self._bg_item.setVisible(True)

    def _update_tint(self) -> None:
        enabled = self._asset is not None and self._asset.settings.brand_overlay_enabled
        self._tint_item.setVisible(enabled)
        if enabled:
            self._tint_item.setRect(0, 0, self._container_w(), self._container_h())
            self._tint_item.setBrush(QColor(self._brand.primary_color))

    def _update_text(self) -> None:
        text = self._asset.settings.text_overlay if self._asset else None
        if text is None or not text.is_drawable:
            self._text_item.setVisible(False)
            return
        cw, ch = self._container_w(), self._container_h()
        preset = resolve_layout(text.layout)
        bx, by, bw, bh = preset.band_rect(cw, ch)

        font_choice = self._brand.font
        font = QFont(font_choice.family)
        font.setPixelSize(max(1, int(round(text.font_size_base * cw / PREVIEW_WIDTH))))
        font.setWeight(QFont.Weight(font_choice.weight))
        self._text_item.setFont(font)
        self._text_item.setDefaultTextColor(QColor(text.color))
        self._text_item.setPlainText("\n".join(text.lines))
        self._text_item.setTextWidth(bw)
        cursor = QTextCursor(self._text_item.document())
        cursor.select(QTextCursor.SelectionType.Document)
        block_fmt = QTextBlockFormat()
        block_fmt.setAlignment(Qt.AlignmentFlag.AlignHCenter)
        block_fmt.setLineHeight(
            TEXT_LINE_HEIGHT * 100, QTextBlockFormat.LineHeightTypes.ProportionalHeight.value
        )
        cursor.mergeBlockFormat(block_fmt)

        text_h = self._text_item.boundingRect().height()
        if preset.v_align == "top":
            y = by
        elif preset.v_align == "bottom":
            y = by + bh - text_h
        else:
            y = by + (bh - text_h) / 2
        self._text_item.setPos(bx, y)
        self._text_item.setVisible(True)

    def _update_logo(self) -> None:
        logo = self._asset.settings.logo_overlay if self._asset else None
        if logo is None or not logo.visible or self._logo_pixmap is None or self._logo_pixmap.isNull():
            self._logo_item.setVisible(False)
            return
        cw, ch = self._container_w(), self._container_h()
        target_w = max(1, int(round(cw * preview_logo_width_percent(logo.scale) / 100.0)))
        scaled = self._logo_pixmap.scaledToWidth(target_w, Qt.TransformationMode.SmoothTransformation)
        self._logo_item.setPixmap(scaled)
        self._logo_item.setPos(
            logo.x / 100.0 * cw - scaled.width() / 2,
            logo.y / 100.0 * ch - scaled.height() / 2,
        )
        self._logo_item.setVisible(True)

    # -------------------------------------------------------- UI guide

    def _build_guide(self) -> None:
        def add(item):
            self._guide_group.addToGroup(item)
            return item

        def label(text: str, alpha: int):
            item = QGraphicsSimpleTextItem(text)
            item.setBrush(QColor(255, 255, 255, alpha))
            return add(item)

        self._guide_profile = add(QGraphicsEllipseItem())
        self._guide_name = add(QGraphicsPathItem())
        self._guide_close = add(QGraphicsEllipseItem())
        self._guide_close_label = label("✕", 255)
        self._guide_text_area = add(QGraphicsRectItem())
        self._guide_text_area.setPen(QPen(QColor(255, 255, 255, 26), 1, Qt.PenStyle.DashLine))
        self._guide_text_area_label = label("TEXT AREA", 51)
        self._guide_reply = add(QGraphicsPathItem())
        self._guide_reply_label = label("メッセージを送信...", 102)
        self._guide_heart = add(QGraphicsEllipseItem())
        self._guide_heart_label = label("♡", 153)

        for item in (self._guide_profile, self._guide_name, self._guide_close):
            item.setPen(QPen(_GUIDE_BORDER, 1))
            item.setBrush(QBrush(_GUIDE_FILL))
        for item in (self._guide_reply, self._guide_heart):
            item.setPen(QPen(_GUIDE_BORDER, 1))
            item.setBrush(QBrush(QColor(255, 255, 255, 26)))

    def _update_guide(self) -> None:
        cw, ch = self._container_w(), self._container_h()
        s = cw / PREVIEW_WIDTH

        def rounded(x, y, w, h, radius) -> QPainterPath:
            path = QPainterPath()
            path.addRoundedRect(QRectF(x, y, w, h), radius, radius)
            return path

        def center_label(item: QGraphicsSimpleTextItem, rect: QRectF, px: float) -> None:
            font = QFont()
            font.setPixelSize(max(1, int(round(px))))
            item.setFont(font)
            br = item.boundingRect()
            item.setPos(rect.center().x() - br.width() / 2, rect.center().y() - br.height() / 2)

        # profile chip and close button, 16px from the top corners
        m, d = 16 * s, 32 * s
        self._guide_profile.setRect(m, m, d, d)
        self._guide_name.setPath(rounded(m + d + 8 * s, m + 8 * s, 96 * s, 16 * s, 4 * s))
        close_rect = QRectF(cw - m - d, m, d, d)
        self._guide_close.setRect(close_rect)
        center_label(self._guide_close_label, close_rect, 12 * s)

        top, right, bottom, left = GUIDE_TEXT_AREA_INSETS
        area = QRectF(left * cw, top * ch, cw * (1 - left - right), ch * (1 - top - bottom))
        self._guide_text_area.setRect(area)
        center_label(self._guide_text_area_label, area, 12 * s)

        # reply bar and heart, 24px above the bottom edge
        bar_h = 40 * s
        bar_y = ch - 24 * s - bar_h
        bar = QRectF(m, bar_y, cw - m - 64 * s, bar_h)
        self._guide_reply.setPath(rounded(bar.x(), bar.y(), bar.width(), bar.height(), bar_h / 2))
        font = QFont()
        font.setPixelSize(max(1, int(round(14 * s))))
        self._guide_reply_label.setFont(font)
        self._guide_reply_label.setPos(
            bar.x() + m, bar.center().y() - self._guide_reply_label.boundingRect().height() / 2
        )
        heart = QRectF(cw - m - bar_h, bar_y, bar_h, bar_h)
        self._guide_heart.setRect(heart)
        center_label(self._guide_heart_label, heart, 16 * s)

    def guide_rects(self) -> dict[str, QRectF]:
        """Scene rects of the guide parts, for layout checks."""
        return {
            "profile": self._guide_profile.sceneBoundingRect(),
            "close": self._guide_close.sceneBoundingRect(),
            "text_area": self._guide_text_area.rect(),
            "reply": self._guide_reply.sceneBoundingRect(),
        }

    # -------------------------------------------------------- Events

    def resizeEvent(self, event: QResizeEvent) -> None:
        super().resizeEvent(event)
        self.refresh()

    def mousePressEvent(self, event) -> None:
        if event.button() == Qt.MouseButton.LeftButton and self._logo_item.isVisible():
            scene_pos = self.mapToScene(event.position().toPoint())
            if self._logo_item.sceneBoundingRect().contains(scene_pos):
                started = self._positioner.press(
                    scene_pos.x(), scene_pos.y(), self._container_w(), self._container_h()
                )
                if started:
                    self.setCursor(Qt.CursorShape.ClosedHandCursor)
                    event.accept()
                    return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event) -> None:
        if self._positioner.is_dragging:
            scene_pos = self.mapToScene(event.position().toPoint())
            patch = self._positioner.move(
                scene_pos.x(), scene_pos.y(), self._container_w(), self._container_h()
            )
            if patch is not None:
                self._update_logo()
                self.logo_moved.emit(patch.x, patch.y)
            event.accept()
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event) -> None:
        if event.button() == Qt.MouseButton.LeftButton and self._positioner.is_dragging:
            self._positioner.release()
            self.setCursor(Qt.CursorShape.ArrowCursor)
            event.accept()
            return
        super().mouseReleaseEvent(event)
