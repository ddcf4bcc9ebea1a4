"""StoryPreviewWidget 레이어 스택 / 로고 드래그 테스트 (offscreen Qt)."""

from __future__ import annotations

import io

import pytest
from PIL import Image
from PySide6.QtCore import QEvent, QPointF, Qt
from PySide6.QtGui import QMouseEvent
from PySide6.QtWidgets import QApplication

from storycanvas.models.asset import GeneratedAsset
from storycanvas.models.brand import BrandConfig
from storycanvas.models.layout import resolve_layout
from storycanvas.models.overlay_settings import OverlaySettingsPatch, TextOverlayPatch
from storycanvas.services.compositor import RenderTrace, flatten_image
from storycanvas.services.image_loader import to_data_url
from storycanvas.ui.preview_widget import (
    Z_BACKGROUND,
    Z_BRAND,
    Z_GUIDE,
    Z_LOGO,
    Z_TEXT,
    StoryPreviewWidget,
    pil_to_qpixmap,
)

# Ensure a QApplication exists for widget tests
_app = QApplication.instance() or QApplication([])


def _data_url(size, color) -> str:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return to_data_url(buf.getvalue())


def _mouse(kind: QEvent.Type, pos: QPointF, button=Qt.MouseButton.LeftButton) -> QMouseEvent:
    buttons = Qt.MouseButton.NoButton if kind == QEvent.Type.MouseButtonRelease else button
    return QMouseEvent(kind, pos, pos, button, buttons, Qt.KeyboardModifier.NoModifier)


@pytest.fixture
def widget():
    w = StoryPreviewWidget()
    w.resize(360, 640)
    w.show()
    _app.processEvents()
    yield w
    w.close()


@pytest.fixture
def asset():
    return GeneratedAsset(source_image=_data_url((90, 160), (40, 80, 120)))


class TestLayers:
    def test_z_order(self, widget):
        assert Z_BACKGROUND < Z_BRAND < Z_TEXT < Z_LOGO
        assert widget._bg_item.zValue() == Z_BACKGROUND
        assert widget._tint_item.zValue() == Z_BRAND
        assert widget._text_item.zValue() == Z_TEXT
        assert widget._logo_item.zValue() == Z_LOGO

    def test_empty_preview(self, widget):
        widget.set_asset(None)
        assert not widget._bg_item.isVisible()
        assert widget.text_rect() is None
        assert widget.logo_rect() is None

    def test_only_background_filtered(self, widget, asset):
        asset.settings.apply(OverlaySettingsPatch(
            blur_radius=6,
            brightness=80,
            brand_overlay_enabled=True,
            text_overlay=TextOverlayPatch(content="Hi"),
        ))
        widget.set_asset(asset)
        assert widget.layer_filters() == {
            "background": "blur(6px) brightness(80%)",
            "brand_overlay": None,
            "text": None,
            "logo": None,
        }

    def test_tint_follows_setting(self, widget, asset):
        widget.set_asset(asset)
        assert not widget._tint_item.isVisible()
        asset.settings.apply(OverlaySettingsPatch(brand_overlay_enabled=True))
        widget.refresh()
        assert widget._tint_item.isVisible()
        assert widget._tint_item.opacity() == pytest.approx(0.3)

    def test_text_hidden_when_empty_or_invisible(self, widget, asset):
        widget.set_asset(asset)
        assert widget.text_rect() is None
        asset.settings.apply(OverlaySettingsPatch(text_overlay=TextOverlayPatch(content="Hello")))
        widget.refresh()
        assert widget.text_rect() is not None
        asset.settings.apply(OverlaySettingsPatch(text_overlay=TextOverlayPatch(visible=False)))
        widget.refresh()
        assert widget.text_rect() is None

    def test_top_heavy_text_starts_at_band_top(self, widget, asset):
        asset.settings.apply(OverlaySettingsPatch(
            text_overlay=TextOverlayPatch(content="Top", layout="top_heavy")
        ))
        widget.set_asset(asset)
        _, by, _, _ = resolve_layout("top_heavy").band_rect(widget._container_w(), widget._container_h())
        assert widget._text_item.pos().y() == pytest.approx(by)

    def test_undecodable_background_is_not_fatal(self, widget):
        widget.set_asset(GeneratedAsset(source_image="data:image/png;base64,AAAA"))
        assert not widget._bg_item.isVisible()

    def test_pil_to_qpixmap(self):
        pm = pil_to_qpixmap(Image.new("RGBA", (7, 3), (255, 0, 0, 128)))
        assert (pm.width(), pm.height()) == (7, 3)


class TestLogo:
    @pytest.fixture
    def logo_widget(self, widget, asset):
        widget.set_brand(BrandConfig(logo_image=_data_url((200, 100), (255, 255, 255))))
        asset.settings.enable_logo()
        widget.set_asset(asset)
        return widget

    def test_logo_width_from_scale(self, logo_widget):
        rect = logo_widget.logo_rect()
        assert rect is not None
        assert rect.width() == pytest.approx(logo_widget._container_w() * 0.30, abs=1)
        assert rect.center().x() == pytest.approx(logo_widget._container_w() * 0.5, abs=1)
        assert rect.center().y() == pytest.approx(logo_widget._container_h() * 0.85, abs=1)

    def test_hidden_without_brand_logo(self, widget, asset):
        asset.settings.enable_logo()
        widget.set_asset(asset)
        assert widget.logo_rect() is None

    def test_drag_moves_logo(self, logo_widget, asset):
        moved = []
        logo_widget.logo_moved.connect(lambda x, y: moved.append((x, y)))
        start = logo_widget.logo_rect().center()
        press_pos = QPointF(logo_widget.mapFromScene(start))
        cw = logo_widget._container_w()

        logo_widget.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, press_pos))
        assert logo_widget.positioner.is_dragging

        logo_widget.mouseMoveEvent(_mouse(QEvent.Type.MouseMove, press_pos - QPointF(cw * 0.25, 0)))
        logo_widget.mouseReleaseEvent(_mouse(QEvent.Type.MouseButtonRelease, press_pos))

        assert not logo_widget.positioner.is_dragging
        assert len(moved) == 1
        assert asset.settings.logo_overlay.x == pytest.approx(25.0, abs=0.5)
        assert asset.settings.logo_overlay.y == pytest.approx(85.0, abs=0.5)
        assert logo_widget.logo_rect().center().x() == pytest.approx(cw * 0.25, abs=1.5)

    def test_press_outside_logo_ignored(self, logo_widget):
        logo_widget.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, QPointF(5, 5)))
        assert not logo_widget.positioner.is_dragging

    def test_non_interactive_preview(self, logo_widget, asset):
        logo_widget.set_interactive(False)
        center = QPointF(logo_widget.mapFromScene(logo_widget.logo_rect().center()))
        logo_widget.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, center))
        assert not logo_widget.positioner.is_dragging
        assert asset.settings.logo_overlay.x == 50.0

    def test_drag_survives_pointer_leaving(self, logo_widget):
        center = QPointF(logo_widget.mapFromScene(logo_widget.logo_rect().center()))
        logo_widget.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, center))
        logo_widget.leaveEvent(QEvent(QEvent.Type.Leave))
        assert logo_widget.positioner.is_dragging
        logo_widget.mouseReleaseEvent(_mouse(QEvent.Type.MouseButtonRelease, QPointF(-20, -20)))
        assert not logo_widget.positioner.is_dragging


class TestUIGuide:
    def test_visible_by_default_above_logo(self, widget):
        assert widget.guide_visible
        assert widget._guide_group.zValue() == Z_GUIDE
        assert Z_GUIDE > Z_LOGO

    def test_toggle(self, widget):
        widget.set_guide_visible(False)
        assert not widget.guide_visible
        widget.set_guide_visible(True)
        assert widget.guide_visible

    def test_guide_carries_no_filter(self, widget, asset):
        asset.settings.apply(OverlaySettingsPatch(blur_radius=8, brightness=60))
        widget.set_asset(asset)
        assert widget._guide_group.graphicsEffect() is None
        assert all(item.graphicsEffect() is None for item in widget._guide_group.childItems())

    def test_text_area_insets(self, widget):
        widget.refresh()
        cw, ch = widget._container_w(), widget._container_h()
        area = widget.guide_rects()["text_area"]
        assert area.left() == pytest.approx(cw * 0.10)
        assert area.top() == pytest.approx(ch * 0.15)
        assert area.right() == pytest.approx(cw * 0.90)
        assert area.bottom() == pytest.approx(ch * 0.80)

    def test_chrome_hugs_edges(self, widget):
        widget.refresh()
        rects = widget.guide_rects()
        cw, ch = widget._container_w(), widget._container_h()
        assert rects["profile"].top() < ch * 0.1
        assert rects["close"].right() > cw * 0.85
        assert rects["reply"].bottom() > ch * 0.9

    def test_never_exported(self, widget, asset):
        widget.set_guide_visible(True)
        widget.set_asset(asset)
        trace = RenderTrace()
        flatten_image(asset, BrandConfig(), 36, 64, trace=trace)
        assert trace.layers == ["background"]
