"""Edit palette: sliders and toggles that emit overlay settings patches."""

from __future__ import annotations

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QCheckBox,
    QColorDialog,
    QComboBox,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QPlainTextEdit,
    QPushButton,
    QSlider,
    QVBoxLayout,
    QWidget,
)

from storycanvas.models.brand import BrandConfig
from storycanvas.models.layout import LayoutType
from storycanvas.models.overlay_settings import (
    LogoOverlayPatch,
    OverlaySettings,
    OverlaySettingsPatch,
    TextOverlayPatch,
)
from storycanvas.utils.config import (
    BLUR_MAX,
    BLUR_MIN,
    BRIGHTNESS_MAX,
    BRIGHTNESS_MIN,
    FONT_SIZE_MAX,
    FONT_SIZE_MIN,
    LOGO_SCALE_MAX,
    LOGO_SCALE_MIN,
)

BRIGHTNESS_STEP = 5

LAYOUT_LABELS: dict[LayoutType, str] = {
    LayoutType.CENTER_FOCUS: "Center focus",
    LayoutType.TOP_HEAVY: "Top heavy",
    LayoutType.BOTTOM_HEAVY: "Bottom heavy",
    LayoutType.SPLIT_HORIZONTAL: "Split horizontal",
    LayoutType.FRAME_STYLE: "Frame",
    LayoutType.GRADIENT_FADE: "Gradient fade",
}


def _slider(lo: int, hi: int, step: int = 1) -> QSlider:
    s = QSlider(Qt.Orientation.Horizontal)
    s.setRange(lo, hi)
    s.setSingleStep(step)
    s.setPageStep(step)
    return s


class EditPalette(QWidget):
    """Controls for one asset's overlay settings.

    The palette never writes settings itself; every user change is emitted as
    an OverlaySettingsPatch for the owner to apply.
    """

    patch_requested = Signal(object)  # OverlaySettingsPatch

    def __init__(self, parent=None):
        super().__init__(parent)
        self._updating = False
        self._brand = BrandConfig()

        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)

        # ---- Background ----
        bg_group = QGroupBox("Background")
        bg_form = QFormLayout(bg_group)

        self._blur_slider = _slider(BLUR_MIN, BLUR_MAX)
        self._blur_label = QLabel("0px")
        self._blur_slider.valueChanged.connect(self._on_blur_changed)
        bg_form.addRow("Blur", self._with_value(self._blur_slider, self._blur_label))

        self._brightness_slider = _slider(BRIGHTNESS_MIN, BRIGHTNESS_MAX, BRIGHTNESS_STEP)
        self._brightness_label = QLabel("100%")
        self._brightness_slider.valueChanged.connect(self._on_brightness_changed)
        bg_form.addRow("Brightness", self._with_value(self._brightness_slider, self._brightness_label))

        self._brand_check = QCheckBox("Apply brand colour")
        self._brand_check.toggled.connect(self._on_brand_toggled)
        bg_form.addRow(self._brand_check)
        layout.addWidget(bg_group)

        # ---- Text ----
        text_group = QGroupBox("Text")
        text_form = QFormLayout(text_group)

        self._text_visible = QCheckBox("Show text")
        self._text_visible.toggled.connect(
            lambda v: self._emit(text_overlay=TextOverlayPatch(visible=v))
        )
        text_form.addRow(self._text_visible)

        self._text_edit = QPlainTextEdit()
        self._text_edit.setPlaceholderText("One line per row")
        self._text_edit.setMaximumHeight(90)
        self._text_edit.textChanged.connect(self._on_text_changed)
        text_form.addRow("Content", self._text_edit)

        self._layout_combo = QComboBox()
        for layout_type, label in LAYOUT_LABELS.items():
            self._layout_combo.addItem(label, layout_type.value)
        self._layout_combo.currentIndexChanged.connect(self._on_layout_changed)
        text_form.addRow("Layout", self._layout_combo)

        self._font_size_slider = _slider(FONT_SIZE_MIN, FONT_SIZE_MAX)
        self._font_size_label = QLabel("24px")
        self._font_size_slider.valueChanged.connect(self._on_font_size_changed)
        text_form.addRow("Size", self._with_value(self._font_size_slider, self._font_size_label))

        self._color_btn = QPushButton()
        self._color_btn.setFixedWidth(60)
        self._color_btn.clicked.connect(self._on_pick_color)
        self._text_color = "#FFFFFF"
        text_form.addRow("Colour", self._color_btn)
        layout.addWidget(text_group)

        # ---- Logo ----
        logo_group = QGroupBox("Logo")
        logo_form = QFormLayout(logo_group)

        self._logo_check = QCheckBox("Show logo")
        self._logo_check.toggled.connect(
            lambda v: self._emit(logo_overlay=LogoOverlayPatch(visible=v))
        )
        logo_form.addRow(self._logo_check)

        self._logo_scale_slider = _slider(int(LOGO_SCALE_MIN * 100), int(LOGO_SCALE_MAX * 100), 5)
        self._logo_scale_label = QLabel("100%")
        self._logo_scale_slider.valueChanged.connect(self._on_logo_scale_changed)
        logo_form.addRow("Size", self._with_value(self._logo_scale_slider, self._logo_scale_label))

        self._logo_hint = QLabel("Drag the logo in the preview to move it.")
        self._logo_hint.setStyleSheet("color: #888; font-size: 10px;")
        logo_form.addRow(self._logo_hint)
        layout.addWidget(logo_group)

        # ---- Brand summary ----
        self._brand_label = QLabel()
        self._brand_label.setStyleSheet("color: #aaa; font-size: 11px;")
        layout.addWidget(self._brand_label)
        layout.addStretch()

        self.set_brand(self._brand)
        self.set_settings(None)

    @staticmethod
    def _with_value(slider: QSlider, label: QLabel) -> QWidget:
        w = QWidget()
        row = QHBoxLayout(w)
        row.setContentsMargins(0, 0, 0, 0)
        row.addWidget(slider, 1)
        label.setMinimumWidth(40)
        row.addWidget(label)
        return w

    # -------------------------------------------------------- Sync from model

    def set_brand(self, brand: BrandConfig) -> None:
        self._brand = brand
        self._brand_label.setText(f"Brand: {brand.primary_color} / {brand.font_preference}")
        self._logo_check.setEnabled(brand.has_logo)
        self._logo_scale_slider.setEnabled(brand.has_logo)

    def set_settings(self, settings: OverlaySettings | None) -> None:
        """Show *settings* without emitting patches. None disables the palette."""
        self._updating = True
        try:
            self.setEnabled(settings is not None)
            if settings is None:
                return
            self._blur_slider.setValue(settings.blur_radius)
            self._blur_label.setText(f"{settings.blur_radius}px")
            self._brightness_slider.setValue(settings.brightness)
            self._brightness_label.setText(f"{settings.brightness}%")
            self._brand_check.setChecked(settings.brand_overlay_enabled)

            text = settings.text_overlay
            self._text_visible.setChecked(text.visible)
            if self._text_edit.toPlainText() != text.content:
                self._text_edit.setPlainText(text.content)
            self._layout_combo.setCurrentIndex(max(0, self._layout_combo.findData(text.layout.value)))
            self._font_size_slider.setValue(text.font_size_base)
            self._font_size_label.setText(f"{text.font_size_base}px")
            self._set_color_swatch(text.color)

            logo = settings.logo_overlay
            self._logo_check.setChecked(bool(logo and logo.visible))
            scale = logo.scale if logo else 1.0
            self._logo_scale_slider.setValue(int(round(scale * 100)))
            self._logo_scale_label.setText(f"{int(round(scale * 100))}%")
        finally:
            self._updating = False
        self.set_brand(self._brand)

    def _set_color_swatch(self, color: str) -> None:
        self._text_color = color
        self._color_btn.setStyleSheet(f"background-color: {color}; border: 1px solid #555;")

    # -------------------------------------------------------- User input

    def _emit(self, **fields) -> None:
        if self._updating:
            return
        self.patch_requested.emit(OverlaySettingsPatch(**fields))

    def _on_blur_changed(self, value: int) -> None:
        self._blur_label.setText(f"{value}px")
        self._emit(blur_radius=value)

    def _on_brightness_changed(self, value: int) -> None:
        # QSlider does not snap to singleStep on drag
        snapped = BRIGHTNESS_MIN + round((value - BRIGHTNESS_MIN) / BRIGHTNESS_STEP) * BRIGHTNESS_STEP
        self._brightness_label.setText(f"{snapped}%")
        self._emit(brightness=snapped)

    def _on_brand_toggled(self, checked: bool) -> None:
        self._emit(brand_overlay_enabled=checked)

    def _on_text_changed(self) -> None:
        self._emit(text_overlay=TextOverlayPatch(content=self._text_edit.toPlainText()))

    def _on_layout_changed(self, index: int) -> None:
        value = self._layout_combo.itemData(index)
        if value:
            self._emit(text_overlay=TextOverlayPatch(layout=LayoutType(value)))

    def _on_font_size_changed(self, value: int) -> None:
        self._font_size_label.setText(f"{value}px")
        self._emit(text_overlay=TextOverlayPatch(font_size_base=value))

    def _on_pick_color(self) -> None:
        color = QColorDialog.getColor(QColor(self._text_color), self, "Text colour")
        if color.isValid():
            self._set_color_swatch(color.name().upper())
            self._emit(text_overlay=TextOverlayPatch(color=color.name().upper()))

    def _on_logo_scale_changed(self, value: int) -> None:
        self._logo_scale_label.setText(f"{value}%")
        self._emit(logo_overlay=LogoOverlayPatch(scale=value / 100.0))
