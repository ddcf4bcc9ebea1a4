"""Main application window."""

from __future__ import annotations

import logging
from pathlib import Path

from PySide6.QtCore import QObject, QSize, Qt, QThread
from PySide6.QtGui import QAction, QActionGroup, QColor, QIcon, QKeySequence
from PySide6.QtWidgets import (
    QColorDialog,
    QComboBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QPlainTextEdit,
    QPushButton,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from storycanvas.models.asset import GeneratedAsset
from storycanvas.models.brand import FONT_MAP, BrandConfig
from storycanvas.models.errors import StoryCanvasError
from storycanvas.models.overlay_settings import OverlaySettingsPatch
from storycanvas.services.app_settings import AppSettings
from storycanvas.services.asset_store import AssetStore
from storycanvas.services.brand_store import BrandConfigStore
from storycanvas.services.compositor import OUTPUT_FORMATS
from storycanvas.services.image_loader import load_image
from storycanvas.services.providers import (
    SAMPLE_SCRIPTS,
    Atmosphere,
    GenerationParams,
    SampleScript,
    StoryGoal,
    get_provider,
)
from storycanvas.ui.edit_palette import EditPalette
from storycanvas.ui.preview_widget import StoryPreviewWidget, pil_to_qpixmap
from storycanvas.utils.config import APP_NAME, APP_VERSION, IMAGE_FILTER
from storycanvas.workers.export_worker import ExportWorker
from storycanvas.workers.generate_worker import GenerateWorker
from storycanvas.workers.save_worker import SaveAssetWorker

logger = logging.getLogger(__name__)

STATUS_TIMEOUT_MS = 5000
THUMB_SIZE = QSize(54, 96)


class MainWindow(QMainWindow):
    def __init__(
        self,
        settings: AppSettings | None = None,
        brand_store: BrandConfigStore | None = None,
        asset_store: AssetStore | None = None,
    ) -> None:
        super().__init__()
        self.setWindowTitle(f"{APP_NAME} v{APP_VERSION}")
        self.setMinimumSize(1100, 760)

        self._settings = settings or AppSettings()
        self._brand_store = brand_store or BrandConfigStore()
        self._asset_store = asset_store or AssetStore()
        self._brand = self._brand_store.load() or BrandConfig()
        self._assets: list[GeneratedAsset] = []

        # (thread, worker) pairs kept alive until the worker finishes
        self._jobs: list[tuple[QThread, QObject]] = []

        self._build_ui()
        self._build_actions()

        self._preview.set_brand(self._brand)
        self._palette.set_brand(self._brand)
        self._sync_brand_controls()
        self.statusBar().showMessage("Ready")

    # -------------------------------------------------------- UI

    def _build_ui(self) -> None:
        splitter = QSplitter(Qt.Orientation.Horizontal)

        # ---- Left: generation inputs + asset list ----
        left = QWidget()
        left_layout = QVBoxLayout(left)

        gen_group = QGroupBox("Generate")
        gen_form = QFormLayout(gen_group)
        self._sample_combo = QComboBox()
        self._sample_combo.addItem("Load sample script...", None)
        for sample in SAMPLE_SCRIPTS:
            self._sample_combo.addItem(sample.title, sample)
        self._sample_combo.activated.connect(self._on_sample_selected)
        gen_form.addRow("Sample", self._sample_combo)
        self._script_edit = QPlainTextEdit()
        self._script_edit.setPlaceholderText("One slide per line")
        self._script_edit.setFixedHeight(110)
        gen_form.addRow("Script", self._script_edit)
        self._theme_edit = QLineEdit()
        gen_form.addRow("Theme", self._theme_edit)
        self._goal_combo = QComboBox()
        for goal in StoryGoal:
            self._goal_combo.addItem(goal.value, goal)
        gen_form.addRow("Goal", self._goal_combo)
        self._atmosphere_combo = QComboBox()
        for atmosphere in Atmosphere:
            self._atmosphere_combo.addItem(atmosphere.value, atmosphere)
        gen_form.addRow("Atmosphere", self._atmosphere_combo)
        self._generate_btn = QPushButton("Generate backgrounds")
        self._generate_btn.clicked.connect(self._on_generate)
        gen_form.addRow(self._generate_btn)
        left_layout.addWidget(gen_group)

        brand_group = QGroupBox("Brand")
        brand_form = QFormLayout(brand_group)
        self._brand_color_btn = QPushButton()
        self._brand_color_btn.clicked.connect(self._on_pick_brand_color)
        brand_form.addRow("Colour", self._brand_color_btn)
        self._font_combo = QComboBox()
        self._font_combo.addItems(list(FONT_MAP))
        self._font_combo.currentTextChanged.connect(self._on_font_changed)
        brand_form.addRow("Font", self._font_combo)
        logo_row = QHBoxLayout()
        self._logo_btn = QPushButton("Choose logo...")
        self._logo_btn.clicked.connect(self._on_choose_logo)
        self._logo_clear_btn = QPushButton("Clear")
        self._logo_clear_btn.clicked.connect(lambda: self._update_brand(logo_image=""))
        logo_row.addWidget(self._logo_btn)
        logo_row.addWidget(self._logo_clear_btn)
        brand_form.addRow("Logo", logo_row)
        left_layout.addWidget(brand_group)

        self._asset_list = QListWidget()
        self._asset_list.setIconSize(THUMB_SIZE)
        self._asset_list.currentRowChanged.connect(self._on_asset_selected)
        left_layout.addWidget(self._asset_list, 1)
        splitter.addWidget(left)

        # ---- Center: preview ----
        self._preview = StoryPreviewWidget()
        self._preview.set_guide_visible(self._settings.get_show_ui_guide())
        self._preview.logo_moved.connect(self._on_logo_moved)
        splitter.addWidget(self._preview)

        # ---- Right: palette ----
        self._palette = EditPalette()
        self._palette.patch_requested.connect(self._on_patch_requested)
        splitter.addWidget(self._palette)

        splitter.setSizes([300, 420, 320])
        self.setCentralWidget(splitter)

    def _build_actions(self) -> None:
        file_menu = self.menuBar().addMenu("&File")

        export_action = QAction("&Export Current...", self)
        export_action.setShortcut(QKeySequence("Ctrl+E"))
        export_action.triggered.connect(self._on_export_current)
        file_menu.addAction(export_action)

        export_all_action = QAction("Export &All...", self)
        export_all_action.setShortcut(QKeySequence("Ctrl+Shift+E"))
        export_all_action.triggered.connect(self._on_export_all)
        file_menu.addAction(export_all_action)

        save_action = QAction("&Save to Library", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.triggered.connect(self._on_save_current)
        file_menu.addAction(save_action)

        format_menu = file_menu.addMenu("Export &Format")
        self._format_group = QActionGroup(self)
        self._format_group.setExclusive(True)
        current_format = self._settings.get_output_format()
        for fmt in OUTPUT_FORMATS:
            action = QAction(fmt, self)
            action.setCheckable(True)
            action.setData(fmt)
            action.setChecked(fmt == current_format)
            self._format_group.addAction(action)
            format_menu.addAction(action)
        self._format_group.triggered.connect(
            lambda action: self._settings.set_output_format(action.data())
        )

        file_menu.addSeparator()
        remove_action = QAction("&Remove Asset", self)
        remove_action.triggered.connect(self._on_remove_current)
        file_menu.addAction(remove_action)

        gen_menu = self.menuBar().addMenu("&Generate")
        self._placeholder_action = QAction("Use &Offline Placeholders", self)
        self._placeholder_action.setCheckable(True)
        self._placeholder_action.setChecked(self._settings.get_provider_name() == "placeholder")
        self._placeholder_action.toggled.connect(
            lambda on: self._settings.set_provider_name("placeholder" if on else "backend")
        )
        gen_menu.addAction(self._placeholder_action)

        view_menu = self.menuBar().addMenu("&View")
        self._guide_action = QAction("Show Story &UI Guide", self)
        self._guide_action.setCheckable(True)
        self._guide_action.setChecked(self._preview.guide_visible)
        self._guide_action.toggled.connect(self._on_guide_toggled)
        view_menu.addAction(self._guide_action)

    # -------------------------------------------------------- Generate form

    def load_sample_script(self, sample: SampleScript) -> None:
        """Fill the Generate form from *sample*."""
        self._script_edit.setPlainText(sample.script)
        self._theme_edit.setText(sample.title)
        self._goal_combo.setCurrentIndex(self._goal_combo.findData(sample.goal))
        self._atmosphere_combo.setCurrentIndex(self._atmosphere_combo.findData(sample.atmosphere))

    def _on_sample_selected(self, index: int) -> None:
        sample = self._sample_combo.itemData(index)
        if sample is not None:
            self.load_sample_script(sample)
        self._sample_combo.setCurrentIndex(0)

    def _on_guide_toggled(self, checked: bool) -> None:
        self._preview.set_guide_visible(checked)
        self._settings.set_show_ui_guide(checked)

    # -------------------------------------------------------- Assets

    @property
    def assets(self) -> list[GeneratedAsset]:
        return list(self._assets)

    def current_asset(self) -> GeneratedAsset | None:
        row = self._asset_list.currentRow()
        return self._assets[row] if 0 <= row < len(self._assets) else None

    def add_assets(self, assets: list[GeneratedAsset]) -> None:
        for asset in assets:
            self._assets.append(asset)
            item = QListWidgetItem(f"Slide {asset.slide_index}")
            item.setData(Qt.ItemDataRole.UserRole, asset.asset_id)
            item.setIcon(self._thumbnail_icon(asset))
            self._asset_list.addItem(item)
        if self._asset_list.currentRow() < 0 and self._assets:
            self._asset_list.setCurrentRow(0)

    def _thumbnail_icon(self, asset: GeneratedAsset) -> QIcon:
        try:
            img = load_image(asset.source_image, "background", asset.asset_id)
        except StoryCanvasError as e:
            logger.warning(f"No thumbnail for {asset.asset_id}: {e}")
            return QIcon()
        img.thumbnail((THUMB_SIZE.width(), THUMB_SIZE.height()))
        return QIcon(pil_to_qpixmap(img))

    def _on_asset_selected(self, row: int) -> None:
        asset = self._assets[row] if 0 <= row < len(self._assets) else None
        self._preview.set_asset(asset)
        self._palette.set_settings(asset.settings if asset else None)

    def _on_remove_current(self) -> None:
        row = self._asset_list.currentRow()
        if row < 0:
            return
        self._assets.pop(row)
        self._asset_list.takeItem(row)
        if not self._assets:
            self._on_asset_selected(-1)

    def _has_asset(self, asset_id: str) -> bool:
        return any(a.asset_id == asset_id for a in self._assets)

    # -------------------------------------------------------- Editing

    def _on_patch_requested(self, patch: OverlaySettingsPatch) -> None:
        asset = self.current_asset()
        if asset is None:
            return
        try:
            asset.settings.apply(patch)
        except StoryCanvasError as e:
            self.statusBar().showMessage(str(e), STATUS_TIMEOUT_MS)
            return
        self._preview.refresh()

    def _on_logo_moved(self, x: float, y: float) -> None:
        self.statusBar().showMessage(f"Logo at {x:.1f}%, {y:.1f}%", 1500)

    # -------------------------------------------------------- Brand

    def _sync_brand_controls(self) -> None:
        self._brand_color_btn.setText(self._brand.primary_color)
        self._brand_color_btn.setStyleSheet(
            f"background-color: {self._brand.primary_color}; border: 1px solid #555;"
        )
        self._font_combo.blockSignals(True)
        self._font_combo.setCurrentText(self._brand.font_preference)
        self._font_combo.blockSignals(False)
        self._logo_clear_btn.setEnabled(self._brand.has_logo)

    def _update_brand(self, **changes) -> None:
        data = self._brand.to_dict()
        data.update(changes)
        self._brand = BrandConfig(**data)
        self._brand_store.autosave(self._brand)
        self._preview.set_brand(self._brand)
        self._palette.set_brand(self._brand)
        self._sync_brand_controls()

    def _on_pick_brand_color(self) -> None:
        color = QColorDialog.getColor(QColor(self._brand.primary_color), self, "Brand colour")
        if color.isValid():
            self._update_brand(primary_color=color.name())

    def _on_font_changed(self, label: str) -> None:
        if label and label != self._brand.font_preference:
            self._update_brand(font_preference=label)

    def _on_choose_logo(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Choose Logo", "", IMAGE_FILTER)
        if path:
            self._update_brand(logo_image=str(Path(path).resolve()))

    # -------------------------------------------------------- Workers

    def _start_job(self, worker: QObject, *done_signals) -> None:
        """Run *worker* on its own QThread until one of *done_signals* fires."""
        thread = QThread(self)
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        for signal in done_signals:
            signal.connect(thread.quit)
            signal.connect(worker.deleteLater)
        thread.finished.connect(thread.deleteLater)
        job = (thread, worker)
        self._jobs.append(job)
        thread.finished.connect(lambda: self._jobs.remove(job) if job in self._jobs else None)
        thread.start()

    def _on_generate(self) -> None:
        params = GenerationParams(
            script=self._script_edit.toPlainText(),
            theme=self._theme_edit.text(),
            goal=StoryGoal(self._goal_combo.currentData()),
            atmosphere=Atmosphere(self._atmosphere_combo.currentData()),
            brand_color=self._brand.primary_color,
        )
        try:
            params.validate()
        except StoryCanvasError as e:
            self.statusBar().showMessage(str(e), STATUS_TIMEOUT_MS)
            return

        name = self._settings.get_provider_name()
        kwargs = {"base_url": self._settings.get_backend_url()} if name == "backend" else {}
        worker = GenerateWorker(get_provider(name, **kwargs), params)
        worker.finished.connect(self._on_generated)
        worker.error.connect(self._on_generate_error)
        self._generate_btn.setEnabled(False)
        self.statusBar().showMessage(f"Generating {params.slide_count} background(s)...")
        self._start_job(worker, worker.finished, worker.error)

    def _on_generated(self, result) -> None:
        self._generate_btn.setEnabled(True)
        self.add_assets(result.assets)
        msg = f"Generated {len(result.assets)} background(s)"
        if result.failures:
            msg += f", {len(result.failures)} failed"
        self.statusBar().showMessage(msg, STATUS_TIMEOUT_MS)

    def _on_generate_error(self, message: str) -> None:
        self._generate_btn.setEnabled(True)
        self.statusBar().showMessage(f"Generation failed: {message}", STATUS_TIMEOUT_MS)

    def _ask_export_dir(self) -> str | None:
        start = self._settings.get_last_export_dir() or str(Path.home())
        directory = QFileDialog.getExistingDirectory(self, "Export To", start)
        if not directory:
            return None
        self._settings.set_last_export_dir(directory)
        return directory

    def _export(self, assets: list[GeneratedAsset]) -> None:
        if not assets:
            self.statusBar().showMessage("Nothing to export", STATUS_TIMEOUT_MS)
            return
        directory = self._ask_export_dir()
        if directory is None:
            return
        worker = ExportWorker(assets, self._brand, directory, self._settings.get_output_format())
        worker.item_error.connect(self._on_export_item_error)
        worker.all_finished.connect(self._on_export_finished)
        self.statusBar().showMessage(f"Exporting {len(assets)} image(s)...")
        self._start_job(worker, worker.all_finished)

    def _on_export_current(self) -> None:
        asset = self.current_asset()
        self._export([asset] if asset else [])

    def _on_export_all(self) -> None:
        self._export(self._assets)

    def _on_export_item_error(self, asset_id: str, message: str) -> None:
        logger.warning(f"Export failed for {asset_id}: {message}")
        self.statusBar().showMessage(f"Export failed: {message}", STATUS_TIMEOUT_MS)

    def _on_export_finished(self, total: int, succeeded: int, failed: int) -> None:
        msg = f"Exported {succeeded}/{total} image(s)"
        if failed:
            msg += f" ({failed} failed)"
        self.statusBar().showMessage(msg, STATUS_TIMEOUT_MS)

    def _on_save_current(self) -> None:
        asset = self.current_asset()
        if asset is None:
            return
        worker = SaveAssetWorker(self._asset_store, [asset], self._script_edit.toPlainText())
        worker.item_finished.connect(self._on_asset_saved)
        worker.item_error.connect(self._on_asset_save_error)
        self._start_job(worker, worker.all_finished)

    def _on_asset_saved(self, asset_id: str, saved) -> None:
        if not self._has_asset(asset_id):
            return
        self.statusBar().showMessage(f"Saved slide {saved.slide_index} to library", STATUS_TIMEOUT_MS)

    def _on_asset_save_error(self, asset_id: str, message: str) -> None:
        if not self._has_asset(asset_id):
            return
        self.statusBar().showMessage(f"Save failed: {message}", STATUS_TIMEOUT_MS)

    def closeEvent(self, event) -> None:
        for thread, worker in list(self._jobs):
            cancel = getattr(worker, "cancel", None)
            if cancel:
                cancel()
            thread.quit()
            thread.wait(5000)
        super().closeEvent(event)
