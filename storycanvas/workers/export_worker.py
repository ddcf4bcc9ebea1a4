"""Background worker that flattens assets and writes them to disk."""

from __future__ import annotations

import logging
from pathlib import Path

from PySide6.QtCore import QObject, Signal

from storycanvas.models.asset import GeneratedAsset
from storycanvas.models.brand import BrandConfig
from storycanvas.services.compositor import flatten, output_format_for
from storycanvas.services.downloader import DEFAULT_BASE_FILENAME, DownloadItem, save_all
from storycanvas.utils.config import DOWNLOAD_DELAY_SEC, TARGET_HEIGHT, TARGET_WIDTH

logger = logging.getLogger(__name__)

_EXTENSIONS = {"PNG": "png", "JPEG": "jpg", "WEBP": "webp"}


class ExportWorker(QObject):
    """Flattens each asset in turn, then saves the results with spacing between files.

    Assets are snapshotted on construction so editing can continue while the
    export runs.
    """

    item_finished = Signal(str, str)  # asset id, output path
    item_error = Signal(str, str)  # asset id, message
    all_finished = Signal(int, int, int)  # total, succeeded, failed

    def __init__(
        self,
        assets: list[GeneratedAsset],
        brand: BrandConfig,
        directory: str | Path,
        fmt: str | None = None,
        base_filename: str = DEFAULT_BASE_FILENAME,
        delay: float = DOWNLOAD_DELAY_SEC,
    ):
        super().__init__()
        self._assets = [a.snapshot() for a in assets]
        self._brand = BrandConfig(**brand.to_dict())
        self._directory = Path(directory)
        self._fmt = fmt
        self._base_filename = base_filename
        self._delay = delay
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def run(self) -> None:
        items: list[DownloadItem] = []
        owners: list[str] = []
        failed = 0

        for asset in self._assets:
            if self._cancelled:
                break
            try:
                fmt = output_format_for(asset.source_image, self._fmt)
                data = flatten(asset, self._brand, TARGET_WIDTH, TARGET_HEIGHT, fmt=fmt)
            except Exception as e:
                failed += 1
                logger.error(f"Flatten failed for asset {asset.asset_id}: {e}")
                self.item_error.emit(asset.asset_id, str(e))
                continue
            items.append(DownloadItem(data, asset.slide_index, _EXTENSIONS[fmt]))
            owners.append(asset.asset_id)

        result = save_all(items, self._directory, self._base_filename, self._delay)
        for index, path in result.saved:
            self.item_finished.emit(owners[index], str(path))
        for index, message in result.failures:
            failed += 1
            self.item_error.emit(owners[index], message)

        self.all_finished.emit(len(self._assets), len(result.saved), failed)
