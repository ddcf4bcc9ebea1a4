"""Background worker for saving assets to the library."""

from __future__ import annotations

from PySide6.QtCore import QObject, Signal

from storycanvas.models.asset import GeneratedAsset
from storycanvas.services.asset_store import AssetStore


class SaveAssetWorker(QObject):
    """Uploads one or more assets sequentially; a failed asset does not stop the rest."""

    item_finished = Signal(str, object)  # asset id, SavedAsset
    item_error = Signal(str, str)  # asset id, message
    all_finished = Signal(int, int, int)  # total, succeeded, failed

    def __init__(self, store: AssetStore, assets: list[GeneratedAsset], original_message: str = ""):
        super().__init__()
        self._store = store
        self._assets = [a.snapshot() for a in assets]
        self._original_message = original_message
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def run(self) -> None:
        succeeded = 0
        failed = 0
        for asset in self._assets:
            if self._cancelled:
                break
            try:
                saved = self._store.save(asset, self._original_message)
                succeeded += 1
                self.item_finished.emit(asset.asset_id, saved)
            except Exception as e:
                failed += 1
                self.item_error.emit(asset.asset_id, str(e))
        self.all_finished.emit(len(self._assets), succeeded, failed)
