"""Settings manager for application preferences."""

from pathlib import Path
from typing import Optional

from PySide6.QtCore import QSettings

from storycanvas.utils.config import DEFAULT_BACKEND_URL


class AppSettings:
    """Wrapper around QSettings for type-safe preference management."""

    def __init__(self, settings: QSettings | None = None):
        self._settings = settings if settings is not None else QSettings()

    # ---------------------------------------------------- Generation Settings

    def get_backend_url(self) -> str:
        """Get the image generation backend base URL."""
        return self._settings.value("generation/backend_url", DEFAULT_BACKEND_URL, str)

    def set_backend_url(self, url: str) -> None:
        self._settings.setValue("generation/backend_url", url.rstrip("/"))

    def get_provider_name(self) -> str:
        """Get the image provider name (default: backend)."""
        return self._settings.value("generation/provider", "backend", str)

    def set_provider_name(self, name: str) -> None:
        self._settings.setValue("generation/provider", name)

    # ---------------------------------------------------- Export Settings

    def get_last_export_dir(self) -> Optional[str]:
        """Get the last directory images were exported to (None if never)."""
        path = self._settings.value("export/last_dir", "", str)
        return path if path else None

    def set_last_export_dir(self, path: Optional[str | Path]) -> None:
        self._settings.setValue("export/last_dir", str(path) if path else "")

    def get_output_format(self) -> str:
        """Get the export image format (default: PNG)."""
        return self._settings.value("export/format", "PNG", str)

    def set_output_format(self, fmt: str) -> None:
        self._settings.setValue("export/format", fmt.upper())


    # ---------------------------------------------------- View Settings

    def get_show_ui_guide(self) -> bool:
        """Get whether the story UI guide is drawn over the preview (default: True)."""
        return self._settings.value("view/show_ui_guide", True, bool)

    def set_show_ui_guide(self, show: bool) -> None:
        self._settings.setValue("view/show_ui_guide", show)
