"""Persist the brand configuration between sessions via QSettings."""

from __future__ import annotations

import json
import logging

from PySide6.QtCore import QSettings

from storycanvas.models.brand import BrandConfig

logger = logging.getLogger(__name__)

BRAND_CONFIG_KEY = "brand/config"


class BrandConfigStore:
    """Stores one BrandConfig as JSON under a single settings key."""

    def __init__(self, settings: QSettings | None = None):
        self._settings = settings if settings is not None else QSettings()

    def save(self, config: BrandConfig) -> None:
        self._settings.setValue(BRAND_CONFIG_KEY, json.dumps(config.to_dict(), ensure_ascii=False))
        self._settings.sync()

    def load(self) -> BrandConfig | None:
        """Return the stored config, or None when nothing usable is stored."""
        raw = self._settings.value(BRAND_CONFIG_KEY, "", str)
        if not raw:
            return None
        try:
            return BrandConfig.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring malformed brand config: {e}")
            return None

    def clear(self) -> None:
        self._settings.remove(BRAND_CONFIG_KEY)
        self._settings.sync()

    def autosave(self, config: BrandConfig) -> bool:
        """Save *config* when it differs from the factory defaults. Returns True if saved."""
        if config.is_factory_default():
            return False
        self.save(config)
        return True
