"""Application configuration constants."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "StoryCanvas"
APP_VERSION = "0.3.0"
ORG_NAME = "StoryCanvas"

# Export target (Instagram story, 9:16)
TARGET_WIDTH = 1080
TARGET_HEIGHT = 1920

# Text sizes are authored against this canvas width and scaled linearly on export
REFERENCE_WIDTH = 360

# Preview container (same 9:16 ratio as the export target)
PREVIEW_WIDTH = 360
PREVIEW_HEIGHT = 640

# Slider domains
BLUR_MIN, BLUR_MAX = 0, 20
BRIGHTNESS_MIN, BRIGHTNESS_MAX = 50, 150
FONT_SIZE_MIN, FONT_SIZE_MAX = 14, 48
LOGO_SCALE_MIN, LOGO_SCALE_MAX = 0.1, 2.0
POSITION_MIN, POSITION_MAX = 0.0, 100.0

# Compositing constants
BRAND_OVERLAY_OPACITY = 0.3
TEXT_LINE_HEIGHT = 1.5
TEXT_MAX_WIDTH_RATIO = 0.8
TEXT_SHADOW_BLUR = 8
TEXT_SHADOW_COLOR = (0, 0, 0, 204)  # rgba(0,0,0,0.8)
LOGO_MAX_WIDTH_RATIO = 0.4

# Story UI guide drawn over the preview only (fractions of the container)
GUIDE_TEXT_AREA_INSETS = (0.15, 0.10, 0.20, 0.10)  # top, right, bottom, left

# Batch downloads are spaced out (seconds)
DOWNLOAD_DELAY_SEC = 0.5

# Thumbnails for saved assets
THUMBNAIL_WIDTH = 300
THUMBNAIL_QUALITY = 70

# Generation backend
DEFAULT_BACKEND_URL = "http://localhost:3001"

# Supported image formats
IMAGE_EXTENSIONS = [".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"]
IMAGE_FILTER = "Image Files ({});;All Files (*)".format(
    " ".join(f"*{ext}" for ext in IMAGE_EXTENSIONS)
)


def get_data_dir() -> Path:
    """Return the per-user data directory, creating it if needed."""
    data_dir = Path.home() / ".storycanvas"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
