"""Write images to a user-chosen directory, one at a time or as a numbered batch."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

from storycanvas.services.image_loader import read_bytes
from storycanvas.utils.config import DOWNLOAD_DELAY_SEC

logger = logging.getLogger(__name__)

DEFAULT_BASE_FILENAME = "story-background"

_DATA_MIME_RE = re.compile(r"^data:image/(png|jpeg|jpg|gif|webp)", re.I)
_PATH_EXT_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.I)


def image_extension(ref: str) -> str | None:
    """Guess the file extension of an image reference.

    Data URLs use their MIME type (``png`` when unrecognised); other
    references use the extension of their path, or None.
    """
    if ref.startswith("data:"):
        m = _DATA_MIME_RE.match(ref)
        if not m:
            return "png"
        ext = m.group(1).lower()
        return "jpg" if ext == "jpeg" else ext
    path = urlparse(ref).path if "://" in ref else ref
    m = _PATH_EXT_RE.search(path)
    return m.group(1).lower() if m else None


def slide_filename(slide_index: int, ext: str, base: str = DEFAULT_BASE_FILENAME) -> str:
    return f"{base}-slide-{slide_index}.{ext}"


@dataclass(slots=True)
class DownloadItem:
    """One image to write. ``source`` is encoded bytes or an image reference."""

    source: bytes | str
    slide_index: int | None = None
    extension: str | None = None

    def resolve_extension(self) -> str:
        if self.extension:
            return self.extension.lower().lstrip(".")
        if isinstance(self.source, str):
            # references without a recognisable extension are saved as jpg
            return image_extension(self.source) or "jpg"
        return "png"

    def read(self) -> bytes:
        if isinstance(self.source, bytes):
            return self.source
        return read_bytes(self.source)


@dataclass
class DownloadResult:
    """Outcome per item, keyed by the item's position in the input list."""

    saved: list[tuple[int, Path]] = field(default_factory=list)
    failures: list[tuple[int, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def save_image(data: bytes, filename: str, directory: str | Path) -> Path:
    """Write *data* to ``directory/filename`` and return the path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_bytes(data)
    logger.info(f"Saved {path}")
    return path


def save_all(
    items: list[DownloadItem],
    directory: str | Path,
    base_filename: str = DEFAULT_BASE_FILENAME,
    delay: float = DOWNLOAD_DELAY_SEC,
    sleep: Callable[[float], None] = time.sleep,
) -> DownloadResult:
    """Save *items* in order, pausing *delay* seconds between consecutive items.

    A failing item is logged and recorded; the remaining items are still saved.
    """
    result = DownloadResult()
    for i, item in enumerate(items):
        slide = item.slide_index if item.slide_index is not None else i + 1
        filename = slide_filename(slide, item.resolve_extension(), base_filename)
        try:
            result.saved.append((i, save_image(item.read(), filename, directory)))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to save slide {slide}: {e}")
            result.failures.append((i, str(e)))
        if i < len(items) - 1 and delay > 0:
            sleep(delay)
    return result
