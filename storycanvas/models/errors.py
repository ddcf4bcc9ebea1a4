"""Error types raised by the composition pipeline and its collaborators."""

from __future__ import annotations

from typing import Any, Sequence


class StoryCanvasError(Exception):
    """Base class for all application errors."""


class DecodeError(StoryCanvasError):
    """A background or logo image could not be read or decoded."""

    def __init__(self, asset_kind: str, asset_id: str = "", reason: str = ""):
        self.asset_kind = asset_kind  # "background" or "logo"
        self.asset_id = asset_id
        self.reason = reason
        msg = f"Could not decode {asset_kind} image"
        if asset_id:
            msg += f" for asset {asset_id}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ValidationError(StoryCanvasError, ValueError):
    """A settings field was given a value outside anything we can clamp to."""

    def __init__(self, field: str, value: Any, reason: str = "invalid value"):
        self.field = field
        self.value = value
        super().__init__(f"{field}: {reason} ({value!r})")


class ProviderError(StoryCanvasError):
    """An image provider failed to produce a background."""

    def __init__(
        self,
        message: str,
        slide_index: int | None = None,
        status_code: int | None = None,
    ):
        self.slide_index = slide_index
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(StoryCanvasError):
    """Uploading or recording a saved asset failed."""

    def __init__(self, message: str, orphaned_urls: Sequence[str] = ()):
        self.orphaned_urls = tuple(orphaned_urls)
        super().__init__(message)
