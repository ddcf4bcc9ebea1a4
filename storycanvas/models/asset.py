"""Generated background assets (pure Python, no Qt dependency)."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from storycanvas.models.overlay_settings import OverlaySettings


def new_asset_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(slots=True)
class GeneratedAsset:
    """One background candidate plus the overlay settings it owns.

    ``source_image`` may be an http(s) URL, a local file path, or a
    ``data:image/...;base64,`` URL.
    """

    source_image: str
    slide_index: int = 1
    prompt: str = ""
    asset_id: str = field(default_factory=new_asset_id)
    settings: OverlaySettings = field(default_factory=OverlaySettings)

    def __post_init__(self) -> None:
        if self.slide_index < 1:
            raise ValueError(f"slide_index is 1-based, got {self.slide_index}")

    def snapshot(self) -> GeneratedAsset:
        """Copy with its own settings, safe to hand to a worker thread."""
        return GeneratedAsset(
            source_image=self.source_image,
            slide_index=self.slide_index,
            prompt=self.prompt,
            asset_id=self.asset_id,
            settings=self.settings.copy(),
        )


@dataclass(slots=True)
class SavedAsset:
    """Metadata record of an asset that was uploaded to storage."""

    asset_id: str
    image_url: str
    thumbnail_url: str = ""
    prompt: str = ""
    slide_index: int = 1
    original_message: str = ""
    created_at: str = ""  # ISO-8601

    def to_dict(self) -> dict:
        return {
            "id": self.asset_id,
            "image_url": self.image_url,
            "thumbnail_url": self.thumbnail_url,
            "prompt": self.prompt,
            "slide_index": self.slide_index,
            "original_message": self.original_message,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SavedAsset:
        return cls(
            asset_id=data["id"],
            image_url=data["image_url"],
            thumbnail_url=data.get("thumbnail_url", ""),
            prompt=data.get("prompt", ""),
            slide_index=data.get("slide_index", 1),
            original_message=data.get("original_message", ""),
            created_at=data.get("created_at", ""),
        )
