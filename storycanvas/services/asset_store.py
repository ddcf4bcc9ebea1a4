"""Saved asset library - uploads, thumbnails, metadata records.

Files go through a StorageBackend; the metadata record is written last.
When the metadata write fails the uploaded files are removed again so the
library never points at files it does not know about.
"""

from __future__ import annotations

import io
import json
import logging
import random
import string
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import unquote, urlparse

from PIL import Image

from storycanvas.models.asset import GeneratedAsset, SavedAsset, new_asset_id
from storycanvas.models.errors import DecodeError, PersistenceError
from storycanvas.services.image_loader import decode_image, read_bytes
from storycanvas.utils.config import THUMBNAIL_QUALITY, THUMBNAIL_WIDTH, get_data_dir
from storycanvas.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


def unique_filename(prefix: str, ext: str = "png") -> str:
    """``<prefix>_<epoch ms>_<4 random chars>.<ext>``"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=4))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}.{ext}"


def image_content_type(data: bytes) -> tuple[str, str]:
    """MIME type and file extension sniffed from encoded image bytes."""
    img = decode_image(data, "background")
    fmt = (img.format or "PNG").upper()
    mime = Image.MIME.get(fmt, "image/png")
    ext = "jpg" if fmt == "JPEG" else fmt.lower()
    return mime, ext


def make_thumbnail(data: bytes, width: int = THUMBNAIL_WIDTH, quality: int = THUMBNAIL_QUALITY) -> bytes:
    """Scale to *width* keeping aspect ratio and encode as JPEG."""
    img = decode_image(data, "background")
    height = max(1, round(img.height * width / img.width))
    thumb = img.convert("RGB").resize((width, height), Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    thumb.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


@runtime_checkable
class StorageBackend(Protocol):
    """Where saved files and their metadata records live."""

    def upload(self, data: bytes, filename: str, content_type: str) -> str:
        """Store *data* and return its URL."""
        ...

    def delete(self, urls: list[str]) -> None: ...

    def insert_metadata(self, record: dict) -> dict: ...

    def list_metadata(self) -> list[dict]: ...

    def delete_metadata(self, record_id: str) -> None: ...


class LocalStorageBackend:
    """Files under ``root/files``, metadata in ``root/saved_assets.json``."""

    def __init__(self, root: Path | None = None):
        self._root = Path(root) if root else get_data_dir() / "library"
        self._files_dir = self._root / "files"
        self._metadata_path = self._root / "saved_assets.json"

    @property
    def files_dir(self) -> Path:
        return self._files_dir

    # ------------------------------------------------------------------ Files

    def upload(self, data: bytes, filename: str, content_type: str) -> str:
        self._files_dir.mkdir(parents=True, exist_ok=True)
        path = self._files_dir / filename
        path.write_bytes(data)
        return path.resolve().as_uri()

    def delete(self, urls: list[str]) -> None:
        for url in urls:
            path = self._path_for(url)
            if path is None:
                logger.warning(f"Not a local library file: {url}")
                continue
            path.unlink(missing_ok=True)

    def _path_for(self, url: str) -> Path | None:
        if not url.startswith("file:"):
            return None
        path = Path(unquote(urlparse(url).path))
        try:
            path.resolve().relative_to(self._files_dir.resolve())
        except ValueError:
            return None
        return path

    # ------------------------------------------------------------------ Metadata

    def _read_records(self) -> list[dict]:
        if not self._metadata_path.exists():
            return []
        try:
            data = json.loads(self._metadata_path.read_text(encoding="utf-8"))
            return list(data.get("items", []))
        except (json.JSONDecodeError, KeyError, AttributeError) as e:
            logger.error(f"Saved asset metadata unreadable, starting empty: {e}")
            return []

    def _write_records(self, records: list[dict]) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        self._metadata_path.write_text(
            json.dumps({"items": records}, ensure_ascii=False, indent=2), encoding="utf-8"
        )

    def insert_metadata(self, record: dict) -> dict:
        records = self._read_records()
        records.append(record)
        self._write_records(records)
        return record

    def list_metadata(self) -> list[dict]:
        return self._read_records()

    def delete_metadata(self, record_id: str) -> None:
        records = [r for r in self._read_records() if r.get("id") != record_id]
        self._write_records(records)


class AssetStore:
    """Save, list and delete generated backgrounds."""

    def __init__(
        self,
        backend: StorageBackend | None = None,
        upload_attempts: int = 3,
        retry_delay: float = 0.5,
    ):
        self._backend = backend if backend is not None else LocalStorageBackend()
        self._upload_attempts = upload_attempts
        self._retry_delay = retry_delay

    def _upload(self, data: bytes, filename: str, content_type: str) -> str:
        return retry_with_backoff(
            lambda: self._backend.upload(data, filename, content_type),
            attempts=self._upload_attempts,
            delay=self._retry_delay,
        )

    def save(self, asset: GeneratedAsset, original_message: str = "", image_data: bytes | None = None) -> SavedAsset:
        """Upload the asset image plus a thumbnail, then record its metadata.

        Raises:
            DecodeError: the image could not be read or decoded.
            PersistenceError: an upload or the metadata write failed.
        """
        if image_data is None:
            try:
                image_data = read_bytes(asset.source_image)
            except (OSError, ValueError) as e:
                raise DecodeError("background", asset.asset_id, str(e)) from e
        content_type, ext = image_content_type(image_data)
        thumb_data = make_thumbnail(image_data)

        try:
            image_url = self._upload(image_data, unique_filename("gen", ext), content_type)
        except OSError as e:
            raise PersistenceError(f"Failed to upload image: {e}") from e
        try:
            thumbnail_url = self._upload(thumb_data, unique_filename("gen_thumb", "jpg"), "image/jpeg")
        except OSError as e:
            self._cleanup([image_url])
            raise PersistenceError(f"Failed to upload thumbnail: {e}") from e

        saved = SavedAsset(
            asset_id=new_asset_id(),
            image_url=image_url,
            thumbnail_url=thumbnail_url,
            prompt=asset.prompt,
            slide_index=asset.slide_index,
            original_message=original_message,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        record = saved.to_dict()
        record["settings"] = asset.settings.to_dict()
        try:
            self._backend.insert_metadata(record)
        except Exception as e:
            orphans = self._cleanup([image_url, thumbnail_url])
            raise PersistenceError(f"Failed to save asset metadata: {e}", orphaned_urls=orphans) from e

        logger.info(f"Saved asset {saved.asset_id} (slide {saved.slide_index})")
        return saved

    def _cleanup(self, urls: list[str]) -> list[str]:
        """Best-effort delete of uploaded files. Returns the URLs that could not be removed."""
        try:
            self._backend.delete(urls)
        except Exception as e:
            logger.error(f"Orphaned uploads left behind ({', '.join(urls)}): {e}")
            return urls
        return []

    def list(self) -> list[SavedAsset]:
        """All saved assets, newest first."""
        records = self._backend.list_metadata()
        records.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        return [SavedAsset.from_dict(r) for r in records]

    def delete(self, asset_id: str) -> None:
        """Remove the asset's files, then its metadata record."""
        record = next((r for r in self._backend.list_metadata() if r.get("id") == asset_id), None)
        if record is None:
            raise PersistenceError(f"Saved asset not found: {asset_id}")
        urls = [u for u in (record.get("image_url"), record.get("thumbnail_url")) if u]
        if urls:
            self._backend.delete(urls)
        self._backend.delete_metadata(asset_id)
        logger.info(f"Deleted saved asset {asset_id}")
