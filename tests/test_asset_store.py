"""Tests for the saved asset library and its local storage backend."""

from __future__ import annotations

import io
import json
import re
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PIL import Image

from storycanvas.models.asset import GeneratedAsset, SavedAsset
from storycanvas.models.errors import DecodeError, PersistenceError
from storycanvas.models.overlay_settings import OverlaySettingsPatch
from storycanvas.services.asset_store import (
    AssetStore,
    LocalStorageBackend,
    StorageBackend,
    image_content_type,
    make_thumbnail,
    unique_filename,
)
from storycanvas.services.image_loader import to_data_url
from storycanvas.utils.retry import retry_with_backoff


def _png(size=(600, 1200), color=(10, 120, 200)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def _asset(**kwargs) -> GeneratedAsset:
    return GeneratedAsset(source_image=to_data_url(_png()), prompt="calm sea", **kwargs)


@pytest.fixture
def backend(tmp_path):
    return LocalStorageBackend(tmp_path / "library")


@pytest.fixture
def store(backend):
    return AssetStore(backend, retry_delay=0)


class TestHelpers:
    def test_unique_filename_format(self):
        name = unique_filename("gen")
        assert re.fullmatch(r"gen_\d{13}_[a-z0-9]{4}\.png", name)
        assert unique_filename("gen_thumb", "jpg").endswith(".jpg")

    def test_thumbnail_is_300px_jpeg(self):
        thumb = Image.open(io.BytesIO(make_thumbnail(_png())))
        assert thumb.format == "JPEG"
        assert thumb.size == (300, 600)

    def test_thumbnail_of_garbage(self):
        with pytest.raises(DecodeError):
            make_thumbnail(b"nope")

    @pytest.mark.parametrize(
        "fmt, expected",
        [("PNG", ("image/png", "png")), ("JPEG", ("image/jpeg", "jpg")), ("WEBP", ("image/webp", "webp"))],
    )
    def test_content_type_sniffed(self, fmt, expected):
        buf = io.BytesIO()
        Image.new("RGB", (8, 8)).save(buf, format=fmt)
        assert image_content_type(buf.getvalue()) == expected


class TestRetry:
    def test_succeeds_after_failures(self):
        op = MagicMock(side_effect=[OSError("a"), OSError("b"), "ok"])
        sleep = MagicMock()
        assert retry_with_backoff(op, attempts=3, delay=0.5, sleep=sleep) == "ok"
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]

    def test_reraises_last_failure(self):
        op = MagicMock(side_effect=OSError("down"))
        with pytest.raises(OSError, match="down"):
            retry_with_backoff(op, attempts=2, sleep=MagicMock())
        assert op.call_count == 2

    def test_other_exceptions_not_retried(self):
        op = MagicMock(side_effect=KeyError("x"))
        with pytest.raises(KeyError):
            retry_with_backoff(op, sleep=MagicMock())
        assert op.call_count == 1


class TestLocalStorageBackend:
    def test_is_storage_backend(self, backend):
        assert isinstance(backend, StorageBackend)

    def test_upload_and_delete(self, backend):
        url = backend.upload(b"data", "a.png", "image/png")
        path = backend.files_dir / "a.png"
        assert url.startswith("file:")
        assert path.read_bytes() == b"data"
        backend.delete([url])
        assert not path.exists()

    def test_delete_ignores_foreign_urls(self, backend, tmp_path):
        outside = tmp_path / "keep.png"
        outside.write_bytes(b"x")
        backend.delete([outside.as_uri(), "https://cdn.example.com/a.png"])
        assert outside.exists()

    def test_metadata_round_trip(self, backend):
        backend.insert_metadata({"id": "a"})
        backend.insert_metadata({"id": "b"})
        backend.delete_metadata("a")
        assert backend.list_metadata() == [{"id": "b"}]

    def test_corrupt_metadata_reads_empty(self, backend, tmp_path):
        meta = tmp_path / "library" / "saved_assets.json"
        meta.parent.mkdir(parents=True)
        meta.write_text("{broken", encoding="utf-8")
        assert backend.list_metadata() == []


class TestAssetStoreSave:
    def test_save_writes_files_and_record(self, store, backend):
        asset = _asset(slide_index=2)
        asset.settings.apply(OverlaySettingsPatch(blur_radius=5))
        saved = store.save(asset, original_message="hello")

        assert isinstance(saved, SavedAsset)
        assert saved.slide_index == 2
        assert saved.prompt == "calm sea"
        assert saved.original_message == "hello"
        assert re.search(r"/gen_\d+_\w{4}\.png$", saved.image_url)
        assert re.search(r"/gen_thumb_\d+_\w{4}\.jpg$", saved.thumbnail_url)
        assert len(list(backend.files_dir.iterdir())) == 2

        record = backend.list_metadata()[0]
        assert record["id"] == saved.asset_id
        assert record["settings"]["blur_radius"] == 5

    def test_explicit_image_data(self, store, backend):
        saved = store.save(GeneratedAsset(source_image="unused.png"), image_data=_png((90, 160)))
        path = Path(saved.image_url.replace("file://", ""))
        assert Image.open(path).size == (90, 160)

    def test_unreadable_source(self, store, tmp_path):
        with pytest.raises(DecodeError):
            store.save(GeneratedAsset(source_image=str(tmp_path / "missing.png")))

    def test_metadata_failure_removes_uploads(self, backend):
        backend.insert_metadata = MagicMock(side_effect=OSError("disk full"))
        store = AssetStore(backend, retry_delay=0)
        with pytest.raises(PersistenceError) as exc_info:
            store.save(_asset())
        assert exc_info.value.orphaned_urls == ()
        assert list(backend.files_dir.iterdir()) == []

    def test_failed_cleanup_reports_orphans(self):
        backend = MagicMock()
        backend.upload.side_effect = ["file:///img.png", "file:///thumb.jpg"]
        backend.insert_metadata.side_effect = RuntimeError("db down")
        backend.delete.side_effect = OSError("no permission")
        with pytest.raises(PersistenceError) as exc_info:
            AssetStore(backend, retry_delay=0).save(_asset())
        assert exc_info.value.orphaned_urls == ("file:///img.png", "file:///thumb.jpg")

    def test_thumbnail_upload_failure_removes_image(self):
        backend = MagicMock()
        backend.upload.side_effect = ["file:///img.png", OSError("x"), OSError("x"), OSError("x")]
        with pytest.raises(PersistenceError):
            AssetStore(backend, retry_delay=0).save(_asset())
        backend.delete.assert_called_once_with(["file:///img.png"])
        backend.insert_metadata.assert_not_called()

    def test_jpeg_uploaded_with_jpeg_type(self):
        buf = io.BytesIO()
        Image.new("RGB", (90, 160), (200, 40, 40)).save(buf, format="JPEG")
        backend = MagicMock()
        backend.upload.side_effect = ["file:///img.jpg", "file:///thumb.jpg"]
        AssetStore(backend, retry_delay=0).save(GeneratedAsset(source_image="unused"), image_data=buf.getvalue())
        data, filename, content_type = backend.upload.call_args_list[0].args
        assert content_type == "image/jpeg"
        assert filename.endswith(".jpg")

    def test_png_uploaded_with_png_type(self):
        backend = MagicMock()
        backend.upload.side_effect = ["file:///img.png", "file:///thumb.jpg"]
        AssetStore(backend, retry_delay=0).save(_asset())
        assert backend.upload.call_args_list[0].args[2] == "image/png"

    def test_upload_is_retried(self):
        backend = MagicMock()
        backend.upload.side_effect = [OSError("flaky"), "file:///img.png", "file:///thumb.jpg"]
        saved = AssetStore(backend, retry_delay=0).save(_asset())
        assert saved.image_url == "file:///img.png"
        assert backend.upload.call_count == 3


class TestAssetStoreListDelete:
    def test_list_newest_first(self, backend, store):
        for i, stamp in enumerate(["2026-01-01T00:00:00", "2026-03-01T00:00:00", "2026-02-01T00:00:00"]):
            backend.insert_metadata({"id": f"a{i}", "image_url": "u", "created_at": stamp})
        assert [s.asset_id for s in store.list()] == ["a1", "a2", "a0"]

    def test_delete_removes_files_then_record(self, store, backend):
        saved = store.save(_asset())
        store.delete(saved.asset_id)
        assert store.list() == []
        assert list(backend.files_dir.iterdir()) == []

    def test_delete_unknown(self, store):
        with pytest.raises(PersistenceError):
            store.delete("missing")

    def test_metadata_file_layout(self, store, tmp_path):
        store.save(_asset())
        data = json.loads((tmp_path / "library" / "saved_assets.json").read_text(encoding="utf-8"))
        assert len(data["items"]) == 1
