"""Tests for saving images to disk (single and numbered batch)."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from storycanvas.services.downloader import (
    DEFAULT_BASE_FILENAME,
    DownloadItem,
    image_extension,
    save_all,
    save_image,
    slide_filename,
)


class TestImageExtension:
    @pytest.mark.parametrize(
        "ref, ext",
        [
            ("data:image/png;base64,AAAA", "png"),
            ("data:image/jpeg;base64,AAAA", "jpg"),
            ("data:image/webp;base64,AAAA", "webp"),
            ("data:image/svg+xml;base64,AAAA", "png"),
            ("https://cdn.example.com/a/b/photo.JPEG?sig=1", "jpeg"),
            ("/tmp/bg.gif", "gif"),
            ("https://cdn.example.com/render", None),
        ],
    )
    def test_rules(self, ref, ext):
        assert image_extension(ref) == ext

    def test_item_without_extension_defaults_to_jpg(self):
        assert DownloadItem("https://cdn.example.com/render").resolve_extension() == "jpg"

    def test_bytes_default_to_png(self):
        assert DownloadItem(b"...").resolve_extension() == "png"

    def test_explicit_extension_wins(self):
        assert DownloadItem(b"...", extension=".WEBP").resolve_extension() == "webp"


class TestFilenames:
    def test_slide_filename(self):
        assert slide_filename(3, "png") == f"{DEFAULT_BASE_FILENAME}-slide-3.png"
        assert slide_filename(1, "jpg", "promo") == "promo-slide-1.jpg"


class TestSaveImage:
    def test_creates_directory(self, tmp_path):
        path = save_image(b"abc", "x.png", tmp_path / "nested" / "out")
        assert path.read_bytes() == b"abc"


class TestSaveAll:
    def test_numbered_files_and_pauses_between_items(self, tmp_path):
        sleep = MagicMock()
        items = [DownloadItem(b"1"), DownloadItem(b"2"), DownloadItem(b"3")]
        result = save_all(items, tmp_path, delay=0.5, sleep=sleep)
        assert result.ok
        assert [p.name for _, p in result.saved] == [
            "story-background-slide-1.png",
            "story-background-slide-2.png",
            "story-background-slide-3.png",
        ]
        assert sleep.call_count == 2
        sleep.assert_called_with(0.5)

    def test_single_item_never_sleeps(self, tmp_path):
        sleep = MagicMock()
        save_all([DownloadItem(b"1")], tmp_path, sleep=sleep)
        sleep.assert_not_called()

    def test_slide_index_used_for_name(self, tmp_path):
        result = save_all([DownloadItem(b"x", slide_index=4)], tmp_path, "promo", sleep=MagicMock())
        assert result.saved[0][1].name == "promo-slide-4.png"

    def test_failure_does_not_stop_batch(self, tmp_path):
        sleep = MagicMock()
        items = [
            DownloadItem(b"1"),
            DownloadItem(str(tmp_path / "missing.png")),
            DownloadItem(b"3"),
        ]
        result = save_all(items, tmp_path / "out", sleep=sleep)
        assert not result.ok
        assert [i for i, _ in result.saved] == [0, 2]
        assert [i for i, _ in result.failures] == [1]
        assert (tmp_path / "out" / "story-background-slide-3.png").read_bytes() == b"3"
        assert sleep.call_count == 2

    def test_reads_local_reference(self, tmp_path):
        src = tmp_path / "bg.webp"
        src.write_bytes(b"webp-bytes")
        result = save_all([DownloadItem(str(src))], tmp_path / "out", sleep=MagicMock())
        assert result.saved[0][1].name == "story-background-slide-1.webp"
        assert result.saved[0][1].read_bytes() == b"webp-bytes"
