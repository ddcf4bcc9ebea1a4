"""Read and decode image references (data URLs, local files, http URLs)."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
import urllib.request
from pathlib import Path
from urllib.parse import unquote, urlparse

from PIL import Image, UnidentifiedImageError

from storycanvas.models.errors import DecodeError

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]*)?(?P<params>(;[^,;]+)*?)(?P<b64>;base64)?,(?P<data>.*)$", re.S)

HTTP_TIMEOUT = 30.0


def parse_data_url(ref: str) -> tuple[str, bytes]:
    """Split a data URL into (mime type, payload bytes)."""
    m = _DATA_URL_RE.match(ref)
    if not m:
        raise ValueError("malformed data URL")
    mime = m.group("mime") or "text/plain"
    payload = m.group("data")
    if m.group("b64"):
        try:
            return mime, base64.b64decode(payload, validate=False)
        except binascii.Error as e:
            raise ValueError(f"invalid base64 payload: {e}") from e
    return mime, unquote(payload).encode("latin-1")


def to_data_url(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def read_bytes(ref: str, timeout: float = HTTP_TIMEOUT) -> bytes:
    """Return the raw bytes behind *ref*.

    Raises:
        OSError: the file or URL could not be read.
        ValueError: *ref* is empty or a malformed data URL.
    """
    if not ref:
        raise ValueError("empty image reference")
    if ref.startswith("data:"):
        return parse_data_url(ref)[1]

    parsed = urlparse(ref)
    if parsed.scheme in ("http", "https"):
        req = urllib.request.Request(ref, method="GET")
        req.add_header("Accept", "image/*")
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.read()
    if parsed.scheme == "file":
        return Path(unquote(parsed.path)).read_bytes()
    return Path(ref).read_bytes()


def decode_image(data: bytes, asset_kind: str, asset_id: str = "") -> Image.Image:
    """Decode *data* fully into memory. Raises DecodeError on any failure."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(asset_kind, asset_id, str(e)) from e
    return img


def load_image(ref: str, asset_kind: str, asset_id: str = "") -> Image.Image:
    """Read and decode *ref*; any read or decode failure becomes a DecodeError."""
    try:
        data = read_bytes(ref)
    except (OSError, ValueError) as e:  # URLError is an OSError
        logger.error(f"Failed to read {asset_kind} image {ref[:80]!r}: {e}")
        raise DecodeError(asset_kind, asset_id, str(e)) from e
    return decode_image(data, asset_kind, asset_id)
