"""Background image providers and batch generation.

A provider turns generation parameters into candidate backgrounds. The
backend provider talks to the HTTP generation service; the placeholder
provider renders offline gradients with Pillow so the editor is usable
without a backend.
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from PIL import Image, ImageColor, ImageDraw

from storycanvas.models.asset import GeneratedAsset
from storycanvas.models.errors import ProviderError, ValidationError
from storycanvas.models.overlay_settings import OverlaySettings, TextOverlay
from storycanvas.services.image_loader import to_data_url
from storycanvas.utils.config import DEFAULT_BACKEND_URL

logger = logging.getLogger(__name__)


class StoryGoal(str, Enum):
    EMPATHY = "共感 (Empathy)"
    EDUCATION = "教育 (Education)"
    SALES = "販売 (Sales)"
    LIFESTYLE = "ライフスタイル (Lifestyle)"


class Atmosphere(str, Enum):
    MINIMAL = "ミニマル"
    ELEGANT = "エレガント"
    POPPY = "ポップ"
    NATURAL = "ナチュラル"
    LUXURY = "ラグジュアリー"
    FUTURISTIC = "フューチャリスティック"


COMPOSITION_PATTERNS: dict[StoryGoal, str] = {
    StoryGoal.EMPATHY: "centered composition with emotional focal point, warm and inviting atmosphere",
    StoryGoal.EDUCATION: "clean layout with clear visual hierarchy, educational content area in center",
    StoryGoal.SALES: "dynamic composition with product showcase area, call-to-action space",
    StoryGoal.LIFESTYLE: "lifestyle-oriented composition, natural and authentic feel",
}

ATMOSPHERE_STYLES: dict[Atmosphere, str] = {
    Atmosphere.MINIMAL: "minimalist, clean, simple",
    Atmosphere.ELEGANT: "elegant, sophisticated, refined",
    Atmosphere.POPPY: "vibrant, colorful, playful",
    Atmosphere.NATURAL: "natural, organic, earthy",
    Atmosphere.LUXURY: "luxurious, premium, high-end",
    Atmosphere.FUTURISTIC: "modern, futuristic, sleek",
}


@dataclass(frozen=True, slots=True)
class GenerationParams:
    script: str = ""
    theme: str = ""
    goal: StoryGoal = StoryGoal.EMPATHY
    atmosphere: Atmosphere = Atmosphere.MINIMAL
    brand_color: str = ""
    sub_color: str = ""

    def validate(self) -> None:
        if not self.script.strip() and not self.theme.strip():
            raise ValidationError("script", self.script, "script or theme is required")

    @property
    def script_lines(self) -> list[str]:
        return [line.strip() for line in self.script.splitlines() if line.strip()]

    @property
    def slide_count(self) -> int:
        """One slide per non-empty script line, at least one."""
        return max(1, len(self.script_lines))

    def line_for(self, slide_index: int) -> str:
        lines = self.script_lines
        if 1 <= slide_index <= len(lines):
            return lines[slide_index - 1]
        return ""


@dataclass(frozen=True, slots=True)
class SampleScript:
    """Ready-made script the user can load into the Generate form."""

    title: str
    pages: tuple[str, ...]
    goal: StoryGoal
    atmosphere: Atmosphere

    @property
    def script(self) -> str:
        return "\n".join(self.pages)


SAMPLE_SCRIPTS: tuple[SampleScript, ...] = (
    SampleScript(
        title="年内ラストAI講座",
        pages=("年内ラストAI講座", "締切まで後3日！"),
        goal=StoryGoal.SALES,
        atmosphere=Atmosphere.MINIMAL,
    ),
    SampleScript(
        title="ついに公開！新しいAIツールの全貌",
        pages=(
            "ついに公開！新しいAIツールの全貌",
            "デザインの時間を1/10に短縮",
            "先行予約はプロフィールのリンクから",
        ),
        goal=StoryGoal.EDUCATION,
        atmosphere=Atmosphere.LUXURY,
    ),
)


def build_prompt(params: GenerationParams, slide_index: int) -> str:
    """Describe a text-ready story background for one slide."""
    theme = params.theme or "abstract background"
    content = params.line_for(slide_index) or theme
    parts = [
        "Instagram story background image",
        "9:16 aspect ratio (1080x1920px)",
        f'theme: "{theme}", content for slide {slide_index}: "{content}"',
        f"{ATMOSPHERE_STYLES.get(params.atmosphere, 'professional')} style",
        COMPOSITION_PATTERNS.get(params.goal, COMPOSITION_PATTERNS[StoryGoal.EMPATHY]),
        "large negative space in the center for text, "
        "avoid the top 12% and bottom 15% (story UI)",
    ]
    if params.brand_color:
        parts.append(f"brand color palette: {params.brand_color}")
    parts.append("high quality, professional, no text overlay")
    return ", ".join(parts)


@dataclass(frozen=True, slots=True)
class ProviderImage:
    image: str  # URL, file path or data URL
    prompt: str = ""
    slide_index: int = 1


@runtime_checkable
class ImageProvider(Protocol):
    """Interface for background generators."""

    name: str

    def generate(self, params: GenerationParams, count: int) -> list[ProviderImage]:
        """Return up to *count* images. Raises ProviderError when nothing could be produced."""
        ...


# ------------------------------------------------------------------ Backend

class BackendImageProvider:
    """POSTs generation requests to the image backend."""

    name = "backend"

    def __init__(self, base_url: str = DEFAULT_BACKEND_URL, timeout: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @staticmethod
    def _build_body(params: GenerationParams, count: int) -> dict:
        body = {
            "theme": params.theme or "abstract background",
            "goal": params.goal.value,
            "atmosphere": params.atmosphere.value,
            "count": count,
        }
        if params.script:
            body["script"] = params.script
        if params.brand_color:
            body["brandColor"] = params.brand_color
        if params.sub_color:
            body["subColor"] = params.sub_color
        return body

    @staticmethod
    def _parse_response(data: dict) -> list[ProviderImage]:
        images = []
        for i, item in enumerate(data.get("images") or [], start=1):
            url = item.get("url")
            if not url:
                continue
            images.append(
                ProviderImage(
                    image=url,
                    prompt=item.get("prompt", ""),
                    slide_index=int(item.get("slideNumber") or i),
                )
            )
        return images

    def generate(self, params: GenerationParams, count: int) -> list[ProviderImage]:
        req = urllib.request.Request(
            f"{self.base_url}/api/images/generate",
            json.dumps(self._build_body(params, count)).encode(),
            method="POST",
        )
        req.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                data = json.loads(resp.read().decode())
        except urllib.error.HTTPError as e:
            detail = ""
            try:
                detail = json.loads(e.read().decode()).get("error", "")
            except (ValueError, AttributeError):
                pass
            raise ProviderError(detail or f"HTTP error: {e.code} {e.reason}", status_code=e.code) from e
        except urllib.error.URLError as e:
            raise ProviderError(f"Cannot reach the generation backend at {self.base_url}: {e.reason}") from e
        except json.JSONDecodeError as e:
            raise ProviderError(f"Invalid response from generation backend: {e}") from e

        images = self._parse_response(data)
        if not images:
            raise ProviderError("No images were generated")
        return images


# ------------------------------------------------------------------ Placeholder

class PlaceholderProvider:
    """Offline gradient backgrounds, deterministic for the same params and slide."""

    name = "placeholder"

    def __init__(self, size: tuple[int, int] = (540, 960)):
        self.size = size

    @staticmethod
    def _seed(params: GenerationParams, slide_index: int) -> bytes:
        key = f"{params.theme}|{params.line_for(slide_index)}|{params.atmosphere.value}|{slide_index}"
        return hashlib.sha256(key.encode("utf-8")).digest()

    @staticmethod
    def _color(value: str, fallback: tuple[int, int, int]) -> tuple[int, int, int]:
        if not value:
            return fallback
        try:
            return ImageColor.getrgb(value)[:3]
        except ValueError:
            logger.warning(f"Unrecognised colour {value!r}, using fallback")
            return fallback

    def render(self, params: GenerationParams, slide_index: int) -> bytes:
        seed = self._seed(params, slide_index)
        w, h = self.size
        top = self._color(params.brand_color, (seed[0], seed[1], seed[2]))
        bottom = self._color(params.sub_color, (seed[3], seed[4], seed[5]))

        img = Image.new("RGB", (w, h))
        draw = ImageDraw.Draw(img)
        for y in range(h):
            t = y / max(1, h - 1)
            color = tuple(int(round(a + (b - a) * t)) for a, b in zip(top, bottom))
            draw.line([(0, y), (w, y)], fill=color)

        # soft shapes in the upper and lower thirds, centre left clear
        for i in range(3):
            r = w // 6 + seed[6 + i] % (w // 4)
            cx = seed[9 + i] * w // 255
            cy = (h // 6) if i % 2 == 0 else (h * 5 // 6)
            shade = tuple(min(255, c + 40) for c in (top if i % 2 == 0 else bottom))
            draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=shade)

        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def generate(self, params: GenerationParams, count: int) -> list[ProviderImage]:
        return [
            ProviderImage(
                image=to_data_url(self.render(params, i)),
                prompt=build_prompt(params, i),
                slide_index=i,
            )
            for i in range(1, count + 1)
        ]


_PROVIDERS: dict[str, type] = {
    BackendImageProvider.name: BackendImageProvider,
    PlaceholderProvider.name: PlaceholderProvider,
}


def get_provider(name: str, **kwargs) -> ImageProvider:
    """Create a provider by name ("backend" or "placeholder")."""
    try:
        cls = _PROVIDERS[name]
    except KeyError:
        raise ValueError(f"Unknown image provider: {name!r}") from None
    return cls(**kwargs)


# ------------------------------------------------------------------ Batch

@dataclass
class GenerationResult:
    assets: list[GeneratedAsset] = field(default_factory=list)
    failures: list[ProviderError] = field(default_factory=list)


def generate_backgrounds(provider: ImageProvider, params: GenerationParams) -> GenerationResult:
    """Generate one background per script line and wrap each in a GeneratedAsset.

    Slides the provider did not return are recorded as failures. Raises
    ProviderError only when no slide at all was produced.
    """
    params.validate()
    count = params.slide_count
    logger.info(f"Generating {count} background(s) with {provider.name} provider")

    images = provider.generate(params, count)
    result = GenerationResult()
    seen: set[int] = set()
    for img in images:
        if img.slide_index in seen or not 1 <= img.slide_index <= count:
            logger.warning(f"Ignoring unexpected slide {img.slide_index} from {provider.name}")
            continue
        seen.add(img.slide_index)
        settings = OverlaySettings(text_overlay=TextOverlay(content=params.line_for(img.slide_index)))
        result.assets.append(
            GeneratedAsset(
                source_image=img.image,
                slide_index=img.slide_index,
                prompt=img.prompt,
                settings=settings,
            )
        )

    for slide in range(1, count + 1):
        if slide not in seen:
            result.failures.append(ProviderError(f"Slide {slide} was not generated", slide_index=slide))

    if not result.assets:
        raise ProviderError("No images were generated")
    result.assets.sort(key=lambda a: a.slide_index)
    if result.failures:
        logger.warning(f"{len(result.failures)} of {count} slide(s) failed")
    return result
