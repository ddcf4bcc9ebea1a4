"""이미지 프로바이더 / 배치 생성 단위 테스트 (Qt 의존 없음)."""

from __future__ import annotations

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from storycanvas.models.errors import ProviderError, ValidationError
from storycanvas.services.image_loader import decode_image, parse_data_url
from storycanvas.services.providers import (
    SAMPLE_SCRIPTS,
    Atmosphere,
    BackendImageProvider,
    GenerationParams,
    ImageProvider,
    PlaceholderProvider,
    ProviderImage,
    StoryGoal,
    build_prompt,
    generate_backgrounds,
    get_provider,
)


class _FakeProvider:
    """Returns a fixed list of images regardless of the request."""

    name = "fake"

    def __init__(self, images):
        self.images = images
        self.calls = []

    def generate(self, params, count):
        self.calls.append(count)
        return list(self.images)


class TestGenerationParams:
    def test_script_or_theme_required(self):
        with pytest.raises(ValidationError):
            GenerationParams(script="  ", theme="").validate()

    def test_theme_alone_is_enough(self):
        params = GenerationParams(theme="coffee")
        params.validate()
        assert params.slide_count == 1

    def test_slides_follow_script_lines(self):
        params = GenerationParams(script="first\n\n  second  \nthird\n")
        assert params.script_lines == ["first", "second", "third"]
        assert params.slide_count == 3
        assert params.line_for(2) == "second"
        assert params.line_for(4) == ""


class TestSampleScripts:
    def test_samples_are_valid_params(self):
        for sample in SAMPLE_SCRIPTS:
            params = GenerationParams(
                script=sample.script, theme=sample.title, goal=sample.goal, atmosphere=sample.atmosphere
            )
            params.validate()
            assert params.slide_count == len(sample.pages)
            assert params.theme == sample.title

    def test_script_is_one_page_per_line(self):
        sample = SAMPLE_SCRIPTS[1]
        assert sample.script.splitlines() == list(sample.pages)
        assert sample.goal is StoryGoal.EDUCATION
        assert sample.atmosphere is Atmosphere.LUXURY


class TestBuildPrompt:
    def test_contains_theme_and_line(self):
        params = GenerationParams(script="Fresh beans", theme="coffee shop")
        prompt = build_prompt(params, 1)
        assert "coffee shop" in prompt
        assert "Fresh beans" in prompt
        assert "9:16" in prompt

    def test_goal_and_atmosphere_styles(self):
        params = GenerationParams(theme="t", goal=StoryGoal.SALES, atmosphere=Atmosphere.LUXURY)
        prompt = build_prompt(params, 1)
        assert "call-to-action" in prompt
        assert "luxurious" in prompt

    def test_brand_color_included(self):
        assert "#ff0000" in build_prompt(GenerationParams(theme="t", brand_color="#ff0000"), 1)


class TestPlaceholderProvider:
    def test_is_image_provider(self):
        assert isinstance(PlaceholderProvider(), ImageProvider)

    def test_deterministic(self):
        provider = PlaceholderProvider(size=(54, 96))
        params = GenerationParams(theme="ocean")
        assert provider.render(params, 1) == provider.render(params, 1)
        assert provider.render(params, 1) != provider.render(params, 2)

    def test_generate_returns_decodable_data_urls(self):
        provider = PlaceholderProvider(size=(54, 96))
        images = provider.generate(GenerationParams(theme="ocean"), 2)
        assert [img.slide_index for img in images] == [1, 2]
        mime, data = parse_data_url(images[0].image)
        assert mime == "image/png"
        assert decode_image(data, "background").size == (54, 96)

    def test_brand_colour_used_for_top(self):
        provider = PlaceholderProvider(size=(20, 40))
        data = provider.render(GenerationParams(theme="t", brand_color="#0000ff"), 1)
        img = decode_image(data, "background").convert("RGB")
        # top row is the brand colour, or a lightened shape drawn from it
        assert img.getpixel((0, 0))[2] >= 200

    def test_get_provider(self):
        assert isinstance(get_provider("placeholder"), PlaceholderProvider)
        assert get_provider("backend", base_url="http://x/").base_url == "http://x"
        with pytest.raises(ValueError):
            get_provider("dalle")


class TestGenerateBackgrounds:
    def test_one_asset_per_line(self):
        params = GenerationParams(script="one\ntwo\nthree", theme="t")
        result = generate_backgrounds(PlaceholderProvider(size=(18, 32)), params)
        assert [a.slide_index for a in result.assets] == [1, 2, 3]
        assert [a.settings.text_overlay.content for a in result.assets] == ["one", "two", "three"]
        assert result.failures == []

    def test_partial_failure_keeps_successes(self):
        provider = _FakeProvider([
            ProviderImage("c.png", "p3", 3),
            ProviderImage("a.png", "p1", 1),
        ])
        result = generate_backgrounds(provider, GenerationParams(script="a\nb\nc"))
        assert provider.calls == [3]
        assert [a.source_image for a in result.assets] == ["a.png", "c.png"]
        assert [f.slide_index for f in result.failures] == [2]

    def test_duplicate_and_out_of_range_ignored(self):
        provider = _FakeProvider([
            ProviderImage("a.png", "", 1),
            ProviderImage("dup.png", "", 1),
            ProviderImage("x.png", "", 7),
        ])
        result = generate_backgrounds(provider, GenerationParams(theme="t"))
        assert [a.source_image for a in result.assets] == ["a.png"]

    def test_nothing_generated_raises(self):
        with pytest.raises(ProviderError):
            generate_backgrounds(_FakeProvider([]), GenerationParams(theme="t"))

    def test_invalid_params_never_reach_provider(self):
        provider = _FakeProvider([])
        with pytest.raises(ValidationError):
            generate_backgrounds(provider, GenerationParams())
        assert provider.calls == []

    def test_assets_own_their_settings(self):
        result = generate_backgrounds(PlaceholderProvider(size=(18, 32)), GenerationParams(script="a\nb"))
        first, second = result.assets
        assert first.settings is not second.settings
        assert first.asset_id != second.asset_id


def _response(payload: dict) -> MagicMock:
    resp = MagicMock()
    resp.read.return_value = json.dumps(payload).encode()
    resp.__enter__.return_value = resp
    return resp


class TestBackendImageProvider:
    def test_build_body(self):
        body = BackendImageProvider._build_body(
            GenerationParams(script="a\nb", brand_color="#111111"), 2
        )
        assert body["theme"] == "abstract background"
        assert body["count"] == 2
        assert body["script"] == "a\nb"
        assert body["brandColor"] == "#111111"
        assert "subColor" not in body

    def test_parse_response(self):
        images = BackendImageProvider._parse_response({
            "images": [
                {"url": "https://img/1.png", "prompt": "p", "slideNumber": 2},
                {"url": ""},
                {"url": "https://img/3.png"},
            ]
        })
        assert [(i.image, i.slide_index) for i in images] == [("https://img/1.png", 2), ("https://img/3.png", 3)]

    def test_generate_posts_json(self):
        provider = BackendImageProvider("http://backend:3001/")
        resp = _response({"images": [{"url": "https://img/1.png", "slideNumber": 1}]})
        with patch("storycanvas.services.providers.urllib.request.urlopen", return_value=resp) as urlopen:
            images = provider.generate(GenerationParams(theme="t"), 1)
        req = urlopen.call_args[0][0]
        assert req.full_url == "http://backend:3001/api/images/generate"
        assert req.get_method() == "POST"
        assert json.loads(req.data)["count"] == 1
        assert images[0].image == "https://img/1.png"

    def test_http_error_detail(self):
        err = urllib.error.HTTPError(
            "http://b/api/images/generate", 429, "Too Many Requests", {}, io.BytesIO(b'{"error": "quota exceeded"}')
        )
        with patch("storycanvas.services.providers.urllib.request.urlopen", side_effect=err):
            with pytest.raises(ProviderError, match="quota exceeded") as exc_info:
                BackendImageProvider("http://b").generate(GenerationParams(theme="t"), 1)
        assert exc_info.value.status_code == 429

    def test_unreachable_backend(self):
        err = urllib.error.URLError("connection refused")
        with patch("storycanvas.services.providers.urllib.request.urlopen", side_effect=err):
            with pytest.raises(ProviderError, match="Cannot reach"):
                BackendImageProvider("http://b").generate(GenerationParams(theme="t"), 1)

    def test_empty_image_list(self):
        with patch("storycanvas.services.providers.urllib.request.urlopen", return_value=_response({"images": []})):
            with pytest.raises(ProviderError):
                BackendImageProvider("http://b").generate(GenerationParams(theme="t"), 1)
