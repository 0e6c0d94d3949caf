"""Integration tests for background removal and its content-hash cache."""

import hashlib
from io import BytesIO
from unittest.mock import MagicMock

import httpx
import pytest
from PIL import Image

from tilegen.config import AppConfig
from tilegen.exceptions import TransientServiceError
from tilegen.services.background_removal_service import (
    BackgroundRemovalService,
    PixelcutProvider,
    RemoveBgProvider,
    remove_white_background,
)

PIXELCUT_RESULT = "https://cdn.pixelcut.example/result.png"


def _png_bytes(color=(0, 0, 0, 0), size=(16, 16)):
    buf = BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def _tile(path, color=(60, 160, 70, 255)):
    Image.new("RGBA", (16, 16), color).save(path)
    return path


def _provider(name="primary", result=None, error=None):
    provider = MagicMock()
    provider.name = name
    if error is not None:
        provider.remove.side_effect = error
    else:
        provider.remove.return_value = result if result is not None else _png_bytes()
    return provider


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "bg_cache"


class TestRemoveWhiteBackground:
    def test_near_white_becomes_transparent(self):
        image = Image.new("RGBA", (4, 1), (255, 255, 255, 255))
        image.putpixel((1, 0), (241, 241, 241, 255))
        image.putpixel((2, 0), (240, 250, 250, 255))
        image.putpixel((3, 0), (10, 200, 10, 255))

        result = remove_white_background(image)

        assert result.getpixel((0, 0))[3] == 0
        assert result.getpixel((1, 0))[3] == 0
        # Threshold is strict
        assert result.getpixel((2, 0))[3] == 255
        assert result.getpixel((3, 0)) == (10, 200, 10, 255)

    def test_accepts_rgb(self):
        assert remove_white_background(Image.new("RGB", (2, 2), (255, 255, 255))).mode == "RGBA"


class TestBackgroundRemovalService:
    def test_primary_success_writes_path_and_cache(self, tmp_path, cache_dir):
        path = _tile(tmp_path / "tile.png")
        original = path.read_bytes()
        result = _png_bytes((1, 2, 3, 0))
        primary = _provider(result=result)

        returned = BackgroundRemovalService(cache_dir, [primary]).remove_background(path)

        assert returned == path
        assert path.read_bytes() == result
        digest = hashlib.sha256(original).hexdigest()
        assert (cache_dir / f"{digest}.png").read_bytes() == result
        primary.remove.assert_called_once_with(original)

    def test_identical_bytes_hit_cache(self, tmp_path, cache_dir):
        first = _tile(tmp_path / "a.png")
        second = _tile(tmp_path / "b.png")
        assert first.read_bytes() == second.read_bytes()
        primary = _provider()
        service = BackgroundRemovalService(cache_dir, [primary])

        service.remove_background(first)
        service.remove_background(second)

        assert primary.remove.call_count == 1
        assert second.read_bytes() == first.read_bytes()

    def test_different_bytes_miss_cache(self, tmp_path, cache_dir):
        primary = _provider()
        service = BackgroundRemovalService(cache_dir, [primary])

        service.remove_background(_tile(tmp_path / "a.png", (1, 1, 1, 255)))
        service.remove_background(_tile(tmp_path / "b.png", (2, 2, 2, 255)))

        assert primary.remove.call_count == 2

    def test_secondary_used_when_primary_fails(self, tmp_path, cache_dir):
        path = _tile(tmp_path / "tile.png")
        primary = _provider(error=TransientServiceError("down", "primary", 502))
        secondary = _provider("secondary", result=_png_bytes((9, 9, 9, 0)))

        BackgroundRemovalService(cache_dir, [primary, secondary]).remove_background(path)

        secondary.remove.assert_called_once()
        with Image.open(path) as image:
            assert image.getpixel((0, 0)) == (9, 9, 9, 0)

    def test_non_image_result_treated_as_failure(self, tmp_path, cache_dir):
        path = _tile(tmp_path / "tile.png")
        primary = _provider(result=b"<html>oops</html>")
        secondary = _provider("secondary")

        BackgroundRemovalService(cache_dir, [primary, secondary]).remove_background(path)

        secondary.remove.assert_called_once()
        assert not any(p.read_bytes() == b"<html>oops</html>" for p in cache_dir.glob("*.png"))

    def test_unexpected_provider_error_falls_through(self, tmp_path, cache_dir):
        path = _tile(tmp_path / "tile.png", (255, 255, 255, 255))
        primary = _provider(error=TypeError("unexpected payload"))
        secondary = _provider("secondary", error=KeyError("result"))

        assert BackgroundRemovalService(cache_dir, [primary, secondary]).remove_background(path) == path

        secondary.remove.assert_called_once()
        with Image.open(path) as result:
            assert result.getpixel((0, 0))[3] == 0

    def test_malformed_pixelcut_body_falls_back_to_secondary(self, tmp_path, cache_dir):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"result_url": 123}))
        )
        path = _tile(tmp_path / "tile.png")
        secondary = _provider("secondary", result=_png_bytes((7, 7, 7, 0)))
        service = BackgroundRemovalService(cache_dir, [PixelcutProvider(api_key="pk", client=client), secondary])

        service.remove_background(path)

        secondary.remove.assert_called_once()
        with Image.open(path) as image:
            assert image.getpixel((0, 0)) == (7, 7, 7, 0)

    def test_heuristic_when_all_providers_fail(self, tmp_path, cache_dir):
        path = tmp_path / "tile.png"
        image = Image.new("RGBA", (4, 4), (255, 255, 255, 255))
        image.putpixel((0, 0), (50, 60, 70, 255))
        image.save(path)
        providers = [
            _provider(error=TransientServiceError("down", "primary")),
            _provider("secondary", error=TransientServiceError("down", "secondary")),
        ]

        BackgroundRemovalService(cache_dir, providers).remove_background(path)

        with Image.open(path) as result:
            assert result.getpixel((0, 0)) == (50, 60, 70, 255)
            assert result.getpixel((3, 3))[3] == 0
        assert not cache_dir.exists() or not any(cache_dir.iterdir())

    def test_no_providers_uses_heuristic(self, tmp_path, cache_dir):
        path = _tile(tmp_path / "tile.png", (255, 255, 255, 255))
        BackgroundRemovalService(cache_dir).remove_background(path)
        with Image.open(path) as result:
            assert result.getpixel((0, 0))[3] == 0

    def test_unreadable_input_raises(self, tmp_path, cache_dir):
        path = tmp_path / "broken.png"
        path.write_bytes(b"garbage")
        with pytest.raises(OSError):
            BackgroundRemovalService(cache_dir).remove_background(path)

    def test_corrupt_cache_entry_is_discarded(self, tmp_path, cache_dir):
        path = _tile(tmp_path / "tile.png")
        cache_dir.mkdir()
        entry = cache_dir / f"{hashlib.sha256(path.read_bytes()).hexdigest()}.png"
        entry.write_bytes(_png_bytes()[:20])
        result = _png_bytes((4, 4, 4, 0))
        primary = _provider(result=result)

        BackgroundRemovalService(cache_dir, [primary]).remove_background(path)

        primary.remove.assert_called_once()
        assert entry.read_bytes() == result
        assert path.read_bytes() == result

    def test_cache_write_leaves_no_temporary_files(self, tmp_path, cache_dir):
        BackgroundRemovalService(cache_dir, [_provider()]).remove_background(_tile(tmp_path / "tile.png"))

        assert [p.suffix for p in cache_dir.iterdir()] == [".png"]

    def test_from_config_builds_chain(self, tmp_path):
        config = AppConfig(data_dir=tmp_path, pixelcut_api_key="p", removebg_api_key="r")
        service = BackgroundRemovalService.from_config(config)
        assert [type(p) for p in service.providers] == [PixelcutProvider, RemoveBgProvider]
        assert service.cache_dir == config.background_cache_dir

    def test_from_config_skips_missing_keys(self, tmp_path):
        service = BackgroundRemovalService.from_config(AppConfig(data_dir=tmp_path))
        assert service.providers == []


class TestPixelcutProvider:
    def _provider(self, handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return PixelcutProvider(api_key="pk", client=client)

    def test_success(self):
        result = _png_bytes((5, 5, 5, 0))
        seen = []

        def handler(request):
            request.read()
            seen.append(request)
            if request.url.host == "api.developer.pixelcut.ai":
                return httpx.Response(200, json={"result_url": PIXELCUT_RESULT})
            return httpx.Response(200, content=result)

        assert self._provider(handler).remove(_png_bytes()) == result
        upload = seen[0]
        assert upload.headers["X-API-KEY"] == "pk"
        assert b'name="image"' in upload.content
        assert b'name="format"' in upload.content
        assert str(seen[1].url) == PIXELCUT_RESULT

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(401, text="bad key"),
            httpx.Response(200, json={}),
            httpx.Response(200, text="nope"),
            httpx.Response(200, json={"result_url": 123}),
            httpx.Response(200, json={"result_url": ["https://cdn.example/a.png"]}),
        ],
    )
    def test_failures(self, response):
        with pytest.raises(TransientServiceError) as excinfo:
            self._provider(lambda request: response).remove(b"img")
        assert excinfo.value.provider == "pixelcut"

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("PIXELCUT_API_KEY", raising=False)
        with pytest.raises(ValueError, match="API key required"):
            PixelcutProvider()


class TestRemoveBgProvider:
    def test_success(self):
        result = _png_bytes()

        def handler(request):
            request.read()
            assert request.headers["X-Api-Key"] == "rk"
            assert b'name="image_file"' in request.content
            assert b'name="size"' in request.content
            return httpx.Response(200, content=result)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        assert RemoveBgProvider(api_key="rk", client=client).remove(b"img") == result

    def test_error_status(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(402, json={"errors": []})))
        with pytest.raises(TransientServiceError) as excinfo:
            RemoveBgProvider(api_key="rk", client=client).remove(b"img")
        assert excinfo.value.status_code == 402
