"""Background removal with a content-addressed cache.

Accepted tiles are sent to an external remove-background provider. Results
are cached by the SHA-256 of the input bytes so identical tiles are never
uploaded twice. When every provider fails, a local white-key heuristic runs
instead, so removal as a whole never fails on a readable image.
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Sequence, Union

import httpx
import numpy as np
from PIL import Image

from ..exceptions import TransientServiceError
from ..utils.image_utils import image_from_bytes, image_to_png_bytes, load_image

logger = logging.getLogger(__name__)

WHITE_THRESHOLD = 240


class PixelcutProvider:
    """Pixelcut remove-background API (returns a result URL)."""

    name = "pixelcut"
    API_URL = "https://api.developer.pixelcut.ai/v1/remove-background"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key or os.environ.get("PIXELCUT_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Pixelcut API key required. Set PIXELCUT_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self._client = client or httpx.Client(timeout=timeout)

    def remove(self, data: bytes) -> bytes:
        """Upload image bytes and return the processed PNG bytes."""
        try:
            response = self._client.post(
                self.API_URL,
                headers={"X-API-KEY": self.api_key, "Accept": "application/json"},
                data={"format": "png"},
                files={"image": ("tile.png", data, "image/png")},
            )
        except httpx.HTTPError as e:
            raise TransientServiceError(f"Request failed: {e}", self.name) from e

        if response.status_code != 200:
            raise TransientServiceError(
                f"Request returned {response.status_code}: {response.text[:200]}",
                self.name,
                status_code=response.status_code,
            )

        try:
            result_url = response.json().get("result_url")
        except (ValueError, AttributeError) as e:
            raise TransientServiceError("Response is not a JSON object", self.name) from e
        if not result_url or not isinstance(result_url, str):
            raise TransientServiceError(f"Response has no usable result_url: {result_url!r}", self.name)

        try:
            download = self._client.get(result_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransientServiceError(f"Result download failed: {e}", self.name) from e
        if download.status_code != 200:
            raise TransientServiceError(
                f"Result download returned {download.status_code}",
                self.name,
                status_code=download.status_code,
            )
        return download.content


class RemoveBgProvider:
    """remove.bg API (returns the image bytes directly)."""

    name = "remove.bg"
    API_URL = "https://api.remove.bg/v1.0/removebg"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key or os.environ.get("REMOVEBG_API_KEY")
        if not self.api_key:
            raise ValueError(
                "remove.bg API key required. Set REMOVEBG_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self._client = client or httpx.Client(timeout=timeout)

    def remove(self, data: bytes) -> bytes:
        try:
            response = self._client.post(
                self.API_URL,
                headers={"X-Api-Key": self.api_key},
                data={"size": "auto", "format": "png"},
                files={"image_file": ("tile.png", data, "image/png")},
            )
        except httpx.HTTPError as e:
            raise TransientServiceError(f"Request failed: {e}", self.name) from e

        if response.status_code != 200:
            raise TransientServiceError(
                f"Request returned {response.status_code}: {response.text[:200]}",
                self.name,
                status_code=response.status_code,
            )
        if not response.content:
            raise TransientServiceError("Response body is empty", self.name)
        return response.content


def remove_white_background(image: Image.Image, threshold: int = WHITE_THRESHOLD) -> Image.Image:
    """
    Make near-white pixels fully transparent.

    Any pixel whose R, G and B all exceed ``threshold`` gets alpha 0.

    Args:
        image: Source image (any mode)
        threshold: Per-channel brightness above which a pixel is background

    Returns:
        New RGBA image
    """
    data = np.array(image.convert("RGBA"))
    white = np.all(data[:, :, :3] > threshold, axis=2)
    data[white, 3] = 0
    return Image.fromarray(data)


class BackgroundRemovalService:
    """Runs the provider chain with a content-hash cache in front of it."""

    def __init__(self, cache_dir: Path, providers: Sequence = ()):
        """
        Initialize background removal.

        Args:
            cache_dir: Directory holding ``{sha256}.png`` cache entries
            providers: Objects with ``name`` and ``remove(bytes) -> bytes``,
                tried in order (primary first)
        """
        self.cache_dir = Path(cache_dir)
        self.providers = list(providers)

    @classmethod
    def from_config(cls, config) -> "BackgroundRemovalService":
        providers = []
        if config.pixelcut_api_key:
            providers.append(PixelcutProvider(config.pixelcut_api_key, timeout=config.api_timeout))
        if config.removebg_api_key:
            providers.append(RemoveBgProvider(config.removebg_api_key, timeout=config.api_timeout))
        return cls(config.background_cache_dir, providers)

    @staticmethod
    def content_hash(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def cache_path(self, content_hash: str) -> Path:
        return self.cache_dir / f"{content_hash}.png"

    def remove_background(self, path: Union[str, Path]) -> Path:
        """
        Replace the image at ``path`` with a background-free version.

        Order: cache, then each provider, then the local heuristic. Only an
        unreadable input file makes this raise.

        Returns:
            The same path
        """
        path = Path(path)
        data = path.read_bytes()
        digest = self.content_hash(data)
        cached = self.cache_path(digest)

        hit = self._read_cached(cached)
        if hit is not None:
            logger.info("Background cache hit for %s (%s)", path.name, digest[:12])
            path.write_bytes(hit)
            return path

        for provider in self.providers:
            try:
                result = provider.remove(data)
                # Must decode as an image
                image_from_bytes(result)
            except Exception as e:
                # Any provider failure falls through to the next one
                logger.warning("Background removal via %s failed: %s", provider.name, e)
                continue

            self._store(cached, result)
            path.write_bytes(result)
            logger.info("Background removed from %s via %s", path.name, provider.name)
            return path

        logger.warning("All background removal providers failed for %s; using heuristic", path.name)
        cleared = remove_white_background(load_image(path))
        path.write_bytes(image_to_png_bytes(cleared))
        return path

    def _read_cached(self, cached: Path) -> Optional[bytes]:
        if not cached.exists():
            return None
        data = cached.read_bytes()
        try:
            image_from_bytes(data)
        except (OSError, Image.DecompressionBombError) as e:
            logger.warning("Discarding unreadable cache entry %s: %s", cached.name, e)
            cached.unlink(missing_ok=True)
            return None
        return data

    def _store(self, cached: Path, result: bytes) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(result)
            os.replace(tmp_path, cached)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise
