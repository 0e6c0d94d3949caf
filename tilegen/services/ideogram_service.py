"""Ideogram edit API outpainting backend.

Sends the composite canvas and mask as a multipart upload to the edit
endpoint, then downloads the first generated image from the returned URL.
"""

import logging
import os
import time
from typing import Optional

import httpx
from PIL import Image

from ..exceptions import TransientServiceError
from ..models.outpaint_region import OutpaintResult
from ..utils.image_utils import fit_within, image_from_bytes, image_to_png_bytes

logger = logging.getLogger(__name__)

PROVIDER = "ideogram"


class IdeogramService:
    """Outpainting via Ideogram's masked edit endpoint."""

    EDIT_URL = "https://api.ideogram.ai/edit"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "V_2_TURBO",
        timeout: float = 120.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize Ideogram service.

        Args:
            api_key: Ideogram API key (or set IDEOGRAM_API_KEY env var)
            model: Edit model name
            timeout: HTTP timeout in seconds
            client: Optional pre-configured httpx client
        """
        self.api_key = api_key or os.environ.get("IDEOGRAM_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Ideogram API key required. Set IDEOGRAM_API_KEY environment variable "
                "or pass api_key parameter."
            )

        self.model = model
        self._client = client or httpx.Client(timeout=timeout)

    def outpaint(
        self,
        canvas: Image.Image,
        mask: Image.Image,
        prompt: str,
        max_size: int = 1024,
    ) -> OutpaintResult:
        """
        Fill the white region of ``mask`` on ``canvas``.

        The canvas is downscaled so its longest edge fits ``max_size``; the
        returned image may therefore be smaller than the canvas.

        Raises:
            TransientServiceError: On any transport, status or payload failure
        """
        upload = fit_within(canvas, max_size)
        if upload.size != canvas.size:
            mask = mask.resize(upload.size, Image.Resampling.NEAREST)

        start_time = time.time()
        try:
            response = self._client.post(
                self.EDIT_URL,
                headers={"Api-Key": self.api_key},
                data={"prompt": prompt, "model": self.model},
                files={
                    "image_file": ("image.png", image_to_png_bytes(upload), "image/png"),
                    "mask": ("mask.png", image_to_png_bytes(mask.convert("L")), "image/png"),
                },
            )
        except httpx.HTTPError as e:
            raise TransientServiceError(f"Edit request failed: {e}", PROVIDER) from e

        if response.status_code != 200:
            raise TransientServiceError(
                f"Edit request returned {response.status_code}: {response.text[:200]}",
                PROVIDER,
                status_code=response.status_code,
            )

        image_url = self._extract_image_url(response)
        image = self._download(image_url)

        generation_time = time.time() - start_time
        logger.info(
            "Ideogram returned %dx%d image in %.1fs", image.width, image.height, generation_time
        )
        return OutpaintResult(
            image=image,
            prompt_used=prompt,
            model=self.model,
            generation_time=generation_time,
        )

    def _extract_image_url(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError as e:
            raise TransientServiceError("Edit response is not JSON", PROVIDER) from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list) or not data:
            raise TransientServiceError("Edit response contained no images", PROVIDER)

        url = data[0].get("url") if isinstance(data[0], dict) else None
        if not url or not isinstance(url, str):
            raise TransientServiceError("Edit response image has no URL", PROVIDER)
        return url

    def _download(self, url: str) -> Image.Image:
        try:
            response = self._client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransientServiceError(f"Image download failed: {e}", PROVIDER) from e

        if response.status_code != 200:
            raise TransientServiceError(
                f"Image download returned {response.status_code}",
                PROVIDER,
                status_code=response.status_code,
            )
        try:
            return image_from_bytes(response.content)
        except (OSError, Image.DecompressionBombError) as e:
            raise TransientServiceError(f"Downloaded image is unreadable: {e}", PROVIDER) from e

    def close(self) -> None:
        self._client.close()
