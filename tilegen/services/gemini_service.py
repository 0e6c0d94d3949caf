"""Gemini outpainting backend.

Uses the Google GenAI SDK with native image output. Gemini has no dedicated
mask input, so the mask is sent as a second image and the prompt explains
which part of the canvas to fill.
"""

import base64
import logging
import os
import time
from io import BytesIO
from typing import Optional

from PIL import Image

from ..exceptions import TransientServiceError
from ..models.outpaint_region import OutpaintResult
from ..utils.image_utils import fit_within

logger = logging.getLogger(__name__)

PROVIDER = "gemini"

MASK_INSTRUCTIONS = (
    "The first image is a terrain canvas with a flat grey area to be filled. "
    "The second image is a mask: white marks the area to paint, black marks "
    "existing terrain that must be preserved pixel for pixel. Continue the "
    "existing terrain seamlessly into the white area. Return the full canvas "
    "at the same aspect ratio. "
)


class GeminiService:
    """Outpainting via Google Gemini image generation.

    See: https://ai.google.dev/gemini-api/docs/image-generation
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash-image",
    ):
        """
        Initialize Gemini service.

        Args:
            api_key: Google API key (or set GOOGLE_API_KEY env var)
            model: Model to use for generation
        """
        self.api_key = api_key or os.environ.get("GOOGLE_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Google API key required. Set GOOGLE_API_KEY environment variable "
                "or pass api_key parameter."
            )

        self.model = model
        self._client = None

    @property
    def client(self):
        """Lazy initialization of GenAI client."""
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def outpaint(
        self,
        canvas: Image.Image,
        mask: Image.Image,
        prompt: str,
        max_size: int = 1024,
    ) -> OutpaintResult:
        """
        Fill the white region of ``mask`` on ``canvas``.

        Raises:
            TransientServiceError: On SDK errors or a response without an image
        """
        from google.genai import types

        upload = fit_within(canvas.convert("RGB"), max_size)
        if upload.size != canvas.size:
            mask = mask.resize(upload.size, Image.Resampling.NEAREST)

        full_prompt = MASK_INSTRUCTIONS + prompt

        start_time = time.time()
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[upload, mask.convert("L"), full_prompt],
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE"],
                ),
            )
        except Exception as e:
            raise TransientServiceError(f"generate_content failed: {e}", PROVIDER) from e

        try:
            generated_image = self._extract_image_from_response(response)
        except ValueError as e:
            raise TransientServiceError(str(e), PROVIDER) from e

        generation_time = time.time() - start_time
        logger.info(
            "Gemini returned %dx%d image in %.1fs",
            generated_image.width,
            generated_image.height,
            generation_time,
        )
        return OutpaintResult(
            image=generated_image,
            prompt_used=full_prompt,
            model=self.model,
            generation_time=generation_time,
        )

    def _extract_image_from_response(self, response) -> Image.Image:
        """Extract PIL Image from Gemini response.

        Image data arrives in candidate parts as inline_data; the SDK returns
        raw bytes, older payloads may carry base64 strings.
        """
        if hasattr(response, "candidates") and response.candidates:
            candidate = response.candidates[0]
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is None:
                    continue
                image_data = inline.data
                if isinstance(image_data, str):
                    image_data = base64.b64decode(image_data)
                if isinstance(image_data, bytes):
                    return Image.open(BytesIO(image_data)).convert("RGBA")

        raise ValueError(
            f"Could not extract image from Gemini response. "
            f"Response type: {type(response)}, "
            f"Has candidates: {bool(getattr(response, 'candidates', None))}"
        )
