"""Compositing service: neighbor tiles + blank space + mask.

Builds the oversized canvas and matching binary mask sent for outpainting.
Masks depend only on (mode, width, height), so each distinct key is rendered
once, written to the masks directory and read back verbatim afterwards.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw

from ..models.outpaint_region import CompositeMode, OutpaintRegion, canvas_size, generate_region

logger = logging.getLogger(__name__)

# Mask pixel values
MASK_PRESERVE = 0
MASK_GENERATE = 255


@dataclass
class CompositeRequest:
    """Canvas and mask ready for an outpainting call."""

    mode: CompositeMode
    canvas: Image.Image
    mask: Image.Image
    region: OutpaintRegion
    """Area of the canvas marked for generation."""

    @property
    def size(self) -> tuple[int, int]:
        return self.canvas.size


class CompositingService:
    """Assembles outpainting inputs from already-loaded neighbor tiles.

    Callers must verify neighbor tiles exist before compositing; this service
    only works with images already in memory.
    """

    def __init__(
        self,
        masks_dir: Path,
        fill_color: tuple[int, int, int] = (128, 128, 128),
    ):
        """
        Initialize compositing service.

        Args:
            masks_dir: Directory for the on-disk mask cache
            fill_color: RGB color for the blank region to be generated
        """
        self.masks_dir = Path(masks_dir)
        self.fill_color = fill_color

    def compose_horizontal(self, left: Image.Image) -> CompositeRequest:
        """Canvas extending the LEFT neighbor to the right."""
        return self.compose(CompositeMode.HORIZONTAL, left=left)

    def compose_vertical(self, bottom: Image.Image) -> CompositeRequest:
        """Canvas extending the BOTTOM neighbor upward."""
        return self.compose(CompositeMode.VERTICAL, bottom=bottom)

    def compose_interior(self, left: Image.Image, bottom: Image.Image) -> CompositeRequest:
        """Canvas filling the corner between LEFT and BOTTOM neighbors."""
        return self.compose(CompositeMode.INTERIOR, left=left, bottom=bottom)

    def compose(
        self,
        mode: CompositeMode,
        left: Optional[Image.Image] = None,
        bottom: Optional[Image.Image] = None,
    ) -> CompositeRequest:
        """
        Build the canvas and mask for a compositing mode.

        Args:
            mode: Compositing mode
            left: LEFT neighbor tile (horizontal, interior)
            bottom: BOTTOM neighbor tile (vertical, interior)

        Returns:
            CompositeRequest with canvas, cached mask and generate region
        """
        left_size = left.size if left is not None else None
        bottom_size = bottom.size if bottom is not None else None
        size = canvas_size(mode, left=left_size, bottom=bottom_size)

        canvas = Image.new("RGBA", size, (*self.fill_color, 255))

        if mode is CompositeMode.HORIZONTAL:
            canvas.alpha_composite(left.convert("RGBA"), (0, 0))
        elif mode is CompositeMode.VERTICAL:
            canvas.alpha_composite(bottom.convert("RGBA"), (0, size[1] - bottom.height))
        else:
            # BOTTOM first, LEFT second: LEFT wins where they overlap
            canvas.alpha_composite(bottom.convert("RGBA"), (0, size[1] - bottom.height))
            canvas.alpha_composite(left.convert("RGBA"), (0, 0))

        mask = self.get_mask(mode, size, left=left_size, bottom=bottom_size)
        region = generate_region(mode, size, left=left_size, bottom=bottom_size)

        logger.debug("Composited %s canvas %dx%d", mode.value, size[0], size[1])
        return CompositeRequest(mode=mode, canvas=canvas, mask=mask, region=region)

    def mask_path(self, mode: CompositeMode, size: tuple[int, int]) -> Path:
        """Canonical cache path, e.g. ``horizontal_mask_614x512.png``."""
        return self.masks_dir / f"{mode.value}_mask_{size[0]}x{size[1]}.png"

    def get_mask(
        self,
        mode: CompositeMode,
        size: tuple[int, int],
        left: Optional[tuple[int, int]] = None,
        bottom: Optional[tuple[int, int]] = None,
    ) -> Image.Image:
        """Load a cached mask, rendering and persisting it on first use."""
        path = self.mask_path(mode, size)
        if path.exists():
            logger.debug("Using cached mask %s", path.name)
            with Image.open(path) as cached:
                return cached.convert("L")

        logger.info("Creating new %s mask %dx%d", mode.value, size[0], size[1])
        mask = self._render_mask(mode, size, left, bottom)
        path.parent.mkdir(parents=True, exist_ok=True)
        mask.save(path, format="PNG")
        return mask

    def _render_mask(
        self,
        mode: CompositeMode,
        size: tuple[int, int],
        left: Optional[tuple[int, int]],
        bottom: Optional[tuple[int, int]],
    ) -> Image.Image:
        """Black (preserve) mask with the generate region filled white."""
        mask = Image.new("L", size, MASK_PRESERVE)
        region = generate_region(mode, size, left=left, bottom=bottom)
        x0, y0, x1, y1 = region.bounds
        # ImageDraw rectangles include the far edge
        ImageDraw.Draw(mask).rectangle((x0, y0, x1 - 1, y1 - 1), fill=MASK_GENERATE)
        return mask
