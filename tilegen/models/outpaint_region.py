"""Outpainting geometry shared by compositing and crop extraction.

Every new tile is produced by drawing existing neighbor tiles onto an
oversized canvas, asking the image service to fill a masked region, and
cropping the filled region back out. The fractions below are load-bearing:
the compositor uses them to size the canvas and the mask, and the crop
extractor uses them to find the new tile in whatever the service returns.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from PIL import Image


class CompositeMode(Enum):
    """Which neighbors condition the new tile."""

    HORIZONTAL = "horizontal"
    """Extend to the right of the LEFT neighbor."""

    VERTICAL = "vertical"
    """Extend above the BOTTOM neighbor."""

    INTERIOR = "interior"
    """Fill the corner above BOTTOM and right of LEFT."""


# Horizontal: canvas is 1.2x the neighbor width, rightmost 20% is generated.
HORIZONTAL_CANVAS_SCALE = 1.2
HORIZONTAL_GENERATE_FRACTION = 0.2

# Vertical: canvas is 1.75x the neighbor height, top 75% is generated.
VERTICAL_CANVAS_SCALE = 1.75
VERTICAL_GENERATE_FRACTION = 0.75

# Interior: each neighbor contributes a third of its extent as overlap,
# two thirds of the canvas edge is kept as context.
INTERIOR_EXTENSION_FRACTION = 1 / 3
INTERIOR_KEEP_FRACTION = 2 / 3


@dataclass(frozen=True)
class OutpaintRegion:
    """Axis-aligned rectangle inside a canvas or a returned image."""

    x: int
    y: int
    width: int
    height: int

    @property
    def bounds(self) -> tuple[int, int, int, int]:
        """Get (left, top, right, bottom) bounds."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def area(self) -> int:
        return self.width * self.height

    def __str__(self) -> str:
        return f"OutpaintRegion at ({self.x},{self.y}) {self.width}x{self.height}"


def canvas_size(
    mode: CompositeMode,
    left: Optional[tuple[int, int]] = None,
    bottom: Optional[tuple[int, int]] = None,
) -> tuple[int, int]:
    """Canvas (width, height) for a compositing mode.

    Args:
        mode: Compositing mode
        left: (width, height) of the LEFT neighbor (horizontal, interior)
        bottom: (width, height) of the BOTTOM neighbor (vertical, interior)
    """
    if mode is CompositeMode.HORIZONTAL:
        width, height = _require(left, "left", mode)
        return (round(width * HORIZONTAL_CANVAS_SCALE), height)

    if mode is CompositeMode.VERTICAL:
        width, height = _require(bottom, "bottom", mode)
        return (width, round(height * VERTICAL_CANVAS_SCALE))

    left_w, left_h = _require(left, "left", mode)
    bottom_w, bottom_h = _require(bottom, "bottom", mode)
    return (
        round(left_w + bottom_w * INTERIOR_EXTENSION_FRACTION),
        round(bottom_h + left_h * INTERIOR_EXTENSION_FRACTION),
    )


def generate_region(
    mode: CompositeMode,
    size: tuple[int, int],
    left: Optional[tuple[int, int]] = None,
    bottom: Optional[tuple[int, int]] = None,
) -> OutpaintRegion:
    """Region of a canvas that the mask marks as "generate".

    Args:
        mode: Compositing mode
        size: (width, height) of the canvas
        left: LEFT neighbor size, required for interior mode
        bottom: BOTTOM neighbor size, required for interior mode
    """
    width, height = size

    if mode is CompositeMode.HORIZONTAL:
        x0 = round(width * (1 - HORIZONTAL_GENERATE_FRACTION))
        return OutpaintRegion(x0, 0, width - x0, height)

    if mode is CompositeMode.VERTICAL:
        return OutpaintRegion(0, 0, width, round(height * VERTICAL_GENERATE_FRACTION))

    left_w, _ = _require(left, "left", mode)
    _, bottom_h = _require(bottom, "bottom", mode)
    x0 = round(left_w * INTERIOR_KEEP_FRACTION)
    y1 = height - round(bottom_h * INTERIOR_KEEP_FRACTION)
    return OutpaintRegion(x0, 0, width - x0, y1)


def crop_region(mode: CompositeMode, size: tuple[int, int]) -> OutpaintRegion:
    """Region of a returned image holding the newly generated tile.

    Expressed purely as fractions of the returned image so it holds for any
    resolution the service chooses to answer with.
    """
    width, height = size

    if mode is CompositeMode.HORIZONTAL:
        x0 = round(width * (1 - HORIZONTAL_GENERATE_FRACTION))
        return OutpaintRegion(x0, 0, width - x0, height)

    if mode is CompositeMode.VERTICAL:
        return OutpaintRegion(0, 0, width, round(height * VERTICAL_GENERATE_FRACTION))

    x0 = round(width * INTERIOR_KEEP_FRACTION)
    return OutpaintRegion(x0, 0, width - x0, round(height * INTERIOR_KEEP_FRACTION))


def _require(value, name: str, mode: CompositeMode):
    if value is None:
        raise ValueError(f"{mode.value} compositing needs the {name} neighbor size")
    return value


@dataclass
class OutpaintResult:
    """Image returned by an outpainting backend."""

    image: Image.Image
    prompt_used: str
    model: str
    generation_time: float
