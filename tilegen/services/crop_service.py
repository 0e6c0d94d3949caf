"""Crop extraction: pull the new tile back out of an outpainted canvas."""

from PIL import Image

from ..models.outpaint_region import CompositeMode, crop_region
from ..utils.image_utils import resize_image


def extract_tile(
    image: Image.Image,
    mode: CompositeMode,
    tile_size: tuple[int, int],
) -> Image.Image:
    """
    Crop the generated fraction of a returned image into a tile.

    The crop is computed from the returned image's own size, so services that
    answer at a different resolution than requested still yield the right
    region. The result is always scaled to exactly ``tile_size``.

    Args:
        image: Full image returned by the outpainting service
        mode: Compositing mode the request was built with
        tile_size: (width, height) of the output tile

    Returns:
        RGBA tile of exactly tile_size
    """
    region = crop_region(mode, image.size)
    cropped = image.convert("RGBA").crop(region.bounds)
    return resize_image(cropped, tile_size)
