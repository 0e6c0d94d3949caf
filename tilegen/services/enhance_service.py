"""Per-pixel tile enhancement (saturation boost + soft overlay sharpen)."""

import numpy as np
from PIL import Image

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)

SATURATION_FACTOR = 1.1
OVERLAY_OPACITY = 0.1


def enhance(image: Image.Image) -> Image.Image:
    """
    Boost saturation and lightly sharpen a tile, in place.

    For every pixel that is not fully transparent, each channel is pushed
    away from the pixel's luminance by SATURATION_FACTOR, then the result is
    overlay-blended with itself at OVERLAY_OPACITY. Alpha is untouched.

    Args:
        image: RGBA tile, modified in place

    Returns:
        The same image object
    """
    if image.mode != "RGBA":
        raise ValueError(f"enhance expects an RGBA image, got {image.mode}")

    data = np.array(image)
    visible = data[:, :, 3] > 0
    if not visible.any():
        return image

    rgb = data[:, :, :3].astype(np.float64)

    luminance = (rgb @ LUMA_WEIGHTS)[:, :, np.newaxis]
    saturated = np.clip(luminance + SATURATION_FACTOR * (rgb - luminance), 0, 255)

    # Overlay blend of the layer onto itself
    base = saturated / 255.0
    overlay = np.where(base < 0.5, 2 * base * base, 1 - 2 * (1 - base) * (1 - base))
    blended = (1 - OVERLAY_OPACITY) * base + OVERLAY_OPACITY * overlay

    result = np.rint(np.clip(blended * 255.0, 0, 255)).astype(np.uint8)
    data[:, :, :3] = np.where(visible[:, :, np.newaxis], result, data[:, :, :3])

    image.paste(Image.fromarray(data))
    return image
