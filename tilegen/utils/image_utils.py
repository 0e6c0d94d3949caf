"""Image processing utilities."""

from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image


def load_image(path: Union[str, Path]) -> Image.Image:
    """Load an image from file."""
    with Image.open(path) as image:
        return image.convert("RGBA")


def save_image(image: Image.Image, path: Union[str, Path]) -> Path:
    """Save an image as PNG, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format="PNG")
    return path


def image_to_png_bytes(image: Image.Image) -> bytes:
    """Encode an image as PNG bytes."""
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def image_from_bytes(data: bytes) -> Image.Image:
    """Decode image bytes into an RGBA image."""
    with Image.open(BytesIO(data)) as image:
        return image.convert("RGBA")


def resize_image(
    image: Image.Image,
    size: tuple[int, int],
    resample: int = Image.Resampling.LANCZOS,
) -> Image.Image:
    """Resize image to specified size."""
    if image.size == size:
        return image.copy()
    return image.resize(size, resample=resample)


def fit_within(image: Image.Image, max_size: int) -> Image.Image:
    """Downscale so the longest edge is at most max_size, keeping aspect."""
    if image.width <= max_size and image.height <= max_size:
        return image
    fitted = image.copy()
    fitted.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    return fitted


def hex_to_rgba(color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Convert ``#RRGGBB`` to an RGBA tuple."""
    color = color.lstrip("#")
    return (int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16), alpha)
