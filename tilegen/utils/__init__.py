"""Utility functions for tile generation."""

from .image_utils import (
    fit_within,
    hex_to_rgba,
    image_from_bytes,
    image_to_png_bytes,
    load_image,
    resize_image,
    save_image,
)

__all__ = [
    "fit_within",
    "hex_to_rgba",
    "image_from_bytes",
    "image_to_png_bytes",
    "load_image",
    "resize_image",
    "save_image",
]
