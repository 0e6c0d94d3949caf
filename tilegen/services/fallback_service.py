"""Placeholder tiles rendered locally, with no network dependency."""

import logging
from pathlib import Path
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from ..models.position import GridPosition, TerrainCode
from ..utils.image_utils import hex_to_rgba, save_image
from .terrain_service import terrain_code_for

logger = logging.getLogger(__name__)

# Base terrain family -> placeholder color
TERRAIN_PALETTE = {
    "P": "#4CAF50",  # plains
    "F": "#2E7D32",  # forest
    "W": "#2196F3",  # water
    "D": "#FDD835",  # desert
    "M": "#757575",  # mountains
}
DEFAULT_COLOR = "#8BC34A"

TEXT_COLOR = (0, 0, 0, 180)


def color_for_terrain(code: TerrainCode) -> str:
    return TERRAIN_PALETTE.get(code.category, DEFAULT_COLOR)


def render_placeholder(
    size: tuple[int, int],
    color: str,
    lines: Sequence[str] = (),
) -> Image.Image:
    """Solid-color RGBA raster with optional debug text lines."""
    image = Image.new("RGBA", size, hex_to_rgba(color))
    if lines:
        draw = ImageDraw.Draw(image)
        font = ImageFont.load_default()
        for i, line in enumerate(lines):
            draw.text((10, 10 + i * 20), line, fill=TEXT_COLOR, font=font)
    return image


class FallbackTileService:
    """Renders solid-color placeholder tiles annotated with debug text."""

    def __init__(self, tiles_dir: Path, tile_size: tuple[int, int] = (512, 512)):
        self.tiles_dir = Path(tiles_dir)
        self.tile_size = tile_size

    def render(self, position: GridPosition) -> Image.Image:
        """Placeholder raster for a position, without touching disk."""
        code = terrain_code_for(position)
        return render_placeholder(
            self.tile_size,
            color_for_terrain(code),
            lines=(
                f"Region: {position.region_x},{position.region_y}",
                f"Tile: {position.x},{position.y}",
                f"Terrain: {code}",
            ),
        )

    def fallback_tile(self, position: GridPosition) -> Path:
        """
        Render a placeholder tile and write it to the canonical tile path.

        Only filesystem errors can make this fail.

        Returns:
            Path of the written tile
        """
        path = self.tiles_dir / position.filename
        logger.warning("Generating fallback tile for %s", position)
        save_image(self.render(position), path)
        return path
