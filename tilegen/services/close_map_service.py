"""Close maps: a fine grid of placeholder tiles behind each world tile.

Each world tile can be opened as a ``size`` x ``size`` close map. Cell
descriptions are drawn from a per-terrain vocabulary (mostly the primary
feature, with rarer secondary, tertiary and special features) using a
generator seeded from the world position, so a close map is reproducible.
"""

import logging
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from ..models.close_map import CloseMapMetadata
from ..models.position import GridPosition, TerrainCode
from ..utils.image_utils import hex_to_rgba, save_image
from .terrain_service import describe_terrain, terrain_code_for, terrain_seed

logger = logging.getLogger(__name__)

# Terrain family -> (primary, secondary, tertiary, special)
CELL_VOCABULARY = {
    "P": ("grass", "tall grass", "small rocks", "wildflowers"),
    "F": ("trees", "bushes", "fallen logs", "mushrooms"),
    "D": ("sand", "dry soil", "small rocks", "cactus"),
    "M": ("rocky ground", "boulders", "gravel", "mountain flowers"),
    "W": ("shallow water", "reeds", "mud", "water lilies"),
}
DEFAULT_VOCABULARY = ("grass", "tall grass", "rocks", "wildflowers")

# Cumulative probability thresholds for primary, secondary, tertiary
VOCABULARY_WEIGHTS = (0.6, 0.8, 0.95)

# First matching keyword wins, so longer phrases come first
DESCRIPTION_COLORS = (
    ("tall grass", "#388E3C"),
    ("grass", "#4CAF50"),
    ("tree", "#2E7D32"),
    ("forest", "#1B5E20"),
    ("water", "#2196F3"),
    ("river", "#1976D2"),
    ("lake", "#0D47A1"),
    ("sand", "#FDD835"),
    ("desert", "#F9A825"),
    ("rock", "#757575"),
    ("mountain", "#616161"),
    ("snow", "#ECEFF1"),
    ("ice", "#CFD8DC"),
    ("flower", "#E91E63"),
    ("mud", "#795548"),
    ("path", "#8D6E63"),
    ("road", "#6D4C41"),
)
DEFAULT_CELL_COLOR = "#8BC34A"

LABEL_COLOR = (0, 0, 0, 180)


def color_for_description(description: str) -> str:
    description = description.lower()
    for keyword, color in DESCRIPTION_COLORS:
        if keyword in description:
            return color
    return DEFAULT_CELL_COLOR


def generate_cell_descriptions(
    code: TerrainCode,
    size: int,
    seed: Optional[int] = None,
) -> list[str]:
    """
    Row-major list of ``size * size`` cell descriptions for a terrain.

    Args:
        code: Terrain code of the world tile
        size: Grid edge length
        seed: Seed for the draw; None gives a non-reproducible grid

    Returns:
        Descriptions indexed ``y * size + x``
    """
    vocabulary = CELL_VOCABULARY.get(code.category, DEFAULT_VOCABULARY)
    draws = np.random.default_rng(seed).random(size * size)
    indices = np.searchsorted(VOCABULARY_WEIGHTS, draws, side="right")
    return [vocabulary[i] for i in indices]


class CloseMapService:
    """Builds and caches placeholder close maps under ``tiles_dir/close_maps``."""

    METADATA_FILENAME = "metadata.json"

    def __init__(
        self,
        tiles_dir: Path,
        size: int = 16,
        cell_size: int = 128,
    ):
        """
        Initialize close map service.

        Args:
            tiles_dir: World tile directory; close maps live in a subdirectory
            size: Close map grid edge length in cells
            cell_size: Edge length of each cell image in pixels
        """
        self.tiles_dir = Path(tiles_dir)
        self.size = size
        self.cell_size = cell_size

    @property
    def close_maps_dir(self) -> Path:
        return self.tiles_dir / "close_maps"

    def close_map_dir(self, position: GridPosition) -> Path:
        return self.close_maps_dir / position.key

    def cell_path(self, position: GridPosition, x: int, y: int) -> Path:
        return self.close_map_dir(position) / f"{x}_{y}.png"

    def generate_close_map(self, position: GridPosition) -> CloseMapMetadata:
        """
        Create (or complete) the close map for a world tile.

        Existing metadata is reused when it holds a full set of descriptions;
        missing cell images are rendered from it.

        Returns:
            The close map's metadata
        """
        directory = self.close_map_dir(position)
        metadata_path = directory / self.METADATA_FILENAME

        metadata = CloseMapMetadata.try_load(metadata_path)
        if metadata is not None and metadata.is_complete and metadata.size == self.size:
            logger.info("Using existing close map metadata for %s", position)
        else:
            if metadata is not None:
                logger.info("Existing close map metadata for %s is incomplete, regenerating", position)
            metadata = self._build_metadata(position)
            metadata.to_json(metadata_path)

        rendered = 0
        for y in range(self.size):
            for x in range(self.size):
                path = self.cell_path(position, x, y)
                if path.exists():
                    continue
                save_image(self.render_cell(metadata.description_at(x, y)), path)
                rendered += 1

        logger.info("Close map for %s ready (%d cell(s) rendered)", position, rendered)
        return metadata

    def load_close_map(self, position: GridPosition) -> Optional[CloseMapMetadata]:
        return CloseMapMetadata.try_load(self.close_map_dir(position) / self.METADATA_FILENAME)

    def render_cell(self, description: str) -> Image.Image:
        """Solid cell colored by its description, labeled at mid-height."""
        image = Image.new(
            "RGBA",
            (self.cell_size, self.cell_size),
            hex_to_rgba(color_for_description(description)),
        )
        draw = ImageDraw.Draw(image)
        draw.text(
            (10, self.cell_size // 2),
            description,
            fill=LABEL_COLOR,
            font=ImageFont.load_default(),
        )
        return image

    def _build_metadata(self, position: GridPosition) -> CloseMapMetadata:
        code = terrain_code_for(position)
        return CloseMapMetadata(
            region_x=position.region_x,
            region_y=position.region_y,
            tile_x=position.x,
            tile_y=position.y,
            terrain_code=str(code),
            terrain_description=describe_terrain(code),
            size=self.size,
            tile_descriptions=generate_cell_descriptions(
                code, self.size, seed=terrain_seed(position)
            ),
        )
