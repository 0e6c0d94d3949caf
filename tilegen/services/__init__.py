"""Tile generation services."""

from .terrain_service import build_prompt, describe_terrain, terrain_code_for
from .compositing_service import CompositeRequest, CompositingService
from .crop_service import extract_tile
from .enhance_service import enhance
from .scheduler import RequestScheduler, run_blocking
from .ideogram_service import IdeogramService
from .gemini_service import GeminiService
from .background_removal_service import (
    BackgroundRemovalService,
    PixelcutProvider,
    RemoveBgProvider,
    remove_white_background,
)
from .fallback_service import FallbackTileService
from .close_map_service import CloseMapService
from .tile_service import TileGenerationService, TileInfo, create_outpaint_backend, describe_tile

__all__ = [
    "build_prompt",
    "describe_terrain",
    "terrain_code_for",
    "CompositeRequest",
    "CompositingService",
    "extract_tile",
    "enhance",
    "RequestScheduler",
    "run_blocking",
    "IdeogramService",
    "GeminiService",
    "BackgroundRemovalService",
    "PixelcutProvider",
    "RemoveBgProvider",
    "remove_white_background",
    "FallbackTileService",
    "CloseMapService",
    "TileGenerationService",
    "TileInfo",
    "create_outpaint_backend",
    "describe_tile",
]
