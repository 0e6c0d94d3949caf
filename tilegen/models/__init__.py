"""Data models for tile generation."""

from .position import GridPosition, TerrainCode
from .close_map import CloseMapMetadata
from .job import JobState, QueueJob, TileAttempt, TileState
from .outpaint_region import (
    CompositeMode,
    OutpaintRegion,
    OutpaintResult,
    canvas_size,
    crop_region,
    generate_region,
)

__all__ = [
    "CloseMapMetadata",
    "GridPosition",
    "TerrainCode",
    "JobState",
    "QueueJob",
    "TileAttempt",
    "TileState",
    "CompositeMode",
    "OutpaintRegion",
    "OutpaintResult",
    "canvas_size",
    "crop_region",
    "generate_region",
]
