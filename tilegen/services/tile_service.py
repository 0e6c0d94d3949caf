"""Tile generation: the pipeline from neighbor tiles to a persisted tile.

For one grid position: verify neighbors, composite them onto an outpainting
canvas, submit the outpainting call through the shared scheduler, crop and
enhance the result, write it, then strip its background. When the scheduler
gives up on the call, a locally rendered fallback tile is written instead.
Tiles are write-once: an existing file is always returned as-is.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..exceptions import ExhaustedRetriesError, MissingPrerequisiteError
from ..models.job import TileAttempt, TileState
from ..models.outpaint_region import CompositeMode
from ..models.position import GridPosition, TerrainCode
from ..utils.image_utils import load_image, save_image
from .background_removal_service import BackgroundRemovalService
from .compositing_service import CompositingService
from .crop_service import extract_tile
from .enhance_service import enhance
from .fallback_service import FallbackTileService
from .scheduler import RequestScheduler, run_blocking
from .terrain_service import build_prompt, terrain_code_for

logger = logging.getLogger(__name__)


@dataclass
class TileInfo:
    """Filesystem facts about one tile."""

    position: GridPosition
    path: Path
    exists: bool
    terrain_code: TerrainCode
    size_bytes: Optional[int] = None
    created: Optional[datetime] = None
    modified: Optional[datetime] = None


def describe_tile(tiles_dir: Path, position: GridPosition) -> TileInfo:
    """Existence, size and timestamps of a tile, plus its terrain code."""
    path = Path(tiles_dir) / position.filename
    info = TileInfo(
        position=position,
        path=path,
        exists=path.exists(),
        terrain_code=terrain_code_for(position),
    )
    if info.exists:
        stat = path.stat()
        info.size_bytes = stat.st_size
        info.created = datetime.fromtimestamp(stat.st_ctime)
        info.modified = datetime.fromtimestamp(stat.st_mtime)
    return info


def create_outpaint_backend(config):
    """Outpainting backend selected by ``config.outpaint_provider``."""
    if config.outpaint_provider == "gemini":
        from .gemini_service import GeminiService

        return GeminiService(api_key=config.google_api_key, model=config.gemini_model)

    from .ideogram_service import IdeogramService

    return IdeogramService(
        api_key=config.ideogram_api_key,
        model=config.ideogram_model,
        timeout=config.api_timeout,
    )


class TileGenerationService:
    """Generates world tiles from their LEFT and/or BOTTOM neighbors."""

    def __init__(
        self,
        tiles_dir: Path,
        backend,
        scheduler: RequestScheduler,
        compositor: CompositingService,
        fallback: FallbackTileService,
        background_remover: Optional[BackgroundRemovalService] = None,
        tile_size: tuple[int, int] = (512, 512),
        max_upload_size: int = 1024,
        use_fallback: bool = True,
        base_tile_path: Optional[Path] = None,
    ):
        """
        Initialize tile generation.

        Args:
            tiles_dir: Directory holding ``{rx}_{ry}_{x}_{y}.png`` tiles
            backend: Object with ``outpaint(canvas, mask, prompt, max_size)``
            scheduler: Shared request scheduler for all external calls
            compositor: Canvas and mask builder
            fallback: Placeholder tile renderer
            background_remover: Optional post-processing step
            tile_size: Output tile (width, height)
            max_upload_size: Longest edge of the canvas sent to the backend
            use_fallback: Write a placeholder when retries are exhausted;
                otherwise ExhaustedRetriesError propagates
            base_tile_path: Seed tile copied to (0, 0) when present
        """
        self.tiles_dir = Path(tiles_dir)
        self.backend = backend
        self.scheduler = scheduler
        self.compositor = compositor
        self.fallback = fallback
        self.background_remover = background_remover
        self.tile_size = tile_size
        self.max_upload_size = max_upload_size
        self.use_fallback = use_fallback
        self.base_tile_path = Path(base_tile_path) if base_tile_path else None

        # Latest attempt per position
        self.attempts: dict[GridPosition, TileAttempt] = {}

    @classmethod
    def from_config(
        cls,
        config,
        scheduler: Optional[RequestScheduler] = None,
        backend=None,
    ) -> "TileGenerationService":
        """Wire the full pipeline from application config."""
        config.ensure_directories()
        return cls(
            tiles_dir=config.tiles_dir,
            backend=backend or create_outpaint_backend(config),
            scheduler=scheduler or RequestScheduler.from_config(config),
            compositor=CompositingService(config.masks_dir),
            fallback=FallbackTileService(config.tiles_dir, config.tile_size),
            background_remover=(
                BackgroundRemovalService.from_config(config) if config.remove_backgrounds else None
            ),
            tile_size=config.tile_size,
            max_upload_size=config.max_upload_size,
            use_fallback=config.use_fallback_tiles,
            base_tile_path=config.base_tile_path,
        )

    # Queries

    def tile_path(self, position: GridPosition) -> Path:
        return self.tiles_dir / position.filename

    def tile_exists(self, position: GridPosition) -> bool:
        return self.tile_path(position).exists()

    def terrain_code_for(self, position: GridPosition) -> TerrainCode:
        return terrain_code_for(position)

    def tile_info(self, position: GridPosition) -> TileInfo:
        return describe_tile(self.tiles_dir, position)

    # Generation

    async def generate_from_left_neighbor(self, position: GridPosition) -> Path:
        """Extend the LEFT neighbor to the right."""
        return await self._generate(position, CompositeMode.HORIZONTAL)

    async def generate_from_bottom_neighbor(self, position: GridPosition) -> Path:
        """Extend the BOTTOM neighbor upward."""
        return await self._generate(position, CompositeMode.VERTICAL)

    async def generate_from_both_neighbors(self, position: GridPosition) -> Path:
        """Fill the corner between the LEFT and BOTTOM neighbors."""
        return await self._generate(position, CompositeMode.INTERIOR)

    async def resolve_tile(self, position: GridPosition) -> Path:
        """
        Return the tile at ``position``, generating it if needed.

        The region origin is seeded from the base tile (or a placeholder),
        the bottom row grows from the left, the left column grows upward,
        and everything else is filled from both neighbors.
        """
        path = self.tile_path(position)
        if path.exists():
            return path

        if position.x == 0 and position.y == 0:
            return await self._seed_origin(position)
        if position.y == 0:
            return await self.generate_from_left_neighbor(position)
        if position.x == 0:
            return await self.generate_from_bottom_neighbor(position)
        return await self.generate_from_both_neighbors(position)

    async def resolve_area(
        self,
        region_x: int,
        region_y: int,
        width: int,
        height: int,
    ) -> list[Path]:
        """
        Resolve every tile in the ``width`` x ``height`` block at the origin.

        Tiles on the same anti-diagonal (``x + y``) do not depend on each
        other, so each diagonal is submitted at once and the scheduler
        batches the calls.
        """
        paths = []
        for diagonal in range(width + height - 1):
            wave = [
                GridPosition(region_x, region_y, x, diagonal - x)
                for x in range(max(0, diagonal - height + 1), min(diagonal, width - 1) + 1)
            ]
            logger.info("Resolving %d tile(s) on diagonal %d", len(wave), diagonal)
            paths.extend(await asyncio.gather(*(self.resolve_tile(p) for p in wave)))
        return paths

    async def _seed_origin(self, position: GridPosition) -> Path:
        path = self.tile_path(position)
        if self.base_tile_path is not None and self.base_tile_path.exists():
            logger.info("Seeding %s from base tile %s", position, self.base_tile_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.base_tile_path, path)
            return path
        return await asyncio.to_thread(self.fallback.fallback_tile, position)

    def _neighbors_for(self, mode: CompositeMode, position: GridPosition) -> dict[str, GridPosition]:
        if mode is CompositeMode.HORIZONTAL:
            return {"left": position.left()}
        if mode is CompositeMode.VERTICAL:
            return {"bottom": position.below()}
        return {"left": position.left(), "bottom": position.below()}

    async def _generate(self, position: GridPosition, mode: CompositeMode) -> Path:
        path = self.tile_path(position)
        if path.exists():
            logger.debug("Tile %s already exists", position)
            return path

        neighbors = self._neighbors_for(mode, position)
        missing = [p for p in neighbors.values() if not self.tile_exists(p)]
        if missing:
            raise MissingPrerequisiteError(position, missing)

        attempt = TileAttempt(position=position)
        self.attempts[position] = attempt

        self._advance(attempt, TileState.COMPOSITING)
        images = {name: load_image(self.tile_path(p)) for name, p in neighbors.items()}
        request = self.compositor.compose(mode, **images)
        prompt = build_prompt(mode, terrain_code_for(position))

        self._advance(attempt, TileState.QUEUED)

        async def invoke():
            attempt.attempts += 1
            self._advance(attempt, TileState.IN_FLIGHT)
            try:
                return await run_blocking(
                    self.backend.outpaint,
                    request.canvas,
                    request.mask,
                    prompt,
                    self.max_upload_size,
                )
            except asyncio.CancelledError:
                # Per-attempt timeout
                self._record_failure(attempt, "attempt timed out")
                raise
            except Exception as e:
                self._record_failure(attempt, str(e))
                raise

        try:
            result = await self.scheduler.submit(invoke)
        except ExhaustedRetriesError as e:
            self._advance(attempt, TileState.EXHAUSTED)
            attempt.error = str(e)
            if not self.use_fallback:
                raise
            self._advance(attempt, TileState.FALLBACK)
            fallback_path = await asyncio.to_thread(self.fallback.fallback_tile, position)
            self._advance(attempt, TileState.DONE)
            return fallback_path

        self._advance(attempt, TileState.SUCCEEDED)
        tile = extract_tile(result.image, mode, self.tile_size)
        enhance(tile)
        save_image(tile, path)

        if self.background_remover is not None:
            await asyncio.to_thread(self.background_remover.remove_background, path)

        self._advance(attempt, TileState.DONE)
        logger.info(
            "Generated tile %s (%s) in %.1fs after %d attempt(s)",
            position,
            mode.value,
            attempt.generation_time,
            attempt.attempts,
        )
        return path

    def _advance(self, attempt: TileAttempt, state: TileState) -> None:
        logger.debug("Tile %s: %s -> %s", attempt.position, attempt.state.value, state.value)
        attempt.advance(state)

    def _record_failure(self, attempt: TileAttempt, error: str) -> None:
        attempt.error = error
        if attempt.attempts < self.scheduler.max_attempts:
            self._advance(attempt, TileState.RETRY)
            self._advance(attempt, TileState.QUEUED)
