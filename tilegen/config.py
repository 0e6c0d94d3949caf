"""Configuration management for the tile generator."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field


class AppConfig(BaseModel):
    """Application-level configuration."""

    # API Keys
    ideogram_api_key: Optional[str] = Field(
        default=None,
        description="Ideogram API key for outpainting",
    )
    google_api_key: Optional[str] = Field(
        default=None,
        description="Google API key for Gemini",
    )
    pixelcut_api_key: Optional[str] = Field(
        default=None,
        description="Pixelcut API key (primary background removal)",
    )
    removebg_api_key: Optional[str] = Field(
        default=None,
        description="remove.bg API key (secondary background removal)",
    )

    # Directories
    data_dir: Path = Field(
        default=Path.cwd() / "assets",
        description="Root directory for tiles, masks and caches",
    )

    # Tile geometry
    tile_width: int = Field(default=512, description="Width of a world tile")
    tile_height: int = Field(default=512, description="Height of a world tile")
    close_map_tile_size: int = Field(default=128, description="Edge length of a close map tile")
    close_map_size: int = Field(default=16, description="Close map grid edge (tiles)")

    # Outpainting
    outpaint_provider: Literal["ideogram", "gemini"] = Field(
        default="ideogram",
        description="Backend used for outpainting",
    )
    ideogram_model: str = Field(default="V_2_TURBO", description="Ideogram edit model")
    gemini_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Gemini model for image generation",
    )
    max_upload_size: int = Field(
        default=1024,
        description="Largest edge of the composite sent for outpainting",
    )

    # Scheduling
    api_timeout: float = Field(default=120.0, description="Per-request timeout (seconds)")
    max_retries: int = Field(default=3, description="Total attempts per external request")
    batch_size: int = Field(default=4, description="Concurrent external requests per batch")

    # Post-processing
    use_fallback_tiles: bool = Field(
        default=True,
        description="Render placeholder tiles when generation is exhausted",
    )
    remove_backgrounds: bool = Field(
        default=True,
        description="Run background removal on accepted tiles",
    )

    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def tiles_dir(self) -> Path:
        return self.data_dir / "tiles"

    @property
    def masks_dir(self) -> Path:
        return self.data_dir / "masks"

    @property
    def background_cache_dir(self) -> Path:
        return self.data_dir / "bg_cache"

    @property
    def base_tile_path(self) -> Path:
        """Seed tile copied to (0, 0) of each region when present."""
        return self.data_dir / "base_tile.png"

    @property
    def tile_size(self) -> tuple[int, int]:
        return (self.tile_width, self.tile_height)

    @classmethod
    def load(cls) -> "AppConfig":
        """Load configuration from environment and defaults."""
        return cls(
            ideogram_api_key=os.environ.get("IDEOGRAM_API_KEY"),
            google_api_key=os.environ.get("GOOGLE_API_KEY"),
            pixelcut_api_key=os.environ.get("PIXELCUT_API_KEY"),
            removebg_api_key=os.environ.get("REMOVEBG_API_KEY"),
            data_dir=Path(os.environ.get("TILEGEN_DATA_DIR", str(cls.model_fields["data_dir"].default))),
            ideogram_model=os.environ.get("IDEOGRAM_MODEL", cls.model_fields["ideogram_model"].default),
            outpaint_provider=os.environ.get(
                "TILEGEN_OUTPAINT_PROVIDER", cls.model_fields["outpaint_provider"].default
            ),
            use_fallback_tiles=os.environ.get("USE_FALLBACK_TILES", "true").lower() != "false",
            log_level=os.environ.get("TILEGEN_LOG_LEVEL", cls.model_fields["log_level"].default),
        )

    def ensure_directories(self) -> None:
        """Create necessary directories."""
        for directory in (self.tiles_dir, self.masks_dir, self.background_cache_dir):
            directory.mkdir(parents=True, exist_ok=True)


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get or create global configuration."""
    global _config
    if _config is None:
        _config = AppConfig.load()
    return _config
