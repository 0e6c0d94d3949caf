"""Close map metadata (the zoomed-in grid behind a single world tile)."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError


class CloseMapMetadata(BaseModel):
    """Contents of a close map's ``metadata.json``."""

    region_x: int
    region_y: int
    tile_x: int
    tile_y: int
    terrain_code: str
    terrain_description: str = ""
    size: int = Field(..., gt=0, description="Grid edge length in tiles")
    tile_descriptions: list[str] = Field(
        default_factory=list,
        description="Row-major descriptions, index y * size + x",
    )
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_complete(self) -> bool:
        return len(self.tile_descriptions) == self.size * self.size

    def description_at(self, x: int, y: int) -> str:
        return self.tile_descriptions[y * self.size + x]

    @classmethod
    def from_json(cls, path: Path) -> "CloseMapMetadata":
        """Load metadata from a JSON file."""
        with open(path) as f:
            return cls.model_validate_json(f.read())

    @classmethod
    def try_load(cls, path: Path) -> Optional["CloseMapMetadata"]:
        """Load metadata, or None when the file is missing or malformed."""
        if not path.exists():
            return None
        try:
            return cls.from_json(path)
        except ValidationError:
            return None

    def to_json(self, path: Path) -> None:
        """Save metadata to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(self.model_dump_json(indent=2))
