"""Grid coordinates and terrain codes."""

from dataclasses import dataclass


@dataclass(frozen=True)
class GridPosition:
    """Location of a tile in the world grid.

    Each region is an independent coordinate space; ``x`` grows to the right
    and ``y`` grows upward, so the BOTTOM neighbor of a tile is at ``y - 1``.
    """

    region_x: int
    region_y: int
    x: int
    y: int

    @property
    def filename(self) -> str:
        """Canonical tile filename, e.g. ``0_0_3_1.png``."""
        return f"{self.region_x}_{self.region_y}_{self.x}_{self.y}.png"

    @property
    def key(self) -> str:
        return f"{self.region_x}_{self.region_y}_{self.x}_{self.y}"

    def left(self) -> "GridPosition":
        """Position of the LEFT neighbor."""
        return GridPosition(self.region_x, self.region_y, self.x - 1, self.y)

    def below(self) -> "GridPosition":
        """Position of the BOTTOM neighbor."""
        return GridPosition(self.region_x, self.region_y, self.x, self.y - 1)

    @classmethod
    def parse(cls, text: str) -> "GridPosition":
        """Parse ``"rx,ry,x,y"`` or ``"rx_ry_x_y"``."""
        parts = text.replace("_", ",").split(",")
        if len(parts) != 4:
            raise ValueError(f"Expected four integers, got {text!r}")
        return cls(*(int(p) for p in parts))

    def __str__(self) -> str:
        return f"({self.region_x},{self.region_y},{self.x},{self.y})"


@dataclass(frozen=True)
class TerrainCode:
    """Base terrain token plus ordered modifier tokens.

    Serialized pipe-delimited, e.g. ``F-OAK|E-SLI|X-RCK``.
    """

    base: str
    modifiers: tuple[str, ...] = ()

    @property
    def tokens(self) -> tuple[str, ...]:
        return (self.base, *self.modifiers)

    @property
    def category(self) -> str:
        """Single-letter terrain family (``P``, ``F``, ``W``, ``D``, ``M``)."""
        return self.base[:1]

    @classmethod
    def parse(cls, text: str) -> "TerrainCode":
        base, *modifiers = text.split("|")
        return cls(base=base, modifiers=tuple(modifiers))

    def __str__(self) -> str:
        return "|".join(self.tokens)
