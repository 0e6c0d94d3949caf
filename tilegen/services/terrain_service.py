"""Deterministic terrain assignment and prompt building.

Terrain is a pure function of the grid position: the four coordinates are
mixed into one seed, and each token is picked from a small fixed table by
modulo. No I/O, no randomness, never fails.
"""

from ..models.outpaint_region import CompositeMode
from ..models.position import GridPosition, TerrainCode

BASE_TYPES = ("P-LUS", "F-OAK", "W-RIV", "D-SND", "M-RCK")
ELEVATION_MODIFIERS = ("E-FLT", "E-SLI", "E-HIL")
# None means "no feature modifier"
FEATURE_MODIFIERS = (None, "X-TRE", "X-RCK", "X-FLW")

# Large primes for coordinate mixing
_MIX = (73856093, 19349663, 83492791, 50331653)
_SEED_MASK = 0x7FFFFFFF

BASE_DESCRIPTIONS = {
    "P-LUS": "lush green grassland with short grass and some wildflowers",
    "F-OAK": "dense oak forest with mature trees and undergrowth",
    "W-RIV": "flowing river with clear water and subtle ripples",
    "D-SND": "sandy desert with wind-shaped dunes and dry scrub",
    "M-RCK": "rocky highland with exposed stone and sparse vegetation",
}
DEFAULT_BASE_DESCRIPTION = "grassy plains with subtle texture variations"

MODIFIER_DESCRIPTIONS = {
    "E-FLT": "completely flat terrain",
    "E-SLI": "with slight elevation changes",
    "E-HIL": "with rolling hills",
    "X-TRE": "with scattered trees",
    "X-RCK": "with small rocks and pebbles",
    "X-FLW": "with patches of wildflowers",
}

PROMPT_TEMPLATES = {
    CompositeMode.HORIZONTAL: "Isometric game terrain tile continuing seamlessly from the left side.",
    CompositeMode.VERTICAL: "Isometric game terrain tile continuing seamlessly from the bottom side.",
    CompositeMode.INTERIOR: (
        "Isometric game terrain tile continuing seamlessly from both the left and bottom sides."
    ),
}
STYLE_SUFFIX = "Clash Royale style, clean colors, transparent background."


def terrain_seed(position: GridPosition) -> int:
    """Mix the four coordinates into a non-negative scalar seed."""
    seed = 0
    for value, prime in zip(
        (position.region_x, position.region_y, position.x, position.y), _MIX
    ):
        seed ^= value * prime
    return seed & _SEED_MASK


def terrain_code_for(position: GridPosition) -> TerrainCode:
    """Terrain code for a grid position.

    Returns a base token and one elevation modifier, plus a feature modifier
    for some positions.
    """
    seed = terrain_seed(position)
    base = BASE_TYPES[seed % len(BASE_TYPES)]
    elevation = ELEVATION_MODIFIERS[(seed // 7) % len(ELEVATION_MODIFIERS)]
    feature = FEATURE_MODIFIERS[(seed // 31) % len(FEATURE_MODIFIERS)]

    modifiers = (elevation,) if feature is None else (elevation, feature)
    return TerrainCode(base=base, modifiers=modifiers)


def describe_terrain(code: TerrainCode) -> str:
    """Natural-language description of a terrain code for prompts."""
    description = BASE_DESCRIPTIONS.get(code.base, DEFAULT_BASE_DESCRIPTION)
    for modifier in code.modifiers:
        detail = MODIFIER_DESCRIPTIONS.get(modifier)
        if detail:
            description += f", {detail}"
    return description


def build_prompt(mode: CompositeMode, code: TerrainCode) -> str:
    """Full outpainting prompt for a compositing mode and terrain."""
    return f"{PROMPT_TEMPLATES[mode]} {describe_terrain(code)}. {STYLE_SUFFIX}"
