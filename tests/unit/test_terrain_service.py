"""Tests for deterministic terrain assignment and prompt building."""

import pytest

from tilegen.models.outpaint_region import CompositeMode
from tilegen.models.position import GridPosition, TerrainCode
from tilegen.services.terrain_service import (
    BASE_TYPES,
    DEFAULT_BASE_DESCRIPTION,
    ELEVATION_MODIFIERS,
    FEATURE_MODIFIERS,
    STYLE_SUFFIX,
    build_prompt,
    describe_terrain,
    terrain_code_for,
    terrain_seed,
)


class TestTerrainSeed:
    def test_origin_seed_is_zero(self, origin):
        assert terrain_seed(origin) == 0

    def test_non_negative_for_negative_coordinates(self):
        assert terrain_seed(GridPosition(-3, -7, -1, -250)) >= 0

    def test_fits_in_31_bits(self):
        assert terrain_seed(GridPosition(999, 999, 999, 999)) < 2**31


class TestTerrainCodeFor:
    def test_origin(self, origin):
        assert str(terrain_code_for(origin)) == "P-LUS|E-FLT"

    def test_known_position(self):
        # seed 83492791: base 1, elevation 0, feature 3
        code = terrain_code_for(GridPosition(0, 0, 1, 0))
        assert str(code) == "F-OAK|E-FLT|X-FLW"

    def test_deterministic(self):
        position = GridPosition(2, -1, 14, 9)
        codes = {terrain_code_for(position) for _ in range(20)}
        assert len(codes) == 1

    @pytest.mark.parametrize("x", range(-5, 15))
    def test_tokens_come_from_tables(self, x):
        code = terrain_code_for(GridPosition(1, 2, x, x * 3))
        assert code.base in BASE_TYPES
        assert code.modifiers[0] in ELEVATION_MODIFIERS
        assert len(code.modifiers) in (1, 2)
        if len(code.modifiers) == 2:
            assert code.modifiers[1] in FEATURE_MODIFIERS

    def test_neighbors_vary(self):
        codes = {str(terrain_code_for(GridPosition(0, 0, x, 0))) for x in range(30)}
        assert len(codes) > 3


class TestDescribeTerrain:
    def test_base_and_modifiers(self):
        text = describe_terrain(TerrainCode("W-RIV", ("E-HIL", "X-RCK")))
        assert text.startswith("flowing river")
        assert "rolling hills" in text
        assert "small rocks" in text

    def test_unknown_base_falls_back(self):
        assert describe_terrain(TerrainCode("Q-ZZZ")) == DEFAULT_BASE_DESCRIPTION

    def test_unknown_modifier_ignored(self):
        assert describe_terrain(TerrainCode("P-LUS", ("X-???",))) == describe_terrain(
            TerrainCode("P-LUS")
        )


class TestBuildPrompt:
    @pytest.mark.parametrize(
        "mode, phrase",
        [
            (CompositeMode.HORIZONTAL, "from the left side"),
            (CompositeMode.VERTICAL, "from the bottom side"),
            (CompositeMode.INTERIOR, "both the left and bottom sides"),
        ],
    )
    def test_mode_phrase(self, mode, phrase):
        prompt = build_prompt(mode, TerrainCode("D-SND", ("E-SLI",)))
        assert phrase in prompt
        assert "sandy desert" in prompt
        assert prompt.endswith(STYLE_SUFFIX)
