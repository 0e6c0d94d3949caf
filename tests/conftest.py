"""Shared test fixtures."""

import numpy as np
import pytest
from PIL import Image

from tilegen.config import AppConfig
from tilegen.models.outpaint_region import OutpaintResult
from tilegen.models.position import GridPosition


@pytest.fixture
def app_config(tmp_path):
    """Config rooted in a temporary data directory with no API keys."""
    return AppConfig(data_dir=tmp_path / "assets")


@pytest.fixture
def origin():
    """Origin of region (0, 0)."""
    return GridPosition(0, 0, 0, 0)


@pytest.fixture
def solid_red_image():
    """64x64 solid red RGBA image."""
    return Image.new("RGBA", (64, 64), (255, 0, 0, 255))


@pytest.fixture
def solid_blue_image():
    """64x64 solid blue RGBA image."""
    return Image.new("RGBA", (64, 64), (0, 0, 255, 255))


@pytest.fixture
def transparent_image():
    """64x64 fully transparent image."""
    return Image.new("RGBA", (64, 64), (0, 0, 0, 0))


@pytest.fixture
def gradient_image():
    """64x64 horizontal gradient from black to white."""
    arr = np.zeros((64, 64, 4), dtype=np.uint8)
    arr[:, :, 0] = np.tile(np.linspace(0, 255, 64, dtype=np.uint8), (64, 1))
    arr[:, :, 1] = arr[:, :, 0]
    arr[:, :, 2] = arr[:, :, 0]
    arr[:, :, 3] = 255
    return Image.fromarray(arr)


@pytest.fixture
def green_tile():
    """512x512 opaque tile, the default world tile size."""
    return Image.new("RGBA", (512, 512), (60, 160, 70, 255))


class FakeOutpaintBackend:
    """Backend double that records calls and answers with a fixed color.

    ``failures`` calls fail before it starts succeeding; pass a large number
    to make it always fail.
    """

    def __init__(self, color=(200, 30, 30, 255), failures=0, scale=1.0):
        self.color = color
        self.failures = failures
        self.scale = scale
        self.calls = []

    def outpaint(self, canvas, mask, prompt, max_size=1024):
        self.calls.append({"size": canvas.size, "mask": mask.copy(), "prompt": prompt})
        if len(self.calls) <= self.failures:
            raise RuntimeError(f"outpaint failure #{len(self.calls)}")
        size = (round(canvas.width * self.scale), round(canvas.height * self.scale))
        return OutpaintResult(
            image=Image.new("RGBA", size, self.color),
            prompt_used=prompt,
            model="fake",
            generation_time=0.0,
        )


@pytest.fixture
def fake_backend():
    return FakeOutpaintBackend()


@pytest.fixture
def make_backend():
    """Factory for backends with custom color, failure count or scale."""
    return FakeOutpaintBackend
