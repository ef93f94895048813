from __future__ import annotations

import random
from pathlib import Path

import pytest
from PIL import Image


def noise_image(size: tuple[int, int], seed: int = 0, mode: str = "RGB") -> Image.Image:
    """Random pixels: encoded size responds strongly to quality."""
    w, h = size
    rnd = random.Random(seed)
    channels = len(mode)
    return Image.frombytes(mode, size, rnd.randbytes(w * h * channels))


def photo_image(size: tuple[int, int]) -> Image.Image:
    """Smooth gradients, cheap to build at camera resolution."""
    w, h = size
    red = Image.linear_gradient("L").resize(size)
    green = Image.radial_gradient("L").resize(size)
    blue = Image.linear_gradient("L").rotate(90).resize(size)
    return Image.merge("RGB", (red, green, blue))


@pytest.fixture
def make_image(tmp_path: Path):
    """Write an image file and return its path: make_image("a/b.png", (w, h))."""

    def _make(name: str, size: tuple[int, int] = (64, 48), fmt: str | None = None, image: Image.Image | None = None, **save_kwargs) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        im = image if image is not None else noise_image(size)
        im.save(path, format=fmt, **save_kwargs)
        return path

    return _make
