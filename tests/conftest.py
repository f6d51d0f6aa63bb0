"""Synthetic worksheet photos shared by the test suite."""

from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image, ImageDraw

PAGE_BOX = (50, 50, 350, 250)
INK_BOX = (190, 140, 210, 160)
BORDER = 3


def solid(height: int, width: int, value) -> np.ndarray:
    buffer = np.zeros((height, width, 4), dtype=np.uint8)
    buffer[:, :, :3] = value
    buffer[:, :, 3] = 255
    return buffer


def draw_page_scene() -> np.ndarray:
    """400x300 white canvas, black-bordered 300x200 page centred, 20x20 grey ink square."""
    buffer = solid(300, 400, 255)
    x0, y0, x1, y1 = PAGE_BOX
    buffer[y0:y0 + BORDER, x0:x1, :3] = 0
    buffer[y1 - BORDER:y1, x0:x1, :3] = 0
    buffer[y0:y1, x0:x0 + BORDER, :3] = 0
    buffer[y0:y1, x1 - BORDER:x1, :3] = 0
    ix0, iy0, ix1, iy1 = INK_BOX
    buffer[iy0:iy1, ix0:ix1, :3] = 128
    return buffer


def draw_polygon_scene(polygon, size=(400, 300), background=30, fill=255) -> np.ndarray:
    image = Image.new("RGBA", size, (background, background, background, 255))
    ImageDraw.Draw(image).polygon(polygon, fill=(fill, fill, fill, 255))
    return np.array(image, dtype=np.uint8)


def striped(height: int, width: int, horizontal: bool) -> np.ndarray:
    """White canvas crossed by 6 px black stripes every 20 px."""
    buffer = solid(height, width, 255)
    for start in range(0, height if horizontal else width, 20):
        if horizontal:
            buffer[start:start + 6, :, :3] = 0
        else:
            buffer[:, start:start + 6, :3] = 0
    return buffer


def png_bytes(buffer: np.ndarray) -> bytes:
    out = io.BytesIO()
    Image.fromarray(buffer).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def page_scene() -> np.ndarray:
    return draw_page_scene()


@pytest.fixture
def framed_scene() -> np.ndarray:
    """The page scene with single dark pixels in the frame corners, so nothing is worth cropping."""
    buffer = draw_page_scene()
    for y, x in ((0, 0), (0, -1), (-1, 0), (-1, -1)):
        buffer[y, x, :3] = 0
    return buffer


@pytest.fixture
def skewed_scene() -> np.ndarray:
    """A white page on a dark table whose top edge slopes steeply down to the right."""
    return draw_polygon_scene([(20, 40), (380, 120), (380, 260), (20, 260)])


@pytest.fixture
def noise_image():
    def _make(height: int, width: int, seed: int = 0) -> np.ndarray:
        rng = np.random.default_rng(seed)
        buffer = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
        buffer[:, :, 3] = 255
        return buffer

    return _make
