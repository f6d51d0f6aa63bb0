"""Text orientation guess and quarter-turn rotation for page photos."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .buffers import downscale
from .config import (
    HORIZONTAL_TEXT_RATIO,
    LANDSCAPE_ASPECT,
    ORIENTATION_SAMPLE_SIZE,
    PORTRAIT_ASPECT,
    VERTICAL_TEXT_RATIO,
)
from .edges import sobel_gradients, to_luminance


@dataclass
class OrientationResult:
    suggested_rotation: int
    confidence: float
    orientation: str


def detect_text_orientation(buffer: np.ndarray) -> OrientationResult:
    """
    Guess whether a page photo needs a quarter turn to read upright.

    Lines of text produce mostly horizontal structure, so the ratio of
    vertical-gradient energy (horizontal edges) to horizontal-gradient energy
    (vertical edges) is compared against the image aspect. A landscape photo
    dominated by horizontal structure is taken to be a rotated portrait page.
    Portrait photos are assumed upright; near-square ones are undecided.
    """
    height, width = buffer.shape[:2]
    small, _ = downscale(buffer, ORIENTATION_SAMPLE_SIZE)
    gx, gy = sobel_gradients(to_luminance(small))
    horizontal_edges = float(np.abs(gy).sum())
    vertical_edges = float(np.abs(gx).sum())
    ratio = horizontal_edges / (vertical_edges + 1)

    aspect = width / float(height)
    if aspect > LANDSCAPE_ASPECT:
        if ratio > HORIZONTAL_TEXT_RATIO:
            return OrientationResult(90, min(0.9, ratio / 3), "landscape")
        if ratio < VERTICAL_TEXT_RATIO:
            return OrientationResult(0, 0.5, "landscape")
        return OrientationResult(0, 0.0, "landscape")
    if aspect < PORTRAIT_ASPECT:
        return OrientationResult(0, 0.8, "portrait")
    return OrientationResult(0, 0.3, "unknown")


def rotate_buffer(buffer: np.ndarray, degrees: int) -> np.ndarray:
    """Rotate a buffer clockwise by 0, 90, 180 or 270 degrees."""
    if degrees % 90 != 0:
        raise ValueError(f"Rotation must be a multiple of 90 degrees, got {degrees}")
    quarter_turns = (degrees // 90) % 4
    return np.array(np.rot90(buffer, k=-quarter_turns))
