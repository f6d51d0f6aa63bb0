"""Luminance conversion and Sobel edge extraction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .buffers import ScratchPool, downscale
from .config import EDGE_DETECTION_MAX_SIDE

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


@dataclass
class EdgeMap:
    """Gradient magnitudes of a (possibly downscaled) image."""

    magnitude: np.ndarray
    scale_factor: float = 1.0

    @property
    def width(self) -> int:
        return self.magnitude.shape[1]

    @property
    def height(self) -> int:
        return self.magnitude.shape[0]


def to_luminance(buffer: np.ndarray) -> np.ndarray:
    """Perceptual luminance of an RGB(A) buffer as a float32 (h, w) array."""
    return buffer[:, :, :3].astype(np.float32) @ LUMA_WEIGHTS


def sobel_gradients(gray: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Apply the 3x3 Sobel kernels to the interior of a greyscale image.

    Returns:
        A tuple of (gx, gy), each of shape (h - 2, w - 2), covering the pixels
        that have a full 3x3 neighbourhood. Images smaller than 3x3 give empty
        arrays.
    """
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        empty = np.zeros((max(0, gray.shape[0] - 2), max(0, gray.shape[1] - 2)), dtype=np.float32)
        return empty, empty.copy()

    top, middle, bottom = gray[:-2], gray[1:-1], gray[2:]
    gx = (
        (top[:, 2:] + 2 * middle[:, 2:] + bottom[:, 2:])
        - (top[:, :-2] + 2 * middle[:, :-2] + bottom[:, :-2])
    )
    gy = (
        (bottom[:, :-2] + 2 * bottom[:, 1:-1] + bottom[:, 2:])
        - (top[:, :-2] + 2 * top[:, 1:-1] + top[:, 2:])
    )
    return gx, gy


def compute_edge_map(
    buffer: np.ndarray,
    max_side: int = EDGE_DETECTION_MAX_SIDE,
    pool: Optional[ScratchPool] = None,
) -> EdgeMap:
    """
    Compute the Sobel gradient magnitude of a pixel buffer.

    The buffer is first downscaled so its longest side is at most ``max_side``;
    the returned EdgeMap records the factor needed to map its coordinates back
    to the source resolution. Border pixels have no full neighbourhood and
    stay at zero.

    Args:
        buffer: RGBA pixel buffer.
        max_side: Longest side of the working copy.
        pool: Optional scratch pool providing the magnitude array. When given,
            the map is only valid until the pool is released.

    Returns:
        An EdgeMap with non-negative float32 magnitudes.
    """
    small, scale_factor = downscale(buffer, max_side)
    gray = to_luminance(small)
    shape = gray.shape
    magnitude = pool.take(shape) if pool is not None else np.zeros(shape, dtype=np.float32)

    gx, gy = sobel_gradients(gray)
    if gx.size:
        magnitude[1:-1, 1:-1] = np.hypot(gx, gy)
    return EdgeMap(magnitude=magnitude, scale_factor=scale_factor)
