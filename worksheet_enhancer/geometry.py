"""Corner estimation and skew evaluation for photographed pages."""

from __future__ import annotations

import logging
import math
from typing import Dict, NamedTuple, Optional, Tuple

import numpy as np

from .config import (
    CORNER_DISTANCE_FALLOFF,
    DEFAULT_CORNER_SEARCH,
    EDGE_PERCENTILE_FRACTION,
    MIN_QUAD_AREA_FRACTION,
    SKEW_THRESHOLD,
    CornerSearchConfig,
)
from .edges import EdgeMap

logger = logging.getLogger(__name__)

Region = Tuple[int, int, int, int]


class Point(NamedTuple):
    x: float
    y: float


class Corners(NamedTuple):
    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point

    def scaled(self, factor: float) -> "Corners":
        return Corners(*(Point(p.x * factor, p.y * factor) for p in self))


def distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def search_regions(
    width: int, height: int, search: CornerSearchConfig = DEFAULT_CORNER_SEARCH
) -> Dict[str, Region]:
    """
    Build the four corner search rectangles.

    Each rectangle is a square of side ``search_fraction * min(width, height)``
    inset by ``margin_fraction * min(width, height)`` from its image corner.

    Returns:
        Mapping of corner name to (x0, y0, x1, y1), with x1/y1 exclusive.
        Names match the fields of Corners.
    """
    shortest = min(width, height)
    size = int(shortest * search.search_fraction)
    margin = int(shortest * search.margin_fraction)
    left, top = margin, margin
    right, bottom = width - margin - size, height - margin - size
    return {
        "top_left": (left, top, left + size, top + size),
        "top_right": (right, top, right + size, top + size),
        "bottom_left": (left, bottom, left + size, bottom + size),
        "bottom_right": (right, bottom, right + size, bottom + size),
    }


def edge_threshold(magnitude: np.ndarray, fraction: float = EDGE_PERCENTILE_FRACTION) -> float:
    """Magnitude at index ``floor(fraction * n)`` of the values sorted strongest first."""
    flat = magnitude.ravel()
    rank = min(int(flat.size * fraction), flat.size - 1)
    kth = flat.size - 1 - rank
    return float(np.partition(flat, kth)[kth])


def _best_in_region(magnitude: np.ndarray, region: Region, threshold: float) -> Optional[Tuple[int, int]]:
    x0, y0, x1, y1 = region
    window = magnitude[y0:y1, x0:x1]
    if window.size == 0:
        return None

    centre_x, centre_y = (x0 + x1 - 1) / 2.0, (y0 + y1 - 1) / 2.0
    ys, xs = np.mgrid[y0:y1, x0:x1]
    falloff = 1.0 + CORNER_DISTANCE_FALLOFF * np.hypot(xs - centre_x, ys - centre_y)
    scores = np.where(window > threshold, window / falloff, -1.0)

    best = int(np.argmax(scores))
    if scores.flat[best] < 0:
        return None
    row, col = divmod(best, window.shape[1])
    return x0 + col, y0 + row


def find_corners(edge_map: EdgeMap, search: CornerSearchConfig = DEFAULT_CORNER_SEARCH) -> Optional[Corners]:
    """
    Estimate the four page corners from an edge map.

    Within each corner search rectangle, pixels whose magnitude exceeds the
    adaptive threshold are scored by ``magnitude / (1 + 0.1 * d)``, where d is
    the distance to the rectangle centre, and the best one is kept.

    Args:
        edge_map: Gradient magnitudes with their scale factor.
        search: Sizing of the search rectangles.

    Returns:
        Corners in source-image pixel coordinates, or None if any rectangle
        holds no pixel above the threshold.
    """
    magnitude = edge_map.magnitude
    if magnitude.size == 0:
        return None

    threshold = edge_threshold(magnitude)
    found: Dict[str, Point] = {}
    for name, region in search_regions(edge_map.width, edge_map.height, search).items():
        best = _best_in_region(magnitude, region, threshold)
        if best is None:
            logger.debug(f"No edge above {threshold:.1f} in {name} search region {region}")
            return None
        found[name] = Point(float(best[0]), float(best[1]))

    return Corners(**found).scaled(edge_map.scale_factor)


def skew_ratios(corners: Corners, width: int, height: int) -> Tuple[float, float, float, float]:
    """Skew of the (top, bottom, left, right) edges as fractions of the image size."""
    tl, tr, bl, br = corners
    return (
        abs(tl.y - tr.y) / height,
        abs(bl.y - br.y) / height,
        abs(tl.x - bl.x) / width,
        abs(tr.x - br.x) / width,
    )


def needs_perspective_correction(corners: Corners, width: int, height: int) -> bool:
    """True when any edge of the corner quadrilateral is skewed past the threshold."""
    return any(ratio > SKEW_THRESHOLD for ratio in skew_ratios(corners, width, height))


def quad_area(corners: Corners) -> float:
    """Shoelace area of the quadrilateral TL -> TR -> BR -> BL."""
    ring = (corners.top_left, corners.top_right, corners.bottom_right, corners.bottom_left)
    twice = sum(a.x * b.y - b.x * a.y for a, b in zip(ring, ring[1:] + ring[:1]))
    return abs(twice) / 2.0


def is_convex_quad(corners: Corners) -> bool:
    """True when TL -> TR -> BR -> BL turns the same way at every vertex."""
    ring = (corners.top_left, corners.top_right, corners.bottom_right, corners.bottom_left)
    signs = set()
    for i in range(4):
        a, b, c = ring[i], ring[(i + 1) % 4], ring[(i + 2) % 4]
        cross = (b.x - a.x) * (c.y - b.y) - (b.y - a.y) * (c.x - b.x)
        if cross == 0:
            return False
        signs.add(cross > 0)
    return len(signs) == 1


def is_plausible_page(corners: Corners, width: int, height: int) -> bool:
    """
    Check that detected corners describe a page worth rectifying.

    Rejects quadrilaterals that are not convex (crossed or folded corner
    order) and those covering less than MIN_QUAD_AREA_FRACTION of the frame,
    where the fixed corner search windows no longer reach the page corners.
    """
    if not is_convex_quad(corners):
        return False
    return quad_area(corners) >= MIN_QUAD_AREA_FRACTION * width * height
