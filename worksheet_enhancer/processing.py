"""Pixel-level stages: perspective rectification, auto-crop and the photocopy filter."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from .config import (
    BACKGROUND_TOLERANCE,
    CROP_MIN_REDUCTION,
    CROP_MIN_RETAINED,
    CROP_PADDING_FRACTION,
    PHOTOCOPY_HIGH_SIGMA,
    PHOTOCOPY_INK_CEILING,
    PHOTOCOPY_INK_GAMMA,
    PHOTOCOPY_LOW_SIGMA,
    PHOTOCOPY_PAPER_FLOOR,
    PHOTOCOPY_WARM_BIAS,
    RECTIFY_METHOD,
)
from .edges import to_luminance
from .errors import DegenerateGeometryError
from .geometry import Corners, distance

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]


def rectified_size(corners: Corners) -> Tuple[int, int]:
    """
    Output (width, height) for rectifying a corner quadrilateral.

    Uses the longer of each pair of opposite edges so no source content is
    lost to downscaling.
    """
    tl, tr, bl, br = corners
    width = max(distance(tl, tr), distance(bl, br))
    height = max(distance(tl, bl), distance(tr, br))
    return int(round(width)), int(round(height))


def solve_homography(corners: Corners, out_width: int, out_height: int) -> np.ndarray:
    """
    Solve the 3x3 projective transform from the output rectangle to the quadrilateral.

    The output corners (0, 0), (W, 0), (W, H), (0, H) map to TL, TR, BR, BL.

    Raises:
        DegenerateGeometryError: If the corners do not define a projective map.
    """
    tl, tr, bl, br = corners
    pairs = (
        ((0.0, 0.0), tl),
        ((float(out_width), 0.0), tr),
        ((float(out_width), float(out_height)), br),
        ((0.0, float(out_height)), bl),
    )
    system = np.zeros((8, 8), dtype=np.float64)
    target = np.zeros(8, dtype=np.float64)
    for i, ((x, y), src) in enumerate(pairs):
        system[2 * i] = [x, y, 1, 0, 0, 0, -x * src.x, -y * src.x]
        system[2 * i + 1] = [0, 0, 0, x, y, 1, -x * src.y, -y * src.y]
        target[2 * i] = src.x
        target[2 * i + 1] = src.y
    if np.linalg.matrix_rank(system) < 8:
        raise DegenerateGeometryError("Corners do not define a projective transform")
    try:
        solution = np.linalg.solve(system, target)
    except np.linalg.LinAlgError as exc:
        raise DegenerateGeometryError(f"Corners do not define a projective transform: {exc}") from exc
    return np.append(solution, 1.0).reshape(3, 3)


def _bilinear_sources(corners: Corners, xs: np.ndarray, ys: np.ndarray, out_width: int, out_height: int):
    tl, tr, bl, br = corners
    u = xs / float(out_width)
    v = ys / float(out_height)
    w_tl = (1 - u) * (1 - v)
    w_tr = u * (1 - v)
    w_br = u * v
    w_bl = (1 - u) * v
    src_x = w_tl * tl.x + w_tr * tr.x + w_br * br.x + w_bl * bl.x
    src_y = w_tl * tl.y + w_tr * tr.y + w_br * br.y + w_bl * bl.y
    return src_x, src_y


def _homography_sources(corners: Corners, xs: np.ndarray, ys: np.ndarray, out_width: int, out_height: int):
    matrix = solve_homography(corners, out_width, out_height)
    denom = matrix[2, 0] * xs + matrix[2, 1] * ys + matrix[2, 2]
    # Points on the horizon line have no finite source; push them out of bounds.
    denom = np.where(np.abs(denom) < 1e-12, np.nan, denom)
    src_x = (matrix[0, 0] * xs + matrix[0, 1] * ys + matrix[0, 2]) / denom
    src_y = (matrix[1, 0] * xs + matrix[1, 1] * ys + matrix[1, 2]) / denom
    return src_x, src_y


def rectify(buffer: np.ndarray, corners: Corners, method: str = RECTIFY_METHOD) -> np.ndarray:
    """
    Map the corner quadrilateral of ``buffer`` onto an axis-aligned rectangle.

    Each destination pixel (x, y) is mapped back into the source: with the
    default "bilinear" method the four corner positions are interpolated at
    u = x / W, v = y / H; with "homography" the exact projective transform is
    used instead. The source is sampled at the floored position
    (nearest-neighbour). Destination pixels that land outside the source stay
    zero (transparent black).

    Args:
        buffer: RGBA source buffer.
        corners: Page corners in source pixel coordinates.
        method: "bilinear" or "homography".

    Returns:
        A new RGBA buffer of the rectified page.

    Raises:
        DegenerateGeometryError: If the output rectangle would have no area.
        ValueError: If ``method`` is unknown.
    """
    out_width, out_height = rectified_size(corners)
    if out_width < 1 or out_height < 1:
        raise DegenerateGeometryError(f"Rectified size {out_width}x{out_height} has no area")

    if method == "bilinear":
        mapper = _bilinear_sources
    elif method == "homography":
        mapper = _homography_sources
    else:
        raise ValueError(f"Unknown rectification method: {method}")

    ys, xs = np.mgrid[0:out_height, 0:out_width].astype(np.float64)
    src_x, src_y = mapper(corners, xs, ys, out_width, out_height)

    height, width = buffer.shape[:2]
    with np.errstate(invalid="ignore"):
        col = np.floor(src_x)
        row = np.floor(src_y)
        inside = (col >= 0) & (col < width) & (row >= 0) & (row < height)

    out = np.zeros((out_height, out_width, 4), dtype=np.uint8)
    out[inside] = buffer[row[inside].astype(np.intp), col[inside].astype(np.intp)]
    logger.debug(f"Rectified {width}x{height} -> {out_width}x{out_height} ({method})")
    return out


def estimate_background(buffer: np.ndarray) -> np.ndarray:
    """Mean RGB of the top row, bottom row, left column and right column."""
    rgb = buffer[:, :, :3].astype(np.float64)
    border = np.concatenate([rgb[0, :], rgb[-1, :], rgb[:, 0], rgb[:, -1]])
    return border.mean(axis=0)


def find_content_box(buffer: np.ndarray) -> Optional[Box]:
    """
    Bounding box of pixels that differ from the estimated background.

    A pixel is background when every channel lies within BACKGROUND_TOLERANCE
    of the background colour. The box is padded by CROP_PADDING_FRACTION of
    the shorter side and clamped to the image.

    Returns:
        (x0, y0, x1, y1) with x1/y1 exclusive, or None if every pixel is
        background.
    """
    height, width = buffer.shape[:2]
    background = estimate_background(buffer)
    diff = np.abs(buffer[:, :, :3].astype(np.float64) - background)
    foreground = (diff > BACKGROUND_TOLERANCE).any(axis=2)

    rows = np.flatnonzero(foreground.any(axis=1))
    cols = np.flatnonzero(foreground.any(axis=0))
    if rows.size == 0:
        return None

    pad = int(min(width, height) * CROP_PADDING_FRACTION)
    return (
        max(0, int(cols[0]) - pad),
        max(0, int(rows[0]) - pad),
        min(width, int(cols[-1]) + pad + 1),
        min(height, int(rows[-1]) + pad + 1),
    )


def crop_is_significant(box: Box, width: int, height: int) -> bool:
    """
    Crop policy: trim more than CROP_MIN_REDUCTION of the width or the height,
    while keeping at least CROP_MIN_RETAINED of both.
    """
    x0, y0, x1, y1 = box
    crop_width, crop_height = x1 - x0, y1 - y0
    trims_enough = (width - crop_width) > CROP_MIN_REDUCTION * width or (
        height - crop_height
    ) > CROP_MIN_REDUCTION * height
    keeps_enough = crop_width >= CROP_MIN_RETAINED * width and crop_height >= CROP_MIN_RETAINED * height
    return trims_enough and keeps_enough


def auto_crop(buffer: np.ndarray) -> np.ndarray:
    """
    Crop uniform background margins away from a page image.

    Returns:
        A new, cropped buffer, or ``buffer`` itself when there is no content
        or the crop policy rejects the box.
    """
    box = find_content_box(buffer)
    if box is None:
        logger.debug("Auto-crop skipped: no content distinct from background")
        return buffer

    height, width = buffer.shape[:2]
    if not crop_is_significant(box, width, height):
        logger.debug(f"Auto-crop skipped: box {box} not significant for {width}x{height}")
        return buffer

    x0, y0, x1, y1 = box
    return buffer[y0:y1, x0:x1].copy()


def photocopy_levels(luminance: np.ndarray) -> np.ndarray:
    """
    Remap luminance through the three-region photocopy curve.

    Values below ``mean - 1.2 sd`` are compressed toward black with a power
    curve, values above ``mean + 0.8 sd`` are pushed into the 230-255 paper
    range, and the band between is stretched linearly over 60-230. An image
    with no contrast maps wholly to paper or ink depending on its brightness.
    """
    luminance = np.clip(luminance, 0.0, 255.0)
    mean = float(luminance.mean())
    std = float(luminance.std())
    low = max(0.0, mean - PHOTOCOPY_LOW_SIGMA * std)
    high = min(255.0, mean + PHOTOCOPY_HIGH_SIGMA * std)

    ink = luminance < low
    paper = luminance > high
    middle = ~(ink | paper)
    out = np.empty_like(luminance, dtype=np.float64)

    out[ink] = np.power(luminance[ink] / low, PHOTOCOPY_INK_GAMMA) * PHOTOCOPY_INK_CEILING
    out[paper] = PHOTOCOPY_PAPER_FLOOR + (luminance[paper] - high) / (255.0 - high) * (
        255.0 - PHOTOCOPY_PAPER_FLOOR
    )
    if high - low < 1.0:
        out[middle] = PHOTOCOPY_PAPER_FLOOR if mean >= 128 else PHOTOCOPY_INK_CEILING
    else:
        out[middle] = PHOTOCOPY_INK_CEILING + (luminance[middle] - low) / (high - low) * (
            PHOTOCOPY_PAPER_FLOOR - PHOTOCOPY_INK_CEILING
        )
    return np.clip(out, 0.0, 255.0)


def photocopy_filter(buffer: np.ndarray) -> np.ndarray:
    """
    Flatten paper to white and deepen ink, like a photocopier.

    A global, per-pixel remap of luminance (see ``photocopy_levels``) followed
    by a slight warm paper tint. The result is fully opaque.
    """
    levels = np.rint(photocopy_levels(to_luminance(buffer).astype(np.float64)))
    out = np.empty(buffer.shape[:2] + (4,), dtype=np.uint8)
    for channel, bias in enumerate(PHOTOCOPY_WARM_BIAS):
        out[:, :, channel] = np.minimum(levels + bias, 255)
    out[:, :, 3] = 255
    return out
