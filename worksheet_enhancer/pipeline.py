"""Enhancement orchestrator: corner detection, rectification and auto-crop."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .buffers import ImagePayload, ScratchPool, decode_image, encode_data_url
from .config import DEFAULT_CORNER_SEARCH, JPEG_QUALITY, RECTIFY_METHOD, CornerSearchConfig
from .edges import compute_edge_map
from .errors import DegenerateGeometryError
from .geometry import Corners, find_corners, is_plausible_page, needs_perspective_correction, skew_ratios
from .processing import auto_crop, photocopy_filter, rectify

logger = logging.getLogger(__name__)

STAGE_PERSPECTIVE = "perspective"
STAGE_AUTOCROP = "autocrop"


@dataclass
class EnhancementReport:
    """Which stages actually changed the image."""

    stages_applied: List[str] = field(default_factory=list)

    @property
    def was_enhanced(self) -> bool:
        return bool(self.stages_applied)

    def to_dict(self) -> Dict[str, Any]:
        return {"wasEnhanced": self.was_enhanced, "enhancements": list(self.stages_applied)}


@dataclass
class EnhancementResult:
    image: np.ndarray
    report: EnhancementReport


def detect_corners(
    buffer: np.ndarray,
    pool: ScratchPool,
    search: CornerSearchConfig = DEFAULT_CORNER_SEARCH,
) -> Optional[Corners]:
    """Run edge extraction and corner estimation, releasing scratch memory afterwards."""
    try:
        edge_map = compute_edge_map(buffer, pool=pool)
        return find_corners(edge_map, search)
    finally:
        pool.release()


def _try_rectify(buffer: np.ndarray, pool: ScratchPool, search: CornerSearchConfig, method: str) -> Optional[np.ndarray]:
    height, width = buffer.shape[:2]
    corners = detect_corners(buffer, pool, search)
    if corners is None:
        logger.debug("Perspective skipped: corners not found")
        return None
    if not needs_perspective_correction(corners, width, height):
        logger.debug(f"Perspective skipped: skew {skew_ratios(corners, width, height)} within threshold")
        return None
    if not is_plausible_page(corners, width, height):
        logger.debug(f"Perspective skipped: implausible page corners {corners}")
        return None
    try:
        return rectify(buffer, corners, method)
    except DegenerateGeometryError as exc:
        logger.debug(f"Perspective skipped: {exc}")
        return None


def enhance(
    buffer: np.ndarray,
    search: CornerSearchConfig = DEFAULT_CORNER_SEARCH,
    method: str = RECTIFY_METHOD,
) -> EnhancementResult:
    """
    Straighten and crop a photographed worksheet.

    Steps, in fixed order:
    1. Detect page corners; if found, plausible and skewed, rectify the page.
    2. Auto-crop background margins from the (possibly rectified) image.

    Any stage that cannot run is skipped silently, so the caller always gets
    an image back; with no stage applied it is the input buffer itself.
    The photocopy filter is not part of this chain.

    Args:
        buffer: RGBA pixel buffer of the photo.
        search: Sizing of the corner search rectangles.
        method: Rectification mapping, "bilinear" or "homography".

    Returns:
        The final buffer and a report of the stages applied.
    """
    report = EnhancementReport()
    image = buffer

    with ScratchPool() as pool:
        rectified = _try_rectify(image, pool, search, method)
    if rectified is not None:
        image = rectified
        report.stages_applied.append(STAGE_PERSPECTIVE)

    cropped = auto_crop(image)
    if cropped is not image:
        image = cropped
        report.stages_applied.append(STAGE_AUTOCROP)

    logger.debug(f"Enhancement finished: {report.to_dict()}")
    return EnhancementResult(image=image, report=report)


def enhance_image_data(
    data: ImagePayload,
    quality: int = JPEG_QUALITY,
    method: str = RECTIFY_METHOD,
) -> Tuple[str, Dict[str, Any]]:
    """
    Enhance an encoded image and return a JPEG data URL with its report.

    Raises:
        ImageDecodeError: If ``data`` is not a readable image.
        ImageEncodeError: If the result cannot be encoded.
    """
    result = enhance(decode_image(data), method=method)
    return encode_data_url(result.image, "JPEG", quality), result.report.to_dict()


def photocopy_image_data(data: ImagePayload, quality: int = JPEG_QUALITY) -> str:
    """Apply the photocopy filter to an encoded image and return a JPEG data URL."""
    return encode_data_url(photocopy_filter(decode_image(data)), "JPEG", quality)
