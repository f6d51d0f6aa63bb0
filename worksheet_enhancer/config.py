"""Configuration constants for worksheet enhancement."""

from __future__ import annotations

from dataclasses import dataclass

# Edge detection
EDGE_DETECTION_MAX_SIDE = 400
"""Longest side in pixels of the downscaled copy used for edge detection."""

# Corner estimation
CORNER_MARGIN_FRACTION = 0.05
"""Inset of each corner search rectangle from the image corner, as a fraction of min(width, height)."""

CORNER_SEARCH_FRACTION = 0.30
"""Side length of each corner search rectangle, as a fraction of min(width, height)."""

CORNER_DISTANCE_FALLOFF = 0.1
"""Score divisor growth per pixel of distance from the search rectangle centre."""

EDGE_PERCENTILE_FRACTION = 0.10
"""Fraction of strongest edge pixels above the adaptive edge threshold."""

MIN_QUAD_AREA_FRACTION = 0.25
"""Minimum area of the detected corner quadrilateral, as a fraction of the frame, for rectification to run."""

# Skew evaluation
SKEW_THRESHOLD = 0.05
"""Maximum edge skew (fraction of width or height) tolerated before perspective correction."""

RECTIFY_METHOD = "bilinear"
"""Default rectification mapping: "bilinear" (corner interpolation) or "homography" (exact projective)."""

# Auto-crop
BACKGROUND_TOLERANCE = 30
"""Per-channel tolerance around the estimated background colour for a pixel to count as background."""

CROP_PADDING_FRACTION = 0.02
"""Padding around the content bounding box, as a fraction of min(width, height)."""

CROP_MIN_REDUCTION = 0.05
"""Minimum fraction of width or height a crop must remove to be applied."""

CROP_MIN_RETAINED = 0.5
"""Minimum fraction of both width and height a crop must keep."""

# Photocopy filter
PHOTOCOPY_LOW_SIGMA = 1.2
"""Standard deviations below the mean where the ink range starts."""

PHOTOCOPY_HIGH_SIGMA = 0.8
"""Standard deviations above the mean where the paper range starts."""

PHOTOCOPY_INK_CEILING = 60
"""Output value at the top of the ink range."""

PHOTOCOPY_PAPER_FLOOR = 230
"""Output value at the bottom of the paper range."""

PHOTOCOPY_INK_GAMMA = 1.5
"""Power curve exponent compressing the ink range toward black."""

PHOTOCOPY_WARM_BIAS = (3, 1, 0)
"""Per-channel (R, G, B) offset giving the output a paper tone."""

# Encoding
JPEG_QUALITY = 90
"""Quality factor used when re-encoding enhanced images."""

UPLOAD_MAX_WIDTH = 1200
"""Maximum width in pixels of a photo before it enters the pipeline; 0 disables the cap."""

# Orientation detection
ORIENTATION_SAMPLE_SIZE = 300
"""Longest side in pixels of the copy used for orientation detection."""

LANDSCAPE_ASPECT = 1.2
"""Width/height ratio above which an image is treated as landscape."""

PORTRAIT_ASPECT = 0.8
"""Width/height ratio below which an image is treated as portrait."""

HORIZONTAL_TEXT_RATIO = 1.3
"""Horizontal/vertical edge ratio above which a landscape image is assumed to hold rotated text."""

VERTICAL_TEXT_RATIO = 0.7
"""Horizontal/vertical edge ratio below which text is assumed to run vertically."""

ORIENTATION_MIN_CONFIDENCE = 0.6
"""Confidence a suggested rotation must exceed before auto-rotate applies it."""


@dataclass(frozen=True)
class CornerSearchConfig:
    """Sizing of the four corner search rectangles."""

    margin_fraction: float = CORNER_MARGIN_FRACTION
    search_fraction: float = CORNER_SEARCH_FRACTION


DEFAULT_CORNER_SEARCH = CornerSearchConfig()
