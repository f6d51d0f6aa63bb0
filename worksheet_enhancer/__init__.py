"""
Worksheet photo enhancement package.

This package turns a raw photograph of a paper worksheet into a clean,
deskewed, cropped image suitable for handwriting recognition. All pixel work
is done directly on RGBA numpy buffers.

Main components:
- edges: Luminance conversion and Sobel edge maps on a downscaled copy
- geometry: Corner estimation, skew evaluation and page plausibility checks
- processing: Perspective rectification, background auto-crop, photocopy filter
- pipeline: Enhancement orchestrator and encoded-image entry points
- orientation: Portrait/landscape text orientation guess and rotation
- buffers: Image decoding/encoding, resizing and scratch buffer pooling
- runner: CLI entry point for batch processing
- config: Configuration constants for the pipeline
"""

from .runner import main
from .pipeline import enhance, enhance_image_data, photocopy_image_data
from .processing import auto_crop, photocopy_filter, rectify

__all__ = [
    "main",
    "enhance",
    "enhance_image_data",
    "photocopy_image_data",
    "auto_crop",
    "photocopy_filter",
    "rectify",
]
