"""Exceptions raised by the worksheet enhancement pipeline."""

from __future__ import annotations


class EnhancementError(Exception):
    """Base class for all worksheet enhancement failures."""


class ImageDecodeError(EnhancementError):
    """The input bytes could not be interpreted as a raster image."""


class ImageEncodeError(EnhancementError):
    """A pixel buffer could not be encoded into the requested format."""


class DegenerateGeometryError(EnhancementError):
    """The corner quadrilateral has no usable area for rectification."""
