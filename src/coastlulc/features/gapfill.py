#!/usr/bin/env python3
"""gapfill.py

Scan-line gap filling for Landsat 7 (SLC-off stripes).

Each pass smooths a band with a square focal mean over valid pixels only,
then blends it under the band: valid pixels keep their value, invalid
pixels take the focal mean where the window held at least one valid pixel.
Pixels filled in one pass count as valid in the next, so wide stripes close
from the edges inward while originally valid pixels never change.
Applied per scene, before the temporal median.
"""

from __future__ import annotations

import math
from collections import OrderedDict

import numpy as np
from scipy import ndimage

from coastlulc.raster import RasterImage


def _square_kernel(radius: float) -> np.ndarray:
    side = 2 * int(math.floor(radius)) + 1
    return np.ones((side, side), dtype=np.float64)


def focal_mean(band: np.ma.MaskedArray, radius: float = 1.5) -> np.ma.MaskedArray:
    """Mean of the valid pixels in a square window around each pixel.

    The result is masked where the window contains no valid pixel.
    """
    if radius < 1:
        raise ValueError(f"radius must be >= 1 pixel, got {radius}")

    kernel = _square_kernel(radius)
    band = np.ma.array(band, dtype=np.float64)
    valid = (~np.ma.getmaskarray(band)).astype(np.float64)
    total = ndimage.convolve(band.filled(0.0) * valid, kernel, mode="constant", cval=0.0)
    count = ndimage.convolve(valid, kernel, mode="constant", cval=0.0)
    has_valid = count > 0
    mean = np.divide(total, count, out=np.zeros_like(total), where=has_valid)
    return np.ma.array(mean, mask=~has_valid)


def blend(original: np.ma.MaskedArray, fill: np.ma.MaskedArray) -> np.ma.MaskedArray:
    """Original where valid, otherwise `fill`."""
    orig_mask = np.ma.getmaskarray(original)
    data = np.where(orig_mask, fill.filled(0.0), original.filled(0.0).astype(np.float64))
    mask = orig_mask & np.ma.getmaskarray(fill)
    return np.ma.array(data, mask=mask)


def fill_band(band: np.ma.MaskedArray, radius: float = 1.5, iterations: int = 1) -> np.ma.MaskedArray:
    """Fill invalid pixels of one band with `iterations` focal-mean passes."""
    if iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {iterations}")

    current = np.ma.array(band, dtype=np.float64)
    for _ in range(iterations):
        current = blend(current, focal_mean(current, radius=radius))
    return current


def fill_gaps(image: RasterImage, radius: float = 1.5, iterations: int = 1) -> RasterImage:
    """Gap-fill every band of `image` (see module docstring)."""
    filled = OrderedDict(
        (name, fill_band(band, radius=radius, iterations=iterations))
        for name, band in image.bands.items()
    )
    return RasterImage(filled, transform=image.transform, crs=image.crs, tags=dict(image.tags))
