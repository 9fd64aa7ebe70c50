#!/usr/bin/env python3
"""composite.py

Temporal median compositing of co-registered scenes.

Masked pixels are absent from the median, not zero. A pixel with no valid
observation in any scene stays masked in the composite.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Sequence

import numpy as np

from coastlulc.raster import RasterImage


def median_composite(images: Sequence[RasterImage]) -> RasterImage:
    """Per-band, per-pixel median over `images`.

    All images must share band names and shape. Georeferencing is
    taken from the first image; per-scene tags are dropped.
    """
    images = list(images)
    if not images:
        raise ValueError("Cannot composite an empty set of images")

    first = images[0]
    for img in images[1:]:
        if img.band_names != first.band_names:
            raise ValueError(f"Band mismatch in composite: {img.band_names} != {first.band_names}")
        if img.shape != first.shape:
            raise ValueError(f"Shape mismatch in composite: {img.shape} != {first.shape}")

    bands = OrderedDict()
    for name in first.band_names:
        stack = np.ma.stack([np.ma.array(img[name], dtype=np.float64) for img in images], axis=0)
        med = np.ma.median(stack, axis=0)
        # np.ma.median may hand back a plain array when nothing is masked
        bands[name] = np.ma.array(med, mask=np.ma.getmaskarray(med))
    return RasterImage(bands, transform=first.transform, crs=first.crs)
