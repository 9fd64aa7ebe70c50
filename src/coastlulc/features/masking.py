#!/usr/bin/env python3
"""masking.py

Cloud and cloud-shadow masking from a Landsat QA bitmask band.

Two bit layouts are supported, selected by SensorProfile.qa_scheme:

newer (Landsat 8):
  masked if bit 3 (cloud shadow) OR bit 5 (cloud) is set

older (Landsat 5/7):
  cloud = (bit 5 AND bit 7) OR bit 3
  the pixel must also be valid in every existing band beforehand
  (propagates scan-line gaps and fill)

Masking only changes validity. Pixel values are left as-is.
"""

from __future__ import annotations

import numpy as np

from coastlulc.raster import RasterImage
from coastlulc.sensors import SensorProfile

CLOUD_SHADOW_BIT = 1 << 3
CLOUD_BIT = 1 << 5
CLOUD_CONFIDENCE_BIT = 1 << 7


def _qa_bits(image: RasterImage, qa_band: str):
    """QA values as integers plus the QA band's own validity."""
    if qa_band not in image:
        raise KeyError(f"QA band '{qa_band}' not found. Available: {image.band_names}")
    qa = image[qa_band]
    qa_valid = ~np.ma.getmaskarray(qa)
    bits = np.where(qa_valid, qa.filled(0), 0).astype(np.int64)
    return bits, qa_valid


def clear_newer(qa: np.ndarray) -> np.ndarray:
    """True where neither the cloud-shadow nor the cloud bit is set."""
    qa = np.asarray(qa).astype(np.int64)
    return ((qa & CLOUD_SHADOW_BIT) == 0) & ((qa & CLOUD_BIT) == 0)


def clear_older(qa: np.ndarray) -> np.ndarray:
    """True where the older-generation cloud expression is false."""
    qa = np.asarray(qa).astype(np.int64)
    cloud = (((qa & CLOUD_BIT) != 0) & ((qa & CLOUD_CONFIDENCE_BIT) != 0)) | ((qa & CLOUD_SHADOW_BIT) != 0)
    return ~cloud


def mask_newer(image: RasterImage, qa_band: str = "QA_PIXEL") -> RasterImage:
    bits, qa_valid = _qa_bits(image, qa_band)
    return image.update_mask(clear_newer(bits) & qa_valid)


def mask_older(image: RasterImage, qa_band: str = "QA_PIXEL") -> RasterImage:
    bits, qa_valid = _qa_bits(image, qa_band)
    prior_valid = image.validity()
    return image.update_mask(clear_older(bits) & qa_valid).update_mask(prior_valid)


def mask_clouds(image: RasterImage, profile: SensorProfile) -> RasterImage:
    """Dispatch to the masking rule for `profile.qa_scheme`."""
    if profile.qa_scheme == "newer":
        return mask_newer(image, profile.qa_band)
    if profile.qa_scheme == "older":
        return mask_older(image, profile.qa_band)
    raise ValueError(f"Unknown QA scheme: {profile.qa_scheme}")
