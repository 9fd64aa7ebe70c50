#!/usr/bin/env python3
"""indices.py

Spectral indices over canonical bands (blue, green, red, nir, swir1, swir2).

Every index is a pure per-pixel function. Arithmetic that cannot produce a
value (zero denominator, non-finite result, negative base under a cube
root) masks that pixel in that index only. Nothing is raised, and sibling
indices in the same pixel are unaffected.

The older-generation indices (GNDVI, AVI) are only emitted when the sensor
profile asks for them.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Dict, Mapping, Tuple

import numpy as np

from coastlulc.raster import RasterImage
from coastlulc.sensors import CANONICAL_BANDS

Bands = Mapping[str, np.ma.MaskedArray]


# -----------------------------------------------------------------------------
# Masked arithmetic helpers
# -----------------------------------------------------------------------------

def _f(bands: Bands, name: str) -> np.ma.MaskedArray:
    return np.ma.array(bands[name], dtype=np.float64)


def _masked(data: np.ndarray, *inputs: np.ma.MaskedArray) -> np.ma.MaskedArray:
    mask = ~np.isfinite(data)
    for arr in inputs:
        mask |= np.ma.getmaskarray(arr)
    return np.ma.array(data, mask=mask)


def safe_divide(num: np.ma.MaskedArray, den: np.ma.MaskedArray) -> np.ma.MaskedArray:
    """num / den, masked where den == 0 or either operand is masked."""
    num = np.ma.array(num, dtype=np.float64)
    den = np.ma.array(den, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        data = num.data / den.data
    out = _masked(data, num, den)
    return np.ma.array(out.data, mask=np.ma.getmaskarray(out) | (den.data == 0))


def normalized_difference(a: np.ma.MaskedArray, b: np.ma.MaskedArray) -> np.ma.MaskedArray:
    """(a - b) / (a + b)"""
    return safe_divide(a - b, a + b)


# -----------------------------------------------------------------------------
# Index definitions
# -----------------------------------------------------------------------------

def ndvi(b: Bands) -> np.ma.MaskedArray:
    return normalized_difference(_f(b, "nir"), _f(b, "red"))


def ndmi(b: Bands) -> np.ma.MaskedArray:
    return normalized_difference(_f(b, "swir2"), _f(b, "green"))


def ndwi(b: Bands) -> np.ma.MaskedArray:
    return normalized_difference(_f(b, "green"), _f(b, "nir"))


def mndwi(b: Bands) -> np.ma.MaskedArray:
    return normalized_difference(_f(b, "green"), _f(b, "swir1"))


def simple_ratio(b: Bands) -> np.ma.MaskedArray:
    return safe_divide(_f(b, "nir"), _f(b, "red"))


def gcvi(b: Bands) -> np.ma.MaskedArray:
    return safe_divide(_f(b, "nir"), _f(b, "green")) - 1.0


def savi(b: Bands) -> np.ma.MaskedArray:
    nir, red = _f(b, "nir"), _f(b, "red")
    return 1.5 * safe_divide(nir - red, nir + red + 0.5)


def evi(b: Bands) -> np.ma.MaskedArray:
    nir, red, blue = _f(b, "nir"), _f(b, "red"), _f(b, "blue")
    return 2.5 * safe_divide(nir - red, nir + 6.0 * red - 7.5 * blue + 1.0)


def cmri(b: Bands) -> np.ma.MaskedArray:
    return ndvi(b) - ndwi(b)


def mvi(b: Bands) -> np.ma.MaskedArray:
    nir, green, swir1 = _f(b, "nir"), _f(b, "green"), _f(b, "swir1")
    return safe_divide(nir - green, swir1 - green)


def msi(b: Bands) -> np.ma.MaskedArray:
    return safe_divide(_f(b, "swir1"), _f(b, "nir"))


def bsi(b: Bands) -> np.ma.MaskedArray:
    soil = _f(b, "swir1") + _f(b, "red")
    veg = _f(b, "nir") + _f(b, "blue")
    return safe_divide(soil - veg, soil + veg)


def psri(b: Bands) -> np.ma.MaskedArray:
    return safe_divide(_f(b, "red") - _f(b, "nir"), _f(b, "green"))


def lai(b: Bands) -> np.ma.MaskedArray:
    return 3.618 * ndvi(b) - 0.118


def gndvi(b: Bands) -> np.ma.MaskedArray:
    # Denominator is (G - N), not the usual (N + G); kept as published.
    nir, green = _f(b, "nir"), _f(b, "green")
    return safe_divide(nir - green, green - nir)


def avi(b: Bands) -> np.ma.MaskedArray:
    nir, red = _f(b, "nir"), _f(b, "red")
    base = nir * (1.0 - red) * (nir - red)
    # Real root only: a negative base comes out NaN and is masked
    with np.errstate(invalid="ignore"):
        root = np.power(base.filled(np.nan), 1.0 / 3.0)
    return _masked(root, base)


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

INDEX_FUNCTIONS: Dict[str, Callable[[Bands], np.ma.MaskedArray]] = {
    "NDVI": ndvi,
    "NDMI": ndmi,
    "NDWI": ndwi,
    "MNDWI": mndwi,
    "SR": simple_ratio,
    "GCVI": gcvi,
    "SAVI": savi,
    "EVI": evi,
    "CMRI": cmri,
    "MVI": mvi,
    "MSI": msi,
    "GCI": gcvi,
    "BSI": bsi,
    "PSRI": psri,
    "LAI": lai,
    "GNDVI": gndvi,
    "AVI": avi,
}

BASE_INDICES: Tuple[str, ...] = (
    "NDVI", "NDMI", "NDWI", "MNDWI", "SR", "GCVI", "SAVI", "EVI",
    "CMRI", "MVI", "MSI", "GCI", "BSI", "PSRI", "LAI",
)
EXTENDED_INDICES: Tuple[str, ...] = ("GNDVI", "AVI")


def index_names(extended: bool = False) -> Tuple[str, ...]:
    return BASE_INDICES + (EXTENDED_INDICES if extended else ())


def compute_indices(image: RasterImage, extended: bool = False) -> RasterImage:
    """Append the index battery to a canonical-band image.

    Raises KeyError if a canonical band is missing (image not renamed, or the
    wrong sensor profile was used).
    """
    missing = [b for b in CANONICAL_BANDS if b not in image]
    if missing:
        raise KeyError(f"Canonical bands missing: {missing}. Rename bands with the sensor profile first.")

    derived = OrderedDict((name, INDEX_FUNCTIONS[name](image)) for name in index_names(extended))
    return image.add_bands(derived)
