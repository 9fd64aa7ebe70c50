#!/usr/bin/env python3
"""terrain.py

Elevation and slope bands, attached identically for every sensor.

Slope uses central differences (numpy.gradient) scaled by the pixel size
from the affine transform:
    slope = degrees(arctan(sqrt(dz/dx^2 + dz/dy^2)))

Pixel size is taken at face value. The DEM should be on a projected grid
(metres) for slope to be meaningful.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

import numpy as np

from coastlulc.raster import RasterImage


def pixel_size(transform: Any) -> Tuple[float, float]:
    """(x, y) pixel size from an affine transform; (1, 1) when unknown."""
    if transform is None:
        return 1.0, 1.0
    return abs(float(transform.a)), abs(float(transform.e))


def _axis_gradient(dem: np.ndarray, spacing: float, axis: int) -> np.ndarray:
    # A single row/column has no neighbour along that axis: treat it as flat
    if dem.shape[axis] < 2:
        return np.where(np.isfinite(dem), 0.0, np.nan)
    return np.gradient(dem, spacing, axis=axis)


def compute_slope(
    elevation: np.ma.MaskedArray,
    transform: Any = None,
    cell_size: Optional[Tuple[float, float]] = None,
) -> np.ma.MaskedArray:
    """Slope in degrees. Masked elevation masks the slope of its neighbours too."""
    elevation = np.ma.array(elevation, dtype=np.float64)
    dx_size, dy_size = cell_size if cell_size is not None else pixel_size(transform)

    dem = elevation.filled(np.nan)
    dz_dy = _axis_gradient(dem, dy_size, axis=0)
    dz_dx = _axis_gradient(dem, dx_size, axis=1)
    slope = np.degrees(np.arctan(np.sqrt(dz_dx ** 2 + dz_dy ** 2)))
    return np.ma.array(slope, mask=~np.isfinite(slope))


def add_terrain(
    image: RasterImage,
    elevation: np.ma.MaskedArray,
    cell_size: Optional[Tuple[float, float]] = None,
) -> RasterImage:
    """Append `elevation` and `slope` bands. The DEM must already be on the image grid."""
    elevation = np.ma.array(elevation, dtype=np.float64)
    if elevation.shape != image.shape:
        raise ValueError(f"DEM shape {elevation.shape} does not match image shape {image.shape}")
    slope = compute_slope(elevation, image.transform, cell_size=cell_size)
    return image.add_bands({"elevation": elevation, "slope": slope})
