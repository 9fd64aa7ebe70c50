#!/usr/bin/env python3
"""dem.py

Read a digital elevation model onto the grid of a composite.

The DEM is warped (bilinear) to the image's transform, CRS and shape so the
elevation and slope bands line up pixel-for-pixel with the spectral bands.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import rasterio
from rasterio.errors import RasterioIOError
from rasterio.warp import Resampling, reproject

from coastlulc.raster import RasterImage


def read_dem_like(dem_path: Path, image: RasterImage, band: int = 1) -> np.ma.MaskedArray:
    """DEM band resampled onto `image`'s grid; nodata comes back masked."""
    if not dem_path.exists():
        raise SystemExit(f"DEM not found: {dem_path}")
    if image.transform is None or image.crs is None:
        raise ValueError("Image has no georeferencing; cannot align the DEM")

    rows, cols = image.shape
    out = np.full((rows, cols), np.nan, dtype=np.float64)

    try:
        with rasterio.open(dem_path) as src:
            reproject(
                source=rasterio.band(src, band),
                destination=out,
                src_transform=src.transform,
                src_crs=src.crs,
                src_nodata=src.nodata,
                dst_transform=image.transform,
                dst_crs=image.crs,
                dst_nodata=np.nan,
                resampling=Resampling.bilinear,
            )
    except RasterioIOError as e:
        raise SystemExit(f"DEM read failed for {dem_path}: {e}") from e

    return np.ma.masked_invalid(out)
