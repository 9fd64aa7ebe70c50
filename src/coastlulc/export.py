#!/usr/bin/env python3
"""export.py

Persist images and tables.

- Feature images -> float32 GeoTIFF, NaN nodata, band descriptions = names
- Classified maps -> uint8 GeoTIFF, 0 nodata
- RGB visualizations -> 3-band uint8 GeoTIFF
- Tables -> CSV via pandas

Writers return False (and print [SKIP]) when the output exists and
overwrite is off, mirroring the ingest modules' cache behaviour.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import rasterio

from coastlulc.raster import RasterImage


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _skip(out_path: Path, overwrite: bool) -> bool:
    if out_path.exists() and not overwrite:
        print(f"[SKIP] {out_path} exists (use --overwrite)")
        return True
    return False


def _profile(height: int, width: int, count: int, dtype: str, transform: Any, crs: Any, nodata: Any) -> dict:
    return dict(
        driver="GTiff",
        height=height,
        width=width,
        count=count,
        dtype=dtype,
        transform=transform,
        crs=crs,
        nodata=nodata,
        tiled=True,
        compress="deflate",
    )


def write_geotiff(image: RasterImage, out_path: Path, *, overwrite: bool = False) -> bool:
    """Write every band of `image` as float32, masked pixels as NaN."""
    if _skip(out_path, overwrite):
        return False
    if not len(image):
        raise ValueError("Refusing to write an image with no bands")

    rows, cols = image.shape
    data = image.stack().astype(np.float32).filled(np.nan)
    profile = _profile(rows, cols, len(image), "float32", image.transform, image.crs, np.nan)

    _ensure_dir(out_path.parent)
    with rasterio.open(out_path, "w", **profile) as dst:
        dst.write(data)
        for i, name in enumerate(image.band_names, start=1):
            dst.set_band_description(i, name)
        if image.tags:
            dst.update_tags(**image.tags)
    print(f"Wrote {len(image)} band(s) -> {out_path}")
    return True


def write_classified(
    classified: np.ma.MaskedArray,
    out_path: Path,
    *,
    transform: Any = None,
    crs: Any = None,
    overwrite: bool = False,
) -> bool:
    """Write a class map as uint8 with 0 as nodata."""
    if _skip(out_path, overwrite):
        return False
    classified = np.ma.array(classified)
    rows, cols = classified.shape
    data = classified.filled(0).astype(np.uint8)
    profile = _profile(rows, cols, 1, "uint8", transform, crs, 0)

    _ensure_dir(out_path.parent)
    with rasterio.open(out_path, "w", **profile) as dst:
        dst.write(data, 1)
        dst.set_band_description(1, "classification")
    print(f"Wrote classified map -> {out_path}")
    return True


def write_rgb(
    rgb: np.ndarray,
    out_path: Path,
    *,
    transform: Any = None,
    crs: Any = None,
    overwrite: bool = False,
) -> bool:
    """Write a (3, rows, cols) uint8 visualization."""
    if _skip(out_path, overwrite):
        return False
    if rgb.ndim != 3 or rgb.shape[0] != 3:
        raise ValueError(f"Expected (3, rows, cols) RGB array, got {rgb.shape}")
    profile = _profile(rgb.shape[1], rgb.shape[2], 3, "uint8", transform, crs, None)

    _ensure_dir(out_path.parent)
    with rasterio.open(out_path, "w", **profile) as dst:
        dst.write(rgb.astype(np.uint8))
        for i, name in enumerate(("vis-red", "vis-green", "vis-blue"), start=1):
            dst.set_band_description(i, name)
    print(f"Wrote visualization -> {out_path}")
    return True


def write_csv(df: pd.DataFrame, out_path: Path, *, overwrite: bool = False, index: bool = False) -> bool:
    if _skip(out_path, overwrite):
        return False
    _ensure_dir(out_path.parent)
    df.to_csv(out_path, index=index)
    print(f"Wrote {len(df)} row(s) -> {out_path}")
    return True


def read_classified(path: Path) -> Tuple[np.ma.MaskedArray, Any, Any]:
    """Read a class map written by write_classified: (array, transform, crs)."""
    if not path.exists():
        raise SystemExit(f"Classified image not found: {path}")
    with rasterio.open(path) as src:
        data = src.read(1, masked=True)
        return np.ma.array(data.data, mask=np.ma.getmaskarray(data)), src.transform, src.crs


def read_feature_image(path: Path, bands: Optional[Sequence[str]] = None) -> RasterImage:
    """Read a feature GeoTIFF written by write_geotiff."""
    from coastlulc.ingest.scenes import read_scene

    return read_scene(path, bands=bands)
