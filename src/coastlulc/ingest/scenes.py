#!/usr/bin/env python3
"""scenes.py

Local scene catalog: list, filter and read Landsat surface-reflectance
GeoTIFFs.

Each scene is one multi-band GeoTIFF whose band descriptions carry the
source band names (SR_B2, ..., QA_PIXEL). Scenes are filtered by:
- acquisition year, parsed from the Landsat product ID in the filename
  (e.g. LC08_L2SP_160043_20140115_20200912_02_T1.tif -> 2014-01-15)
- a cloud-cover ceiling read from the GeoTIFF metadata tag named by the
  sensor profile (CLOUD_COVER_LAND for L8, CLOUD_COVER otherwise)

Scenes without a parseable date or cloud tag are kept and reported, so a
hand-made stack is never silently dropped.

Required deps: rasterio, numpy
"""

from __future__ import annotations

import re
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import rasterio
from rasterio.errors import RasterioIOError

from coastlulc.raster import RasterImage

# Landsat Collection 2 product ID: LXSS_LLLL_PPPRRR_YYYYMMDD_...
_PRODUCT_ID_RE = re.compile(r"L[CEOTM]\d{2}_[A-Z0-9]{4}_\d{6}_(\d{4})(\d{2})(\d{2})_")


def scene_date(path: Path) -> Optional[date]:
    """Acquisition date from a Landsat product ID filename, or None."""
    m = _PRODUCT_ID_RE.search(Path(path).name)
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def scene_cloud_cover(path: Path, key: str) -> Optional[float]:
    """Cloud-cover percentage from GeoTIFF tags, or None if absent."""
    with rasterio.open(path) as src:
        value = src.tags().get(key)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def list_scenes(
    scenes_dir: Path,
    *,
    year: Optional[int] = None,
    max_cloud_cover: Optional[float] = None,
    cloud_cover_key: str = "CLOUD_COVER",
    pattern: str = "*.tif",
) -> List[Path]:
    """List scenes in `scenes_dir` passing the year and cloud-cover filters.

    Cloud cover must be strictly below `max_cloud_cover`.
    """
    if not scenes_dir.exists() or not scenes_dir.is_dir():
        raise SystemExit(f"Scenes directory not found: {scenes_dir}")

    kept: List[Path] = []
    for path in sorted(scenes_dir.glob(pattern)):
        acquired = scene_date(path)
        if year is not None:
            if acquired is None:
                print(f"[CATALOG] {path.name}: no acquisition date in name; keeping")
            elif acquired.year != int(year):
                continue

        if max_cloud_cover is not None:
            cover = scene_cloud_cover(path, cloud_cover_key)
            if cover is None:
                print(f"[CATALOG] {path.name}: no {cloud_cover_key} tag; keeping")
            elif cover >= float(max_cloud_cover):
                print(f"[SKIP] {path.name} ({cloud_cover_key}={cover:g})")
                continue

        kept.append(path)

    print(f"[CATALOG] {len(kept)} scene(s) selected from {scenes_dir}")
    return kept


def _band_names(src) -> List[str]:
    return [desc if desc else f"B{i + 1}" for i, desc in enumerate(src.descriptions)]


def read_scene(path: Path, bands: Optional[Sequence[str]] = None) -> RasterImage:
    """Read a scene GeoTIFF into a RasterImage.

    Nodata pixels (and NaN in float rasters) are masked. If `bands` is given,
    only those bands are read, in that order; a missing band raises KeyError.
    """
    if not path.exists():
        raise SystemExit(f"Scene not found: {path}")

    try:
        with rasterio.open(path) as src:
            names = _band_names(src)
            wanted = list(bands) if bands is not None else names
            missing = [b for b in wanted if b not in names]
            if missing:
                raise KeyError(f"{path.name} lacks bands {missing}. Available: {names}")

            indexes = [names.index(b) + 1 for b in wanted]
            data = src.read(indexes, masked=True)
            transform = src.transform
            crs = src.crs
            tags = {str(k): str(v) for k, v in src.tags().items()}
    except RasterioIOError as e:
        raise SystemExit(f"Scene read failed for {path}: {e}") from e

    stack = np.ma.array(data.data, mask=np.ma.getmaskarray(data))
    tags.setdefault("SCENE_ID", path.stem)
    return RasterImage.from_stack(stack, wanted, transform=transform, crs=crs, tags=tags)
