#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure we can import from src without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

SOURCE_BANDS = ("SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6", "SR_B7")


def make_scene_bands(shape=(4, 4), qa=0, seed=0):
    """Raw reflectance-like bands for every source band plus QA_PIXEL."""
    rng = np.random.default_rng(seed)
    bands = {name: rng.uniform(0.05, 0.6, size=shape) for name in SOURCE_BANDS}
    bands["QA_PIXEL"] = np.full(shape, qa, dtype=np.int64) if np.isscalar(qa) else np.asarray(qa, dtype=np.int64)
    return bands


@pytest.fixture
def write_scene():
    """Write a multi-band float32 GeoTIFF with band descriptions and tags."""
    import rasterio
    from rasterio.transform import from_origin

    def _write(path: Path, bands, tags=None, transform=None, crs="EPSG:32640"):
        names = list(bands)
        rows, cols = np.asarray(bands[names[0]]).shape
        transform = transform or from_origin(500000.0, 2800000.0, 30.0, 30.0)
        with rasterio.open(
            path,
            "w",
            driver="GTiff",
            height=rows,
            width=cols,
            count=len(names),
            dtype="float32",
            crs=crs,
            transform=transform,
        ) as dst:
            for i, name in enumerate(names, start=1):
                dst.write(np.asarray(bands[name], dtype=np.float32), i)
                dst.set_band_description(i, name)
            if tags:
                dst.update_tags(**tags)
        return path

    return _write
