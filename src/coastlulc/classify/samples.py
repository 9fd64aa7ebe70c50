#!/usr/bin/env python3
"""samples.py

Training samples: feature values at labelled points.

Points are read with geopandas, reprojected to the image CRS, and looked
up at the pixel that contains them. Points outside the grid or on a masked
pixel (in any requested band) are dropped.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from rasterio.transform import rowcol

from coastlulc.raster import RasterImage

DEFAULT_LABEL_FIELD = "landcover"


def load_points(path: Path, layer: Optional[str] = None) -> gpd.GeoDataFrame:
    """Read labelled training points. Raises SystemExit if missing or empty."""
    if not path.exists():
        raise SystemExit(f"Training points not found: {path}")
    gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    if gdf.empty:
        raise SystemExit(f"Training points file has no features: {path}")
    return gdf


def parse_labels(values: pd.Series) -> pd.Series:
    """Class labels as floats; numeric strings are parsed, the rest become NaN."""
    return pd.to_numeric(values, errors="coerce").astype(float)


def sample_points(
    image: RasterImage,
    points: gpd.GeoDataFrame,
    bands: Sequence[str],
    label_field: str = DEFAULT_LABEL_FIELD,
) -> pd.DataFrame:
    """Band values plus label for every usable point."""
    if label_field not in points.columns:
        raise KeyError(f"Label field '{label_field}' not in points. Columns: {list(points.columns)}")
    if image.transform is None:
        raise ValueError("Image has no transform; cannot locate points")

    if image.crs is not None and points.crs is not None and points.crs != image.crs:
        points = points.to_crs(image.crs)

    subset = image.select(bands)
    n_rows, n_cols = subset.shape
    valid = subset.validity()

    labels = parse_labels(points[label_field])
    xs = points.geometry.x.to_numpy()
    ys = points.geometry.y.to_numpy()
    rows, cols = rowcol(image.transform, xs, ys)
    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)

    inside = (rows >= 0) & (rows < n_rows) & (cols >= 0) & (cols < n_cols)
    keep = inside & labels.notna().to_numpy()
    keep[keep] = valid[rows[keep], cols[keep]]

    dropped = int(len(points) - keep.sum())
    if dropped:
        print(f"[CLASSIFY] dropped {dropped} point(s) outside the image, unlabelled, or masked")

    r, c = rows[keep], cols[keep]
    data = {name: subset[name].data[r, c].astype(np.float64) for name in subset.band_names}
    data[label_field] = labels.to_numpy()[keep]
    return pd.DataFrame(data)


def split_samples(
    samples: pd.DataFrame,
    split: float = 0.7,
    seed: int = 100,
    distribution: str = "normal",
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split on a random column: random < split -> training, else testing.

    `distribution` picks the random column: "normal" (standard normal, the
    study's setting) or "uniform" on [0, 1).
    """
    rng = np.random.default_rng(seed)
    if distribution == "normal":
        random = rng.standard_normal(len(samples))
    elif distribution == "uniform":
        random = rng.random(len(samples))
    else:
        raise ValueError(f"Unknown distribution '{distribution}' (use 'normal' or 'uniform')")

    samples = samples.assign(random=random)
    training = samples[samples["random"] < split].reset_index(drop=True)
    testing = samples[samples["random"] >= split].reset_index(drop=True)
    return training, testing


def count_samples_per_class(labels: Iterable) -> Dict[int, int]:
    """Number of samples per class value, sorted by class."""
    counts: Dict[int, int] = {}
    for value in labels:
        if value is None or (isinstance(value, float) and np.isnan(value)):
            continue
        key = int(value)
        counts[key] = counts.get(key, 0) + 1
    return dict(sorted(counts.items()))
