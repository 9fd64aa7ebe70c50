#!/usr/bin/env python3
"""correlation.py

Pairwise Pearson correlation between feature bands, used to pick a
non-redundant band subset for classification.

Pixels are sampled at random from those valid in every requested band,
then correlated with pandas. Output rows/columns are labelled "NAME(i)"
so the CSV keeps band order visible.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from coastlulc.raster import RasterImage


def sample_pixels(
    image: RasterImage,
    bands: Optional[Sequence[str]] = None,
    num_pixels: int = 100,
    seed: int = 0,
) -> pd.DataFrame:
    """Random pixels valid in all `bands` (all of them if fewer exist)."""
    subset = image.select(bands) if bands is not None else image
    valid = subset.validity()
    rows, cols = np.nonzero(valid)

    rng = np.random.default_rng(seed)
    if len(rows) > num_pixels:
        pick = rng.choice(len(rows), size=num_pixels, replace=False)
        pick.sort()
        rows, cols = rows[pick], cols[pick]

    return pd.DataFrame({name: subset[name].data[rows, cols].astype(np.float64) for name in subset.band_names})


def correlation_matrix(samples: pd.DataFrame) -> pd.DataFrame:
    """Pearson correlation between every pair of columns."""
    if len(samples) < 2:
        raise ValueError(f"Need at least 2 samples for correlation, got {len(samples)}")
    return samples.corr(method="pearson")


def indexed_labels(bands: Sequence[str]) -> List[str]:
    return [f"{band}({i})" for i, band in enumerate(bands)]


def correlation_table(image: RasterImage, bands: Optional[Sequence[str]] = None, num_pixels: int = 100, seed: int = 0) -> pd.DataFrame:
    """Sample, correlate and relabel, ready for CSV export."""
    samples = sample_pixels(image, bands, num_pixels=num_pixels, seed=seed)
    corr = correlation_matrix(samples)
    labels = indexed_labels(list(corr.columns))
    corr.index = labels
    corr.columns = labels
    return corr
