#!/usr/bin/env python3
"""area.py

Per-class area of a classified map, in hectares.

area(value) = (number of valid pixels == value) * pixel area / 10 000

Pixel area comes from the affine transform, so the map should be on a
projected grid in metres.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import numpy as np
import pandas as pd

from coastlulc.classify.legend import DEFAULT_CLASSES, ClassLabel

SQ_METRES_PER_HECTARE = 10_000.0


def pixel_area_m2(transform: Any) -> float:
    """Area of one pixel from the transform's determinant."""
    if transform is None:
        raise ValueError("Classified map has no transform; pass pixel_area explicitly")
    return abs(float(transform.a) * float(transform.e) - float(transform.b) * float(transform.d))


def class_areas(
    classified: np.ma.MaskedArray,
    transform: Any = None,
    classes: Iterable[ClassLabel] = DEFAULT_CLASSES,
    pixel_area: Optional[float] = None,
) -> pd.DataFrame:
    """Area in hectares for every class; absent classes report 0."""
    classified = np.ma.array(classified)
    area_m2 = pixel_area if pixel_area is not None else pixel_area_m2(transform)

    valid = classified.compressed()
    counts: Dict[int, int] = {}
    if valid.size:
        values, n = np.unique(valid.astype(np.int64), return_counts=True)
        counts = {int(v): int(c) for v, c in zip(values, n)}

    rows = [
        {
            "value": c.value,
            "name": c.name,
            "pixels": counts.get(c.value, 0),
            "area": counts.get(c.value, 0) * area_m2 / SQ_METRES_PER_HECTARE,
        }
        for c in classes
    ]
    return pd.DataFrame(rows, columns=["value", "name", "pixels", "area"])
