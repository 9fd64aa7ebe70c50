#!/usr/bin/env python3
"""legend.py

LULC class table: value -> name and display colour.

The table is static. config/classes.yaml may override names/colours, but
values stay 1..8 unless the YAML adds new ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class ClassLabel:
    value: int
    name: str
    color: str

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return hex_to_rgb(self.color)


DEFAULT_CLASSES: Tuple[ClassLabel, ...] = (
    ClassLabel(1, "Mangrove", "b99470"),
    ClassLabel(2, "Agriculture", "fefae0"),
    ClassLabel(3, "DenseVeg", "a9b388"),
    ClassLabel(4, "SparseVeg", "5f6f52"),
    ClassLabel(5, "UrbanGreen", "f2d388"),
    ClassLabel(6, "Bare", "c98474"),
    ClassLabel(7, "Artificial", "874c62"),
    ClassLabel(8, "Water", "a7d2cb"),
)

LEGEND_TITLE = "Vegetation Classes"


def hex_to_rgb(color: str) -> Tuple[int, int, int]:
    """'b99470' or '#b99470' -> (185, 148, 112)."""
    s = color.strip().lstrip("#")
    if len(s) != 6:
        raise ValueError(f"Expected a 6-digit hex colour, got '{color}'")
    return int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16)


def load_classes(classes_yaml: Optional[Dict[str, Any]] = None) -> Tuple[ClassLabel, ...]:
    """Default class table, updated by the `classes:` mapping of classes.yaml.

    Expects:
        classes:
          1: {name: Mangrove, color: b99470}
          ...
    """
    table: Dict[int, ClassLabel] = {c.value: c for c in DEFAULT_CLASSES}
    if not classes_yaml:
        return tuple(table.values())

    classes = classes_yaml.get("classes", {})
    if not isinstance(classes, dict):
        raise SystemExit("classes.yaml must contain a top-level 'classes:' mapping")

    for key, cfg in classes.items():
        if not isinstance(cfg, dict):
            raise SystemExit(f"classes.yaml: entry {key} must be a mapping")
        value = int(key)
        base = table.get(value)
        name = str(cfg.get("name", base.name if base else ""))
        color = str(cfg.get("color", base.color if base else ""))
        if not name or not color:
            raise SystemExit(f"classes.yaml: class {value} needs both name and color")
        try:
            hex_to_rgb(color)
        except ValueError as e:
            raise SystemExit(f"classes.yaml: class {value}: {e}") from e
        table[value] = ClassLabel(value, name, color)

    return tuple(table[v] for v in sorted(table))


def legend_table(classes: Tuple[ClassLabel, ...] = DEFAULT_CLASSES) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = [{"value": c.value, "name": c.name, "color": f"#{c.color.lstrip('#')}"} for c in classes]
    return pd.DataFrame(rows, columns=["value", "name", "color"])


def colorize(classified: np.ma.MaskedArray, classes: Tuple[ClassLabel, ...] = DEFAULT_CLASSES) -> np.ndarray:
    """(3, rows, cols) uint8 RGB. Masked and unknown values are black."""
    classified = np.ma.array(classified)
    values = classified.filled(0)
    rgb = np.zeros((3,) + values.shape, dtype=np.uint8)
    for c in classes:
        hit = values == c.value
        for i, channel in enumerate(c.rgb):
            rgb[i][hit] = channel
    return rgb
