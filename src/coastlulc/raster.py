#!/usr/bin/env python3
"""raster.py

In-memory raster image used by every coastlulc stage.

A RasterImage is an ordered set of named 2-D bands sharing one grid
(shape, affine transform, CRS). Each band is a numpy masked array: masking a
pixel marks it invalid without touching its value, so aggregates (medians,
samples, areas) skip it instead of treating it as zero.

Images are treated as immutable values. Operations return new images; the
only growth path is add_bands(), which never replaces an existing band.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np


def as_masked(arr: Any) -> np.ma.MaskedArray:
    """Coerce an array into a masked array with a full-shape boolean mask.

    NaN/inf in float input is masked; existing masks are preserved.
    """
    if isinstance(arr, np.ma.MaskedArray):
        out = np.ma.array(arr.data, mask=np.ma.getmaskarray(arr), copy=False)
    else:
        data = np.asarray(arr)
        out = np.ma.array(data, mask=np.zeros(data.shape, dtype=bool), copy=False)
    if np.issubdtype(out.dtype, np.floating):
        out = np.ma.array(out.data, mask=out.mask | ~np.isfinite(out.data), copy=False)
    return out


@dataclass
class RasterImage:
    bands: "OrderedDict[str, np.ma.MaskedArray]"
    transform: Any = None
    crs: Any = None
    tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.bands = OrderedDict((str(k), as_masked(v)) for k, v in self.bands.items())
        shapes = {b.shape for b in self.bands.values()}
        if len(shapes) > 1:
            raise ValueError(f"All bands must share one grid; got shapes {sorted(shapes)}")
        for name, band in self.bands.items():
            if band.ndim != 2:
                raise ValueError(f"Band '{name}' must be 2-D, got {band.ndim}-D")

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_stack(
        cls,
        stack: np.ndarray,
        names: Iterable[str],
        transform: Any = None,
        crs: Any = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> "RasterImage":
        """Build an image from a (bands, rows, cols) array and band names."""
        names = list(names)
        if stack.ndim != 3 or stack.shape[0] != len(names):
            raise ValueError(f"Stack shape {stack.shape} does not match {len(names)} band names")
        bands = OrderedDict((n, stack[i]) for i, n in enumerate(names))
        return cls(bands, transform=transform, crs=crs, tags=dict(tags or {}))

    def _derive(self, bands: Mapping[str, np.ma.MaskedArray]) -> "RasterImage":
        """New image on the same grid."""
        return RasterImage(OrderedDict(bands), transform=self.transform, crs=self.crs, tags=dict(self.tags))

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def band_names(self) -> List[str]:
        return list(self.bands.keys())

    @property
    def shape(self) -> Optional[Tuple[int, int]]:
        for band in self.bands.values():
            return band.shape
        return None

    def __getitem__(self, name: str) -> np.ma.MaskedArray:
        return self.bands[name]

    def __contains__(self, name: object) -> bool:
        return name in self.bands

    def __len__(self) -> int:
        return len(self.bands)

    def stack(self, names: Optional[Iterable[str]] = None) -> np.ma.MaskedArray:
        """Return selected bands as a (bands, rows, cols) masked array."""
        names = self.band_names if names is None else list(names)
        return np.ma.stack([self.bands[n] for n in names], axis=0)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def select(self, names: Iterable[str]) -> "RasterImage":
        """Subset (and reorder) bands. Raises KeyError on unknown names."""
        names = list(names)
        missing = [n for n in names if n not in self.bands]
        if missing:
            raise KeyError(f"Bands not found: {missing}. Available: {self.band_names}")
        return self._derive((n, self.bands[n]) for n in names)

    def add_bands(self, new: Mapping[str, Any]) -> "RasterImage":
        """Append bands. Existing bands are never replaced."""
        clash = [n for n in new if n in self.bands]
        if clash:
            raise ValueError(f"Bands already present: {clash}")
        bands = OrderedDict(self.bands)
        for name, arr in new.items():
            bands[name] = arr
        return self._derive(bands)

    def validity(self) -> np.ndarray:
        """Pixels valid in every band (minimum across band masks)."""
        if not self.bands:
            raise ValueError("Image has no bands")
        masks = [np.ma.getmaskarray(b) for b in self.bands.values()]
        return ~np.logical_or.reduce(masks)

    def update_mask(self, valid: np.ndarray) -> "RasterImage":
        """Mask pixels where `valid` is False in every band.

        Masks only ever tighten; data values are untouched.
        """
        valid = np.asarray(valid, dtype=bool)
        if valid.shape != self.shape:
            raise ValueError(f"Mask shape {valid.shape} does not match image shape {self.shape}")
        return self._derive(
            (n, np.ma.array(b.data, mask=np.ma.getmaskarray(b) | ~valid, copy=False))
            for n, b in self.bands.items()
        )

    def rename(self, mapping: Mapping[str, str]) -> "RasterImage":
        """Select and rename bands: mapping is new name -> existing name."""
        missing = [src for src in mapping.values() if src not in self.bands]
        if missing:
            raise KeyError(f"Bands not found: {missing}. Available: {self.band_names}")
        return self._derive((new, self.bands[src]) for new, src in mapping.items())
