#!/usr/bin/env python3
"""region.py

Study-region boundary handling.

The region is any vector file geopandas can read (GeoPackage, shapefile).
Clipping masks pixels whose centre falls outside the region's polygons;
the grid itself is not cropped, so images stay stackable.

Hand-digitised coastlines often self-intersect, so invalid polygons are
repaired with shapely before rasterising.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import geopandas as gpd
from rasterio.features import geometry_mask
from shapely import make_valid

from coastlulc.raster import RasterImage


def load_region(path: Path, layer: Optional[str] = None) -> gpd.GeoDataFrame:
    """Read the region boundary. Raises SystemExit if missing, empty or CRS-less."""
    if not path.exists():
        raise SystemExit(f"Region file not found: {path}")
    gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    if gdf.empty:
        raise SystemExit(f"Region file has no features: {path}")
    if gdf.crs is None:
        raise SystemExit(f"Region file has no CRS: {path}")
    return _make_valid(gdf)


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Repair invalid geometries; valid ones are left untouched."""
    geoms = gdf.geometry
    invalid = geoms.notna() & ~geoms.is_valid
    if not invalid.any():
        return gdf

    print(f"[REGION] repairing {int(invalid.sum())} invalid geometry(ies)")
    out = gdf.copy()
    out[geoms.name] = geoms.apply(lambda g: make_valid(g) if g is not None else g)
    return out


def clip_to_region(image: RasterImage, region: gpd.GeoDataFrame) -> RasterImage:
    """Mask every band outside the region polygons."""
    if image.transform is None:
        raise ValueError("Image has no transform; cannot clip to region")

    if image.crs is not None and region.crs is not None and region.crs != image.crs:
        region = region.to_crs(image.crs)

    region = _make_valid(region)
    geoms = [g for g in region.geometry if g is not None and not g.is_empty]
    if not geoms:
        raise ValueError("Region contains no usable geometries")

    outside = geometry_mask(geoms, out_shape=image.shape, transform=image.transform)
    return image.update_mask(~outside)
