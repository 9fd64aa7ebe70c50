#!/usr/bin/env python3
"""build_features.py

# *how raw scenes become a feature image*

Feature engineering pipeline for one sensor and one composite period:

1. Mask clouds / shadows per scene (QA bits, per sensor profile)
2. Gap-fill scan-line stripes per scene (profiles with fill_gaps only)
3. Temporal median composite
4. Rename source bands to canonical names (blue, green, red, nir, swir1, swir2)
5. Append spectral indices (GNDVI / AVI only for extended profiles)
6. Append elevation + slope from the DEM

This module exposes two interfaces:
1. build_feature_image() - pure in-memory pipeline
2. build_features() - file-level driver (catalog -> pipeline -> GeoTIFF)

The file-level driver is what `python -m coastlulc.features build` calls.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from coastlulc.features.composite import median_composite
from coastlulc.features.gapfill import fill_gaps
from coastlulc.features.indices import compute_indices
from coastlulc.features.masking import mask_clouds
from coastlulc.features.terrain import add_terrain
from coastlulc.raster import RasterImage
from coastlulc.sensors import SensorProfile, rename_bands

DEFAULT_SELECTED_BANDS = ("NDVI", "EVI", "MVI", "MSI", "BSI", "elevation", "slope")

DEFAULT_GAP_FILL: Dict[str, Any] = {"radius": 1.5, "iterations": 2}


def prepare_scene(
    scene: RasterImage,
    profile: SensorProfile,
    gap_fill: Optional[Dict[str, Any]] = None,
) -> RasterImage:
    """Mask (and gap-fill, if the profile asks) a single raw scene."""
    masked = mask_clouds(scene, profile)
    if profile.fill_gaps:
        settings = dict(DEFAULT_GAP_FILL)
        settings.update(gap_fill or {})
        masked = fill_gaps(masked, radius=float(settings["radius"]), iterations=int(settings["iterations"]))
    return masked


def build_feature_image(
    scenes: Sequence[RasterImage],
    profile: SensorProfile,
    elevation: Optional[np.ma.MaskedArray] = None,
    gap_fill: Optional[Dict[str, Any]] = None,
) -> RasterImage:
    """Run the full pipeline over in-memory scenes.

    Scenes must be co-registered and carry the profile's source bands.
    Without `elevation`, the terrain bands are omitted.
    """
    if not scenes:
        raise ValueError("No scenes to composite")

    prepared = [prepare_scene(s.select(profile.source_bands), profile, gap_fill) for s in scenes]
    composite = median_composite(prepared)
    image = rename_bands(composite, profile)
    image = compute_indices(image, extended=profile.extended_indices)
    if elevation is not None:
        image = add_terrain(image, elevation)
    return image


def select_bands(image: RasterImage, names: Sequence[str] = DEFAULT_SELECTED_BANDS) -> RasterImage:
    """Subset the feature image for export / classification."""
    return image.select(names)


# -----------------------------------------------------------------------------
# File-level driver (called by CLI)
# -----------------------------------------------------------------------------

def build_features(
    *,
    scenes_dir: Path,
    profile: SensorProfile,
    out_tif: Path,
    year: Optional[int] = None,
    max_cloud_cover: Optional[float] = None,
    dem_path: Optional[Path] = None,
    region_path: Optional[Path] = None,
    bands: Optional[Sequence[str]] = None,
    gap_fill: Optional[Dict[str, Any]] = None,
    overwrite: bool = False,
    dry_run: bool = False,
) -> int:
    """Build and export one feature composite.

    Parameters
    ----------
    scenes_dir : Path
        Directory of scene GeoTIFFs (band descriptions = source band names).
    profile : SensorProfile
        Sensor variant; chosen explicitly, never detected.
    out_tif : Path
        Output GeoTIFF path.
    year : int | None
        Keep only scenes acquired in this year.
    max_cloud_cover : float | None
        Keep only scenes whose cloud-cover tag is below this value.
    dem_path : Path | None
        DEM raster; adds elevation + slope when given.
    region_path : Path | None
        Study region vector file; pixels outside are masked.
    bands : list[str] | None
        Bands to export (default: all).
    """
    # Lazy imports keep the pure pipeline free of file I/O dependencies
    from coastlulc.export import write_geotiff
    from coastlulc.ingest.scenes import list_scenes, read_scene

    paths: List[Path] = list_scenes(
        scenes_dir,
        year=year,
        max_cloud_cover=max_cloud_cover,
        cloud_cover_key=profile.cloud_cover_key,
    )
    if not paths:
        raise SystemExit(f"No scenes left in {scenes_dir} after filtering (year={year}, max_cloud_cover={max_cloud_cover})")

    print(f"[FEATURES] sensor={profile.name} scenes={len(paths)} gap_fill={profile.fill_gaps}")
    print(f"  - out: {out_tif}")
    if dry_run:
        for p in paths:
            print(f"  - scene: {p.name}")
        return 0

    if out_tif.exists() and not overwrite:
        print(f"[SKIP] {out_tif}")
        return 0

    scenes = [read_scene(p, bands=profile.source_bands) for p in paths]

    elevation = None
    if dem_path is not None:
        from coastlulc.ingest.dem import read_dem_like

        elevation = read_dem_like(dem_path, scenes[0])

    image = build_feature_image(scenes, profile, elevation=elevation, gap_fill=gap_fill)

    if region_path is not None:
        from coastlulc.ingest.region import clip_to_region, load_region

        image = clip_to_region(image, load_region(region_path))

    if bands:
        image = select_bands(image, bands)

    image.tags.update({"SENSOR": profile.name, "SCENE_COUNT": str(len(paths))})
    if year is not None:
        image.tags["YEAR"] = str(year)

    write_geotiff(image, out_tif, overwrite=overwrite)
    print("[FEATURES] Done")
    return 0


if __name__ == "__main__":
    raise SystemExit(
        "This module is not meant to be run directly. "
        "Use: python -m coastlulc.features build --sensor L8 --year 2014 ..."
    )
