#!/usr/bin/env python3
"""coastlulc.features

Feature engineering CLI.

This is one of two coastlulc subsystem CLIs:
- coastlulc.features → composites, spectral indices, band correlation (this file)
- coastlulc.classify → random forest training, class areas, legend

Design goals:
- One subcommand per operation
- Config-driven defaults via config/study.yaml, CLI flags win
- Sensor chosen explicitly (--sensor), never detected from the data
- All subcommands support --dry-run

Examples:
  # List scenes passing the year / cloud-cover filters
  python -m coastlulc.features list-scenes --sensor L8 --year 2014

  # Build the feature composite for one year
  python -m coastlulc.features build --sensor L8 --year 2014 \
    --scenes-dir data/raw/scenes/L8 --dem data/raw/dem/nasadem.tif

  # Correlation matrix of the exported feature bands
  python -m coastlulc.features correlate --sensor L8 --year 2014 --num-pixels 100
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

from coastlulc.config import (
    as_band_list,
    as_path,
    get_section,
    load_optional_yaml,
    load_study,
    pick,
    DEFAULT_FEATURES_DIR,
    DEFAULT_SENSORS_YAML,
    DEFAULT_STUDY_YAML,
    DEFAULT_TABLES_DIR,
)


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="coastlulc.features",
        description="Feature engineering for coastal LULC composites",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m coastlulc.features   # Composites and indices (this)
  python -m coastlulc.classify   # Classification, areas, legend
        """,
    )

    # --- Global args ---
    ap.add_argument("--study-yaml", type=Path, default=DEFAULT_STUDY_YAML, help=f"Path to study YAML (default: {DEFAULT_STUDY_YAML})")
    ap.add_argument("--sensors-yaml", type=Path, default=DEFAULT_SENSORS_YAML, help=f"Path to sensors YAML (default: {DEFAULT_SENSORS_YAML})")
    ap.add_argument("--sensor", default=None, help="Sensor profile (L8, L7, L5; default from study YAML)")
    ap.add_argument("--year", type=int, default=None, help="Composite year (default from study YAML)")
    ap.add_argument("--dry-run", action="store_true", help="Print planned actions without writing files")
    ap.add_argument("--overwrite", action="store_true", help="Overwrite existing output files")

    sub = ap.add_subparsers(dest="command", required=True)

    # --- list-scenes ---
    ls = sub.add_parser("list-scenes", help="List scenes passing the year / cloud-cover filters")
    ls.add_argument("--scenes-dir", type=Path, default=None)
    ls.add_argument("--max-cloud-cover", type=float, default=None)

    # --- build ---
    build = sub.add_parser(
        "build",
        help="Build a masked, index-enriched median composite",
        description="""
Build one feature composite:
1. Select scenes by year and cloud cover
2. Mask clouds/shadows from QA bits (per sensor)
3. Gap-fill scan-line stripes (Landsat 7)
4. Temporal median composite
5. Add spectral indices, elevation and slope
6. Clip to the study region and write a GeoTIFF
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    build.add_argument("--scenes-dir", type=Path, default=None, help="Directory of scene GeoTIFFs")
    build.add_argument("--dem", type=Path, default=None, help="DEM raster (adds elevation + slope)")
    build.add_argument("--region", type=Path, default=None, help="Study region vector file")
    build.add_argument("--max-cloud-cover", type=float, default=None, help="Scene cloud-cover ceiling (percent)")
    build.add_argument("--bands", nargs="+", default=None, help="Bands to export (default: selected_bands from study YAML)")
    build.add_argument("--all-bands", action="store_true", help="Export every band, ignoring selected_bands")
    build.add_argument("--out-tif", type=Path, default=None)

    # --- correlate ---
    corr = sub.add_parser("correlate", help="Pearson correlation between feature bands")
    corr.add_argument("--features-tif", type=Path, default=None, help="Feature GeoTIFF (default: output of build)")
    corr.add_argument("--bands", nargs="+", default=None, help="Bands to correlate (default: all)")
    corr.add_argument("--num-pixels", type=int, default=100)
    corr.add_argument("--seed", type=int, default=0)
    corr.add_argument("--out-csv", type=Path, default=None)

    return ap


# -----------------------------------------------------------------------------
# Shared resolution helpers
# -----------------------------------------------------------------------------

def _resolve_profile(args: argparse.Namespace, study: Dict[str, Any]):
    from coastlulc.sensors import get_profile, load_profiles

    sensors_yaml = load_optional_yaml(args.sensors_yaml)
    name = pick(args.sensor, study, "sensor")
    if not name:
        raise SystemExit("No sensor given. Pass --sensor or set study.sensor in the study YAML")
    try:
        profile = get_profile(str(name), load_profiles(sensors_yaml))
    except KeyError as e:
        raise SystemExit(str(e.args[0])) from e
    return profile, get_section(sensors_yaml, "gap_fill")


def _default_features_tif(study: Dict[str, Any], sensor: str, year: Optional[int]) -> Path:
    out_dir = as_path(study.get("features_dir")) or DEFAULT_FEATURES_DIR
    suffix = f"_{year}" if year is not None else ""
    return out_dir / f"features_{sensor}{suffix}.tif"


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_list_scenes(args: argparse.Namespace, study: Dict[str, Any]) -> int:
    from coastlulc.ingest.scenes import list_scenes

    profile, _ = _resolve_profile(args, study)
    scenes_dir = as_path(pick(args.scenes_dir, study, "scenes_dir"))
    if scenes_dir is None:
        raise SystemExit("No scenes directory. Pass --scenes-dir or set study.scenes_dir")

    paths = list_scenes(
        scenes_dir,
        year=pick(args.year, study, "year"),
        max_cloud_cover=pick(args.max_cloud_cover, study, "max_cloud_cover"),
        cloud_cover_key=profile.cloud_cover_key,
    )
    for p in paths:
        print(f"  - {p.name}")
    return 0


def _handle_build(args: argparse.Namespace, study: Dict[str, Any]) -> int:
    profile, gap_fill = _resolve_profile(args, study)
    year = pick(args.year, study, "year")
    scenes_dir = as_path(pick(args.scenes_dir, study, "scenes_dir"))
    if scenes_dir is None:
        raise SystemExit("No scenes directory. Pass --scenes-dir or set study.scenes_dir")

    bands: Optional[List[str]] = None
    if not args.all_bands:
        bands = as_band_list(pick(args.bands, study, "selected_bands"), default=[]) or None

    # Lazy import: keeps CLI startup fast, avoids loading scipy until needed
    from coastlulc.features.build_features import build_features

    return build_features(
        scenes_dir=scenes_dir,
        profile=profile,
        out_tif=args.out_tif or _default_features_tif(study, profile.name, year),
        year=int(year) if year is not None else None,
        max_cloud_cover=pick(args.max_cloud_cover, study, "max_cloud_cover"),
        dem_path=as_path(pick(args.dem, study, "dem")),
        region_path=as_path(pick(args.region, study, "region")),
        bands=bands,
        gap_fill=gap_fill,
        overwrite=args.overwrite,
        dry_run=args.dry_run,
    )


def _handle_correlate(args: argparse.Namespace, study: Dict[str, Any]) -> int:
    sensor = str(pick(args.sensor, study, "sensor", default="L8"))
    year = pick(args.year, study, "year")
    features_tif = args.features_tif or _default_features_tif(study, sensor, year)
    tables_dir = as_path(study.get("tables_dir")) or DEFAULT_TABLES_DIR
    suffix = f"_{year}" if year is not None else ""
    out_csv = args.out_csv or tables_dir / f"correlation_{sensor}{suffix}.csv"

    if args.dry_run:
        print("[dry-run] Would compute band correlation:")
        print(f"  Features: {features_tif}")
        print(f"  Bands: {args.bands or 'all'}")
        print(f"  Pixels: {args.num_pixels} (seed {args.seed})")
        print(f"  Output CSV: {out_csv}")
        return 0

    from coastlulc.export import read_feature_image, write_csv
    from coastlulc.features.correlation import correlation_table

    image = read_feature_image(features_tif, bands=args.bands)
    table = correlation_table(image, num_pixels=args.num_pixels, seed=args.seed)
    write_csv(table, out_csv, overwrite=args.overwrite, index=True)
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    # Load YAML once, inside main (so import doesn't have side effects)
    study = load_study(args.study_yaml)

    handlers = {
        "list-scenes": _handle_list_scenes,
        "build": _handle_build,
        "correlate": _handle_correlate,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args, study)


if __name__ == "__main__":
    raise SystemExit(main())
