#!/usr/bin/env python3
"""coastlulc.classify

Classification CLI.

This is one of two coastlulc subsystem CLIs:
- coastlulc.features → composites, spectral indices, band correlation
- coastlulc.classify → random forest training, class areas, legend (this file)

Examples:
  # Train on labelled points, write metrics CSV and the classified map
  python -m coastlulc.classify train --year 2016 \
    --points data/raw/training/training_2016.gpkg

  # Area per class (hectares)
  python -m coastlulc.classify area --year 2016

  # Legend table + RGB visualization of the classified map
  python -m coastlulc.classify legend --year 2016
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

from coastlulc.config import (
    as_band_list,
    as_path,
    load_optional_yaml,
    load_study,
    pick,
    DEFAULT_CLASSES_YAML,
    DEFAULT_CLASSIFIED_DIR,
    DEFAULT_FEATURES_DIR,
    DEFAULT_STUDY_YAML,
    DEFAULT_TABLES_DIR,
)


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="coastlulc.classify",
        description="Classification, class areas and legend for coastal LULC maps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m coastlulc.features   # Composites and indices
  python -m coastlulc.classify   # Classification, areas, legend (this)
        """,
    )

    # --- Global args ---
    ap.add_argument("--study-yaml", type=Path, default=DEFAULT_STUDY_YAML, help=f"Path to study YAML (default: {DEFAULT_STUDY_YAML})")
    ap.add_argument("--classes-yaml", type=Path, default=DEFAULT_CLASSES_YAML, help=f"Path to classes YAML (default: {DEFAULT_CLASSES_YAML})")
    ap.add_argument("--sensor", default=None, help="Sensor used for the feature composite (default from study YAML)")
    ap.add_argument("--year", type=int, default=None, help="Study year (default from study YAML)")
    ap.add_argument("--dry-run", action="store_true", help="Print planned actions without writing files")
    ap.add_argument("--overwrite", action="store_true", help="Overwrite existing output files")

    sub = ap.add_subparsers(dest="command", required=True)

    # --- train ---
    train = sub.add_parser("train", help="Train a random forest and classify the feature image")
    train.add_argument("--features-tif", type=Path, default=None, help="Feature GeoTIFF (default: output of features build)")
    train.add_argument("--points", type=Path, default=None, help="Labelled training points (vector file)")
    train.add_argument("--label-field", default=None, help="Point attribute holding the class value (default: landcover)")
    train.add_argument("--bands", nargs="+", default=None, help="Model input bands (default: model_bands from study YAML)")
    train.add_argument("--split", type=float, default=None, help="Training split threshold on the random column (default: 0.7)")
    train.add_argument("--n-trees", type=int, default=None, help="Number of trees (default: 100)")
    train.add_argument("--seed", type=int, default=100)
    train.add_argument("--out-csv", type=Path, default=None, help="Metrics CSV")
    train.add_argument("--out-tif", type=Path, default=None, help="Classified GeoTIFF")

    # --- area ---
    area = sub.add_parser("area", help="Area per class in hectares")
    area.add_argument("--classified-tif", type=Path, default=None)
    area.add_argument("--out-csv", type=Path, default=None)

    # --- legend ---
    legend = sub.add_parser("legend", help="Legend table and RGB visualization")
    legend.add_argument("--classified-tif", type=Path, default=None)
    legend.add_argument("--out-csv", type=Path, default=None, help="Legend table CSV")
    legend.add_argument("--out-tif", type=Path, default=None, help="RGB visualization GeoTIFF")

    return ap


# -----------------------------------------------------------------------------
# Path defaults
# -----------------------------------------------------------------------------

def _suffix(year: Any) -> str:
    return f"_{year}" if year is not None else ""


def _classified_tif(given: Optional[Path], year: Any, study: Dict[str, Any]) -> Path:
    if given:
        return given
    out_dir = as_path(study.get("classified_dir")) or DEFAULT_CLASSIFIED_DIR
    return out_dir / f"classified{_suffix(year)}.tif"


def _tables_dir(study: Dict[str, Any]) -> Path:
    return as_path(study.get("tables_dir")) or DEFAULT_TABLES_DIR


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_train(args: argparse.Namespace, study: Dict[str, Any]) -> int:
    year = pick(args.year, study, "year")
    sensor = str(pick(args.sensor, study, "sensor", default="L8"))
    features_dir = as_path(study.get("features_dir")) or DEFAULT_FEATURES_DIR
    features_tif = args.features_tif or features_dir / f"features_{sensor}{_suffix(year)}.tif"
    points_path = as_path(pick(args.points, study, "training_points"))
    if points_path is None:
        raise SystemExit("No training points. Pass --points or set study.training_points")

    from coastlulc.classify.train import DEFAULT_MODEL_BANDS

    label_field = str(pick(args.label_field, study, "label_field", default="landcover"))
    bands = as_band_list(pick(args.bands, study, "model_bands"), default=DEFAULT_MODEL_BANDS)
    split = float(pick(args.split, study, "train_split", default=0.7))
    n_trees = int(pick(args.n_trees, study, "n_trees", default=100))
    out_csv = args.out_csv or _tables_dir(study) / f"classification_metrics{_suffix(year)}.csv"
    out_tif = _classified_tif(args.out_tif, year, study)

    if args.dry_run:
        print("[dry-run] Would train a random forest:")
        print(f"  Features: {features_tif}")
        print(f"  Points: {points_path} (label field: {label_field})")
        print(f"  Bands: {bands}")
        print(f"  Split/Trees: {split} / {n_trees}")
        print(f"  Metrics CSV: {out_csv}")
        print(f"  Classified GeoTIFF: {out_tif}")
        return 0

    from coastlulc.classify.samples import count_samples_per_class, load_points, sample_points, split_samples
    from coastlulc.classify.train import classify_image, evaluate, metrics_table, train_classifier
    from coastlulc.export import read_feature_image, write_classified, write_csv

    image = read_feature_image(features_tif, bands=bands)
    samples = sample_points(image, load_points(points_path), bands, label_field=label_field)
    training, testing = split_samples(samples, split=split, seed=args.seed)
    print(f"[CLASSIFY] samples={len(samples)} train={len(training)} test={len(testing)}")

    for value, n in count_samples_per_class(training[label_field]).items():
        print(f"  - class {value}: {n} training sample(s)")

    try:
        clf = train_classifier(training, bands, label_field=label_field, n_trees=n_trees, seed=args.seed)
        metrics = evaluate(clf, testing, bands, label_field=label_field)
    except ValueError as e:
        raise SystemExit(f"Training failed for {points_path} (split={split}): {e}") from e
    print(f"[CLASSIFY] overall accuracy={metrics['accuracy']:.3f} kappa={metrics['kappa']:.3f}")

    table = metrics_table(
        metrics,
        year=int(year) if year is not None else None,
        image_id=str(features_tif),
        n_train=len(training),
        n_test=len(testing),
        split=split,
        bands=bands,
    )
    write_csv(table, out_csv, overwrite=args.overwrite)

    classified = classify_image(clf, image, bands)
    write_classified(classified, out_tif, transform=image.transform, crs=image.crs, overwrite=args.overwrite)
    return 0


def _handle_area(args: argparse.Namespace, study: Dict[str, Any]) -> int:
    year = pick(args.year, study, "year")
    classified_tif = _classified_tif(args.classified_tif, year, study)
    out_csv = args.out_csv or _tables_dir(study) / f"classified_areas{_suffix(year)}.csv"

    if args.dry_run:
        print("[dry-run] Would compute class areas:")
        print(f"  Classified GeoTIFF: {classified_tif}")
        print(f"  Output CSV: {out_csv}")
        return 0

    from coastlulc.classify.area import class_areas
    from coastlulc.classify.legend import load_classes
    from coastlulc.export import read_classified, write_csv

    classes = load_classes(load_optional_yaml(args.classes_yaml))
    classified, transform, _ = read_classified(classified_tif)
    table = class_areas(classified, transform, classes)

    print("[AREA] Area by value (hectares):")
    for _, row in table.iterrows():
        print(f"  - {row['value']} {row['name']}: {row['area']:.2f}")

    write_csv(table, out_csv, overwrite=args.overwrite)
    return 0


def _handle_legend(args: argparse.Namespace, study: Dict[str, Any]) -> int:
    year = pick(args.year, study, "year")
    classified_tif = _classified_tif(args.classified_tif, year, study)
    out_csv = args.out_csv or _tables_dir(study) / "legend.csv"
    out_dir = as_path(study.get("classified_dir")) or DEFAULT_CLASSIFIED_DIR
    out_tif = args.out_tif or out_dir / f"classified_rgb{_suffix(year)}.tif"

    if args.dry_run:
        print("[dry-run] Would render legend:")
        print(f"  Classified GeoTIFF: {classified_tif}")
        print(f"  Legend CSV: {out_csv}")
        print(f"  RGB GeoTIFF: {out_tif}")
        return 0

    from coastlulc.classify.legend import LEGEND_TITLE, colorize, legend_table, load_classes
    from coastlulc.export import read_classified, write_csv, write_rgb

    classes = load_classes(load_optional_yaml(args.classes_yaml))
    table = legend_table(classes)
    print(f"[LEGEND] {LEGEND_TITLE}")
    for _, row in table.iterrows():
        print(f"  {row['color']}  {row['name']}")
    write_csv(table, out_csv, overwrite=args.overwrite)

    classified, transform, crs = read_classified(classified_tif)
    write_rgb(colorize(classified, classes), out_tif, transform=transform, crs=crs, overwrite=args.overwrite)
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    study = load_study(args.study_yaml)

    handlers = {
        "train": _handle_train,
        "area": _handle_area,
        "legend": _handle_legend,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args, study)


if __name__ == "__main__":
    raise SystemExit(main())
