#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import Point, Polygon, box

# Ensure we can import from src without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from conftest import make_scene_bands

from coastlulc.classify import __main__ as classify_cli
from coastlulc.export import read_classified, read_feature_image, write_classified, write_geotiff
from coastlulc.features import __main__ as features_cli
from coastlulc.features.build_features import build_features
from coastlulc.ingest.dem import read_dem_like
from coastlulc.ingest.region import clip_to_region, load_region
from coastlulc.ingest.scenes import list_scenes, read_scene, scene_date
from coastlulc.raster import RasterImage
from coastlulc.sensors import L8

TRANSFORM = from_origin(500000.0, 2800000.0, 30.0, 30.0)
CRS = "EPSG:32640"

SCENE_2014 = "LC08_L2SP_160043_20140115_20200912_02_T1.tif"
SCENE_2014_CLOUDY = "LC08_L2SP_160043_20140320_20200911_02_T1.tif"
SCENE_2015 = "LC08_L2SP_160043_20150118_20200910_02_T1.tif"


def _catalog(tmp_path: Path, write_scene) -> Path:
    scenes = tmp_path / "scenes"
    scenes.mkdir()
    write_scene(scenes / SCENE_2014, make_scene_bands(seed=1), tags={"CLOUD_COVER_LAND": "2.5"})
    write_scene(scenes / SCENE_2014_CLOUDY, make_scene_bands(seed=2), tags={"CLOUD_COVER_LAND": "40"})
    write_scene(scenes / SCENE_2015, make_scene_bands(seed=3), tags={"CLOUD_COVER_LAND": "1"})
    return scenes


def _study_yaml(tmp_path: Path, scenes_dir: Path) -> Path:
    path = tmp_path / "study.yaml"
    path.write_text(
        "study:\n"
        "  year: 2014\n"
        "  sensor: L8\n"
        f"  scenes_dir: {scenes_dir}\n"
        "  max_cloud_cover: 5\n"
        f"  features_dir: {tmp_path / 'features'}\n"
        f"  classified_dir: {tmp_path / 'classified'}\n"
        f"  tables_dir: {tmp_path / 'tables'}\n",
        encoding="utf-8",
    )
    return path


def test_scene_date_from_product_id():
    assert scene_date(Path(SCENE_2014)).isoformat() == "2014-01-15"
    assert scene_date(Path("LE07_L2SP_160043_20161231_20200901_02_T1.tif")).year == 2016
    assert scene_date(Path("my_stack.tif")) is None


def test_list_scenes_filters_year_and_cloud(tmp_path: Path, write_scene):
    scenes = _catalog(tmp_path, write_scene)
    kept = list_scenes(scenes, year=2014, max_cloud_cover=5, cloud_cover_key="CLOUD_COVER_LAND")
    assert [p.name for p in kept] == [SCENE_2014]

    all_2014 = list_scenes(scenes, year=2014)
    assert len(all_2014) == 2

    # scenes without the tag are kept
    assert len(list_scenes(scenes, max_cloud_cover=5, cloud_cover_key="CLOUD_COVER")) == 3


def test_list_scenes_missing_dir(tmp_path: Path):
    with pytest.raises(SystemExit):
        list_scenes(tmp_path / "nope")


def test_read_scene_by_band_name(tmp_path: Path, write_scene):
    path = write_scene(tmp_path / SCENE_2014, make_scene_bands(seed=1))
    scene = read_scene(path, bands=["SR_B5", "QA_PIXEL"])
    assert scene.band_names == ["SR_B5", "QA_PIXEL"]
    assert scene.crs is not None
    assert scene.tags["SCENE_ID"] == Path(SCENE_2014).stem
    with pytest.raises(KeyError):
        read_scene(path, bands=["SR_B9"])


def test_feature_geotiff_keeps_names_and_mask(tmp_path: Path):
    band = np.ma.array([[0.1, 0.2], [0.3, 0.4]], mask=[[False, True], [False, False]])
    image = RasterImage({"NDVI": band, "slope": np.ones((2, 2))}, transform=TRANSFORM, crs=CRS, tags={"YEAR": "2014"})
    out = tmp_path / "features.tif"
    assert write_geotiff(image, out)
    assert not write_geotiff(image, out)

    back = read_feature_image(out)
    assert back.band_names == ["NDVI", "slope"]
    assert back["NDVI"].mask.tolist() == [[False, True], [False, False]]
    assert back["NDVI"][1, 1] == pytest.approx(0.4)
    assert back.tags["YEAR"] == "2014"


def test_classified_roundtrip_masks_zero(tmp_path: Path):
    classified = np.ma.array(np.array([[1, 8]], dtype=np.uint8), mask=[[False, True]])
    out = tmp_path / "classified.tif"
    write_classified(classified, out, transform=TRANSFORM, crs=CRS)
    data, transform, _ = read_classified(out)
    assert data.mask.tolist() == [[False, True]]
    assert data[0, 0] == 1
    assert transform.a == 30.0


def test_dem_on_same_grid(tmp_path: Path, write_scene):
    ramp = np.tile(np.arange(6, dtype=float) * 30.0, (6, 1))
    dem_path = write_scene(tmp_path / "dem.tif", {"elevation": ramp})
    image = RasterImage({"red": np.ones((6, 6))}, transform=TRANSFORM, crs=CRS)
    elevation = read_dem_like(dem_path, image)
    assert elevation.shape == (6, 6)
    np.testing.assert_allclose(elevation[1:-1, 1:-1], ramp[1:-1, 1:-1], atol=1e-3)


def test_clip_to_region_masks_outside():
    image = RasterImage({"red": np.ones((4, 4))}, transform=TRANSFORM, crs=CRS)
    # left half of the grid
    region = gpd.GeoDataFrame(geometry=[box(500000.0, 2800000.0 - 120.0, 500060.0, 2800000.0)], crs=CRS)
    out = clip_to_region(image, region)
    assert not out["red"].mask[:, :2].any()
    assert out["red"].mask[:, 2:].all()


def test_region_self_intersection_is_repaired(tmp_path: Path):
    x0, y0 = 500000.0, 2800000.0 - 120.0
    bowtie = Polygon([(x0, y0), (x0 + 120, y0 + 120), (x0 + 120, y0), (x0, y0 + 120)])
    path = tmp_path / "region.gpkg"
    gpd.GeoDataFrame({"name": ["coast"]}, geometry=[bowtie], crs=CRS).to_file(path, driver="GPKG")

    region = load_region(path)
    assert region.geometry.is_valid.all()

    image = RasterImage({"red": np.ones((4, 4))}, transform=TRANSFORM, crs=CRS)
    out = clip_to_region(image, region)
    assert out["red"].mask.any() and not out["red"].mask.all()


def test_load_region_missing(tmp_path: Path):
    with pytest.raises(SystemExit):
        load_region(tmp_path / "nope.gpkg")


def test_build_features_end_to_end(tmp_path: Path, write_scene):
    scenes = _catalog(tmp_path, write_scene)
    out = tmp_path / "features.tif"
    rc = build_features(
        scenes_dir=scenes,
        profile=L8,
        out_tif=out,
        year=2014,
        max_cloud_cover=5,
        bands=["NDVI", "EVI", "MSI"],
    )
    assert rc == 0
    image = read_feature_image(out)
    assert image.band_names == ["NDVI", "EVI", "MSI"]
    assert image.tags["SENSOR"] == "L8"
    assert image.tags["SCENE_COUNT"] == "1"
    assert image.tags["YEAR"] == "2014"


def test_build_features_no_scenes_left(tmp_path: Path, write_scene):
    scenes = _catalog(tmp_path, write_scene)
    with pytest.raises(SystemExit):
        build_features(scenes_dir=scenes, profile=L8, out_tif=tmp_path / "x.tif", year=2030)


def test_features_cli_dry_run_writes_nothing(tmp_path: Path, write_scene):
    scenes = _catalog(tmp_path, write_scene)
    study = _study_yaml(tmp_path, scenes)
    rc = features_cli.main(
        ["--study-yaml", str(study), "--sensors-yaml", str(tmp_path / "none.yaml"), "--dry-run", "build"]
    )
    assert rc == 0
    assert not (tmp_path / "features").exists()


def test_features_cli_unknown_sensor(tmp_path: Path, write_scene):
    scenes = _catalog(tmp_path, write_scene)
    study = _study_yaml(tmp_path, scenes)
    with pytest.raises(SystemExit):
        features_cli.main(["--study-yaml", str(study), "--sensor", "L9", "list-scenes"])


def test_cli_full_run(tmp_path: Path, write_scene):
    scenes = _catalog(tmp_path, write_scene)
    study = _study_yaml(tmp_path, scenes)
    none = str(tmp_path / "none.yaml")

    assert features_cli.main(["--study-yaml", str(study), "--sensors-yaml", none, "build", "--all-bands"]) == 0
    features_tif = tmp_path / "features" / "features_L8_2014.tif"
    assert features_tif.exists()

    assert features_cli.main(["--study-yaml", str(study), "correlate", "--bands", "NDVI", "MSI", "--num-pixels", "10"]) == 0
    corr = pd.read_csv(tmp_path / "tables" / "correlation_L8_2014.csv", index_col=0)
    assert list(corr.columns) == ["NDVI(0)", "MSI(1)"]

    # one labelled point per pixel, two classes split by column
    xs = 500000.0 + 15.0 + 30.0 * np.arange(4)
    ys = 2800000.0 - 15.0 - 30.0 * np.arange(4)
    pts = [Point(x, y) for y in ys for x in xs]
    labels = [1 if i % 4 < 2 else 8 for i in range(len(pts))]
    points_path = tmp_path / "points.gpkg"
    gpd.GeoDataFrame({"landcover": labels}, geometry=pts, crs=CRS).to_file(points_path, driver="GPKG")

    assert classify_cli.main(
        [
            "--study-yaml", str(study),
            "--classes-yaml", none,
            "train",
            "--points", str(points_path),
            "--bands", "NDVI", "MSI",
            "--split", "0.0",
            "--n-trees", "5",
        ]
    ) == 0
    classified_tif = tmp_path / "classified" / "classified_2014.tif"
    assert classified_tif.exists()
    metrics = pd.read_csv(tmp_path / "tables" / "classification_metrics_2014.csv")
    assert "RF_kappa" in set(metrics["metric"])

    assert classify_cli.main(["--study-yaml", str(study), "--classes-yaml", none, "area"]) == 0
    areas = pd.read_csv(tmp_path / "tables" / "classified_areas_2014.csv")
    assert areas["pixels"].sum() == 16
    assert areas["area"].sum() == pytest.approx(16 * 0.09)

    assert classify_cli.main(["--study-yaml", str(study), "--classes-yaml", none, "legend"]) == 0
    with rasterio.open(tmp_path / "classified" / "classified_rgb_2014.tif") as src:
        assert src.count == 3


def test_classify_cli_dry_run(tmp_path: Path):
    study = tmp_path / "study.yaml"
    study.write_text("study:\n  year: 2016\n", encoding="utf-8")
    for command in (["train", "--points", "pts.gpkg"], ["area"], ["legend"]):
        assert classify_cli.main(["--study-yaml", str(study), "--dry-run", *command]) == 0


def test_classify_cli_empty_training_split_exits_cleanly(tmp_path: Path, write_scene):
    scenes = _catalog(tmp_path, write_scene)
    study = _study_yaml(tmp_path, scenes)
    features_tif = tmp_path / "features.tif"
    build_features(scenes_dir=scenes, profile=L8, out_tif=features_tif, year=2014, max_cloud_cover=5)

    points_path = tmp_path / "points.gpkg"
    pts = [Point(500015.0, 2799985.0), Point(500045.0, 2799955.0)]
    gpd.GeoDataFrame({"landcover": [1, 8]}, geometry=pts, crs=CRS).to_file(points_path, driver="GPKG")

    # no random value falls below the threshold, so nothing is left to train on
    with pytest.raises(SystemExit) as exc:
        classify_cli.main(
            [
                "--study-yaml", str(study),
                "train",
                "--features-tif", str(features_tif),
                "--points", str(points_path),
                "--bands", "NDVI", "MSI",
                "--split=-100",
            ]
        )
    assert "Training failed" in str(exc.value)
    assert not (tmp_path / "classified").exists()
