#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure we can import from src without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from coastlulc.features import indices as ix
from coastlulc.raster import RasterImage


def _canonical(**values):
    base = dict(blue=0.05, green=0.08, red=0.1, nir=0.5, swir1=0.2, swir2=0.15)
    base.update(values)
    bands = {k: np.atleast_2d(np.asarray(v, dtype=np.float64)) for k, v in base.items()}
    shape = max(b.shape for b in bands.values())
    bands = {k: np.broadcast_to(v, shape).copy() for k, v in bands.items()}
    return RasterImage(bands)


def test_ndvi_reference_value():
    out = ix.compute_indices(_canonical(nir=0.5, red=0.1))
    assert abs(float(out["NDVI"][0, 0]) - 0.6667) < 1e-4


def test_lai_is_affine_in_ndvi():
    out = ix.compute_indices(_canonical(nir=0.5, red=0.1))
    ndvi = float(out["NDVI"][0, 0])
    lai = float(out["LAI"][0, 0])
    assert lai == pytest.approx(3.618 * ndvi - 0.118)
    assert lai == pytest.approx(2.294, abs=1e-3)


def test_formulas_match_definitions():
    b, g, r, n, s1, s2 = 0.05, 0.08, 0.1, 0.5, 0.2, 0.15
    out = ix.compute_indices(_canonical(blue=b, green=g, red=r, nir=n, swir1=s1, swir2=s2))
    v = {name: float(out[name][0, 0]) for name in ix.BASE_INDICES}

    assert v["NDMI"] == pytest.approx((s2 - g) / (s2 + g))
    assert v["NDWI"] == pytest.approx((g - n) / (g + n))
    assert v["MNDWI"] == pytest.approx((g - s1) / (g + s1))
    assert v["SR"] == pytest.approx(n / r)
    assert v["GCVI"] == pytest.approx(n / g - 1)
    assert v["GCI"] == pytest.approx(v["GCVI"])
    assert v["SAVI"] == pytest.approx(1.5 * (n - r) / (n + r + 0.5))
    assert v["EVI"] == pytest.approx(2.5 * (n - r) / (n + 6 * r - 7.5 * b + 1))
    assert v["CMRI"] == pytest.approx(v["NDVI"] - v["NDWI"])
    assert v["MVI"] == pytest.approx((n - g) / (s1 - g))
    assert v["MSI"] == pytest.approx(s1 / n)
    assert v["BSI"] == pytest.approx(((s1 + r) - (n + b)) / ((s1 + r) + (n + b)))
    assert v["PSRI"] == pytest.approx((r - n) / g)


def test_normalized_differences_stay_in_range():
    rng = np.random.default_rng(42)
    shape = (20, 20)
    img = RasterImage({k: rng.uniform(0.001, 1.0, size=shape) for k in ("blue", "green", "red", "nir", "swir1", "swir2")})
    out = ix.compute_indices(img)
    for name in ("NDVI", "NDMI", "NDWI", "MNDWI", "BSI"):
        band = out[name]
        assert not band.mask.any()
        assert band.min() >= -1.0 and band.max() <= 1.0
    assert out["SR"].min() > 0


def test_zero_denominator_masks_only_that_band():
    img = _canonical(nir=[0.0, 0.5], red=[0.0, 0.1])
    out = ix.compute_indices(img)

    assert out["NDVI"].mask[0, 0]
    assert out["SR"].mask[0, 0]
    assert out["LAI"].mask[0, 0]
    assert not out["NDVI"].mask[0, 1]

    # Siblings in the same pixel are still computed
    for name in ("NDWI", "MNDWI", "NDMI", "PSRI", "BSI", "GCVI"):
        assert not out[name].mask[0, 0], name
    assert float(out["NDWI"][0, 0]) == pytest.approx(1.0)


def test_mvi_masked_when_swir1_equals_green():
    out = ix.compute_indices(_canonical(swir1=0.08, green=0.08))
    assert out["MVI"].mask[0, 0]
    assert not out["NDVI"].mask[0, 0]


def test_masked_input_propagates_to_dependent_indices():
    img = _canonical(red=[0.1, 0.1])
    red = np.ma.array(img["red"], mask=[[True, False]])
    img = RasterImage({**img.bands, "red": red})
    out = ix.compute_indices(img)
    assert out["NDVI"].mask[0, 0]
    assert not out["NDWI"].mask[0, 0]
    assert not out["NDVI"].mask[0, 1]


def test_originals_are_kept_and_indices_appended():
    img = _canonical()
    out = ix.compute_indices(img)
    assert out.band_names[:6] == ["blue", "green", "red", "nir", "swir1", "swir2"]
    assert out.band_names[6:] == list(ix.BASE_INDICES)
    np.testing.assert_array_equal(out["nir"], img["nir"])


def test_base_path_never_emits_extended_indices():
    out = ix.compute_indices(_canonical(), extended=False)
    for name in ix.EXTENDED_INDICES:
        assert name not in out


def test_extended_indices():
    out = ix.compute_indices(_canonical(nir=[0.5, 0.1], red=[0.1, 0.5], green=[0.08, 0.08]), extended=True)
    assert "GNDVI" in out and "AVI" in out
    assert float(out["GNDVI"][0, 0]) == pytest.approx(-1.0)
    assert float(out["AVI"][0, 0]) == pytest.approx((0.5 * 0.9 * 0.4) ** (1.0 / 3.0))
    # negative base under the cube root is invalid, not an error
    assert out["AVI"].mask[0, 1]


def test_gndvi_masked_when_green_equals_nir():
    out = ix.compute_indices(_canonical(nir=0.3, green=0.3), extended=True)
    assert out["GNDVI"].mask[0, 0]


def test_missing_canonical_band_raises():
    img = RasterImage({"SR_B4": np.ones((2, 2)), "SR_B5": np.ones((2, 2))})
    with pytest.raises(KeyError):
        ix.compute_indices(img)


def test_indices_cannot_be_added_twice():
    out = ix.compute_indices(_canonical())
    with pytest.raises(ValueError):
        ix.compute_indices(out)
