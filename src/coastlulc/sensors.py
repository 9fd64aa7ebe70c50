#!/usr/bin/env python3
"""sensors.py

Sensor profiles: how one Landsat generation maps onto the canonical bands.

The feature pipeline is a single parametrised path. Everything that differs
between sensors lives here:
- band_map: canonical name (blue, green, ...) -> source band name
- qa_band / qa_scheme: which band carries the QA bits and how to read them
- extended_indices: emit the older-generation-only indices (GNDVI, AVI)
- fill_gaps: scan-line gap filling before compositing (Landsat 7 SLC-off)
- cloud_cover_key: scene metadata key used by the catalog filter

The sensor is never auto-detected. Callers pick a profile by name.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from coastlulc.raster import RasterImage

CANONICAL_BANDS: Tuple[str, ...] = ("blue", "green", "red", "nir", "swir1", "swir2")

QA_SCHEMES = ("newer", "older")


@dataclass(frozen=True)
class SensorProfile:
    name: str
    band_map: Tuple[Tuple[str, str], ...]
    qa_band: str = "QA_PIXEL"
    qa_scheme: str = "newer"
    extended_indices: bool = False
    fill_gaps: bool = False
    cloud_cover_key: str = "CLOUD_COVER"

    def __post_init__(self) -> None:
        if self.qa_scheme not in QA_SCHEMES:
            raise ValueError(f"Unknown QA scheme '{self.qa_scheme}' for sensor {self.name}")
        missing = [b for b in CANONICAL_BANDS if b not in dict(self.band_map)]
        if missing:
            raise ValueError(f"Sensor {self.name} band_map is missing canonical bands: {missing}")

    @property
    def bands(self) -> Dict[str, str]:
        return dict(self.band_map)

    @property
    def source_bands(self) -> Tuple[str, ...]:
        """Source band names needed from a raw scene (reflectance + QA)."""
        return tuple(src for _, src in self.band_map) + (self.qa_band,)


def _band_map(blue: str, green: str, red: str, nir: str, swir1: str, swir2: str) -> Tuple[Tuple[str, str], ...]:
    return tuple(zip(CANONICAL_BANDS, (blue, green, red, nir, swir1, swir2)))


# -----------------------------------------------------------------------------
# Built-in profiles (Landsat Collection 2 Level-2 surface reflectance)
# -----------------------------------------------------------------------------

L8 = SensorProfile(
    name="L8",
    band_map=_band_map("SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6", "SR_B7"),
    qa_scheme="newer",
    cloud_cover_key="CLOUD_COVER_LAND",
)

L7 = SensorProfile(
    name="L7",
    band_map=_band_map("SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B7"),
    qa_scheme="older",
    extended_indices=True,
    fill_gaps=True,
)

L5 = SensorProfile(
    name="L5",
    band_map=_band_map("SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B7"),
    qa_scheme="older",
    extended_indices=True,
)

BUILTIN_PROFILES: Dict[str, SensorProfile] = {p.name: p for p in (L8, L7, L5)}


# -----------------------------------------------------------------------------
# Lookup / config overrides
# -----------------------------------------------------------------------------

def _profile_from_config(name: str, cfg: Mapping[str, Any], base: Optional[SensorProfile]) -> SensorProfile:
    """Build a profile from a sensors.yaml block, layered over `base`."""
    bands = cfg.get("bands")
    if bands is not None and not isinstance(bands, dict):
        raise SystemExit(f"sensors.yaml: 'bands' for {name} must be a mapping")

    if base is None:
        if bands is None:
            raise SystemExit(f"sensors.yaml: new sensor {name} needs a 'bands' mapping")
        base = SensorProfile(name=name, band_map=tuple((str(k), str(v)) for k, v in bands.items()))

    overrides: Dict[str, Any] = {"name": name}
    if bands is not None:
        merged = dict(base.band_map)
        merged.update({str(k): str(v) for k, v in bands.items()})
        overrides["band_map"] = tuple(merged.items())
    for key in ("qa_band", "qa_scheme", "cloud_cover_key"):
        if key in cfg:
            overrides[key] = str(cfg[key])
    for key in ("extended_indices", "fill_gaps"):
        if key in cfg:
            overrides[key] = bool(cfg[key])

    try:
        return replace(base, **overrides)
    except ValueError as e:
        raise SystemExit(f"sensors.yaml: invalid profile {name}: {e}") from e


def load_profiles(sensors_yaml: Optional[Dict[str, Any]] = None) -> Dict[str, SensorProfile]:
    """Built-in profiles, updated by the `sensors:` mapping of sensors.yaml."""
    profiles = dict(BUILTIN_PROFILES)
    if not sensors_yaml:
        return profiles
    sensors = sensors_yaml.get("sensors", {})
    if not isinstance(sensors, dict):
        raise SystemExit("sensors.yaml must contain a top-level 'sensors:' mapping")
    for name, cfg in sensors.items():
        if not isinstance(cfg, dict):
            raise SystemExit(f"sensors.yaml: block for {name} must be a mapping")
        profiles[str(name)] = _profile_from_config(str(name), cfg, profiles.get(str(name)))
    return profiles


def get_profile(name: str, profiles: Optional[Mapping[str, SensorProfile]] = None) -> SensorProfile:
    """Look up a sensor profile by name. Raises KeyError if unknown."""
    profiles = BUILTIN_PROFILES if profiles is None else profiles
    try:
        return profiles[name]
    except KeyError:
        raise KeyError(f"Unknown sensor '{name}'. Known sensors: {sorted(profiles)}") from None


def rename_bands(image: RasterImage, profile: SensorProfile) -> RasterImage:
    """Return an image holding exactly the canonical bands for `profile`.

    Raises KeyError if the image lacks one of the profile's source bands,
    which usually means the wrong sensor was selected.
    """
    return image.rename(profile.bands)
