"""Shared fixtures: synthetic Sentinel-2 tiles and on-disk scene manifests."""

from __future__ import annotations

import csv
import os

import numpy as np
import pytest
import rasterio
from affine import Affine

from s2_marine_pipeline.raster.tile import S2_BANDS, CloudProbabilityLayer, RasterTile

IMAGE_ID = "COPERNICUS/S2/20170812T003031_20170812T003034_T55KDV"
UTM_CRS = "EPSG:32755"
ORIGIN = (500000.0, 8000000.0)


def _transform(res: float = 10.0) -> Affine:
    return Affine(res, 0.0, ORIGIN[0], 0.0, -res, ORIGIN[1])


@pytest.fixture
def make_tile():
    """Factory for a full-schema :class:`RasterTile` filled with constant bands.

    ``make_tile(value=1000, B8=300, probability=0)`` sets every band to
    *value*, overrides named bands, and attaches a probability layer when
    *probability* is a number or an array.
    """

    def _make(
        value: float = 1000,
        shape=(40, 40),
        image_id: str = IMAGE_ID,
        solar_azimuth: float = 90.0,
        probability=None,
        valid=None,
        res: float = 10.0,
        **band_values,
    ) -> RasterTile:
        bands = {}
        for name in S2_BANDS:
            v = band_values.get(name, value)
            bands[name] = np.array(v, dtype=np.float32) if np.ndim(v) else np.full(shape, v, dtype=np.float32)
        tile = RasterTile(
            bands=bands,
            valid=np.ones(shape, dtype=bool) if valid is None else valid,
            transform=_transform(res),
            crs=UTM_CRS,
            properties={"image_id": image_id, "solar_azimuth": solar_azimuth},
        )
        if probability is not None:
            prob = np.full(shape, probability, dtype=np.float32) if np.isscalar(probability) \
                else np.asarray(probability, dtype=np.float32)
            tile = tile.with_cloud_probability(CloudProbabilityLayer(tile.original_id, prob))
        return tile

    return _make


def write_scene_tif(path, shape=(40, 40), value=1000, nodata=0, **band_values) -> str:
    """Write a 16-band uint16 scene GeoTIFF with band descriptions."""
    profile = {
        "driver": "GTiff",
        "dtype": "uint16",
        "count": len(S2_BANDS),
        "height": shape[0],
        "width": shape[1],
        "crs": UTM_CRS,
        "transform": _transform(),
        "nodata": nodata,
    }
    with rasterio.open(path, "w", **profile) as dst:
        for idx, name in enumerate(S2_BANDS, start=1):
            v = band_values.get(name, value)
            arr = np.asarray(v, dtype=np.uint16) if np.ndim(v) else np.full(shape, v, dtype=np.uint16)
            dst.write(arr, idx)
            dst.set_band_description(idx, name)
    return str(path)


def write_probability_tif(path, shape=(40, 40), value=0) -> str:
    profile = {
        "driver": "GTiff",
        "dtype": "uint8",
        "count": 1,
        "height": shape[0],
        "width": shape[1],
        "crs": UTM_CRS,
        "transform": _transform(),
    }
    arr = np.asarray(value, dtype=np.uint8) if np.ndim(value) else np.full(shape, value, dtype=np.uint8)
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(arr, 1)
    return str(path)


SCENE_COLUMNS = [
    "image_id", "path", "probability_path", "solar_azimuth",
    "cloudy_pixel_percentage", "acquired", "asset_size",
]


@pytest.fixture
def scene_manifest(tmp_path):
    """Factory writing scene + probability GeoTIFFs and a manifest CSV.

    Each scene spec is a dict with ``image_id`` plus optional ``value``,
    band overrides under ``bands``, ``probability`` (None for no layer),
    ``cloud``, ``acquired`` and ``asset_size``.  Returns the CSV path.
    """

    def _make(scenes) -> str:
        scene_dir = tmp_path / "scenes"
        scene_dir.mkdir(exist_ok=True)
        rows = []
        for spec in scenes:
            oid = spec["image_id"].rsplit("/", 1)[-1]
            scene_name = f"{oid}.tif"
            write_scene_tif(scene_dir / scene_name, value=spec.get("value", 1000), **spec.get("bands", {}))
            prob_name = ""
            if spec.get("probability", 0) is not None:
                prob_name = f"{oid}_prob.tif"
                write_probability_tif(scene_dir / prob_name, value=spec.get("probability", 0))
            rows.append({
                "image_id": spec["image_id"],
                "path": os.path.join("scenes", scene_name),
                "probability_path": os.path.join("scenes", prob_name) if prob_name else "",
                "solar_azimuth": spec.get("solar_azimuth", 60.0),
                "cloudy_pixel_percentage": spec.get("cloud", 0.0),
                "acquired": spec.get("acquired", ""),
                "asset_size": spec.get("asset_size", ""),
            })
        csv_path = tmp_path / "scenes.csv"
        with open(csv_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=SCENE_COLUMNS)
            writer.writeheader()
            writer.writerows(rows)
        return str(csv_path)

    return _make


@pytest.fixture
def scene_writer():
    return write_scene_tif


@pytest.fixture
def probability_writer():
    return write_probability_tif
