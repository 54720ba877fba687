"""GeoTIFF I/O for scenes, cloud-probability layers and graded exports."""

from __future__ import annotations

import math
import os
from typing import Optional, Sequence

import numpy as np
import rasterio
from affine import Affine
from loguru import logger
from rasterio.enums import Resampling
from rasterio.warp import reproject

from s2_marine_pipeline.errors import SchemaMismatchError
from s2_marine_pipeline.grading.contrast import NODATA_VALUE
from s2_marine_pipeline.raster.tile import (
    S2_BANDS,
    CloudProbabilityLayer,
    RasterTile,
    original_id_from_image_id,
)

SOLAR_AZIMUTH_TAG = "MEAN_SOLAR_AZIMUTH_ANGLE"


def _band_names(src, band_names: Optional[Sequence[str]]) -> list:
    if band_names is not None:
        names = list(band_names)
    elif all(src.descriptions):
        names = list(src.descriptions)
    else:
        names = list(S2_BANDS[:src.count])
    if len(names) != src.count:
        raise SchemaMismatchError(
            f"{src.name}: {src.count} bands but {len(names)} band names"
        )
    return names


def read_tile(
    path: str,
    image_id: str,
    solar_azimuth: Optional[float] = None,
    band_names: Optional[Sequence[str]] = None,
    edge_mask_bands: Sequence[str] = ("B8A", "B9"),
) -> RasterTile:
    """Read one multi-band scene GeoTIFF into a :class:`RasterTile`.

    Band names come from *band_names*, else the band descriptions, else the
    Sentinel-2 band order.  The validity mask is the dataset mask ANDed with
    the per-band masks of *edge_mask_bands*, which trim bad data at scene
    edges that the 10 m band masks keep.

    Args:
        path: Scene GeoTIFF.
        image_id: Full acquisition id; its ``original_id`` is derived here.
        solar_azimuth: Mean solar azimuth (degrees).  Falls back to the
            ``MEAN_SOLAR_AZIMUTH_ANGLE`` dataset tag.
        band_names: Explicit band names in file order.
        edge_mask_bands: Bands whose masks also bound validity.
    """
    with rasterio.open(path) as src:
        names = _band_names(src, band_names)
        data = src.read()
        valid = src.dataset_mask() != 0
        for name in edge_mask_bands:
            if name in names:
                valid &= src.read_masks(names.index(name) + 1) != 0
        if solar_azimuth is None:
            tag = src.tags().get(SOLAR_AZIMUTH_TAG)
            solar_azimuth = float(tag) if tag is not None else None
        transform, crs = src.transform, src.crs

    properties = {
        "image_id": image_id,
        "original_id": original_id_from_image_id(image_id),
    }
    if solar_azimuth is not None:
        properties["solar_azimuth"] = float(solar_azimuth)

    logger.debug(f"Read {image_id}: {len(names)} bands, {data.shape[1]}x{data.shape[2]}")
    return RasterTile(
        bands=dict(zip(names, data)),
        valid=valid,
        transform=transform,
        crs=crs,
        properties=properties,
    )


def read_cloud_probability(path: str, original_id: str) -> CloudProbabilityLayer:
    """Read the single-band 0 - 100 cloud probability GeoTIFF of one acquisition."""
    with rasterio.open(path) as src:
        probability = src.read(1).astype(np.float32)
        nodata = src.nodata
    if nodata is not None:
        probability[probability == nodata] = 0
    return CloudProbabilityLayer(original_id=original_id, probability=probability)


def _resampled_grid(transform: Affine, shape, scale_m: float):
    height, width = shape
    res = abs(transform.a)
    new_transform = Affine(scale_m, 0.0, transform.c, 0.0, -scale_m, transform.f)
    new_shape = (math.ceil(height * res / scale_m), math.ceil(width * res / scale_m))
    return new_transform, new_shape


def write_uint8_geotiff(
    path: str,
    array: np.ndarray,
    transform: Optional[Affine],
    crs,
    descriptions: Optional[Sequence[str]] = None,
    scale_m: Optional[float] = None,
) -> str:
    """Write a ``(C, H, W)`` uint8 export with 0 as no-data.

    When *scale_m* differs from the grid resolution, the array is resampled
    (nearest neighbour) onto a grid of that pixel size with the same origin.
    """
    if array.ndim == 2:
        array = array[np.newaxis]
    if array.dtype != np.uint8:
        raise SchemaMismatchError(f"Export array must be uint8, got {array.dtype}")

    if transform is not None and scale_m and not math.isclose(abs(transform.a), scale_m):
        dst_transform, (height, width) = _resampled_grid(transform, array.shape[1:], scale_m)
        out = np.full((array.shape[0], height, width), NODATA_VALUE, dtype=np.uint8)
        reproject(
            source=array,
            destination=out,
            src_transform=transform,
            src_crs=crs,
            dst_transform=dst_transform,
            dst_crs=crs,
            src_nodata=NODATA_VALUE,
            dst_nodata=NODATA_VALUE,
            resampling=Resampling.nearest,
        )
        logger.debug(f"Resampled export from {abs(transform.a)} m to {scale_m} m")
        array, transform = out, dst_transform

    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    profile = {
        "driver": "GTiff",
        "dtype": "uint8",
        "count": array.shape[0],
        "height": array.shape[1],
        "width": array.shape[2],
        "nodata": NODATA_VALUE,
        "compress": "lzw",
    }
    if transform is not None:
        profile["transform"] = transform
    if crs is not None:
        profile["crs"] = crs

    with rasterio.open(path, "w", **profile) as dst:
        dst.write(array)
        for idx, desc in enumerate(descriptions or [], start=1):
            dst.set_band_description(idx, desc)

    logger.info(f"Wrote {path} ({array.shape[0]} bands, {array.shape[1]}x{array.shape[2]})")
    return path
