"""Footprint geometry for a set of acquisitions.

The footprint of a composite is the union of the Sentinel-2 tiling-grid
cells named by the tile codes of its images.  The grid is a GeoJSON
FeatureCollection in lon/lat whose features carry the tile code in their
``Name`` property.
"""

from __future__ import annotations

import json
from typing import Dict, Optional, Sequence

import numpy as np
from loguru import logger
from rasterio.features import geometry_mask
from rasterio.warp import transform_geom
from shapely.geometry import box, mapping, shape
from shapely.ops import unary_union

from s2_marine_pipeline.errors import DegenerateGeometryError
from s2_marine_pipeline.raster.tile import RasterTile
from s2_marine_pipeline.tiles.naming import unique_tile_codes

GRID_CRS = "EPSG:4326"


def load_tiling_grid(path: str, name_property: str = "Name") -> Dict[str, object]:
    """Read a tiling-grid GeoJSON into ``{tile_code: shapely geometry}``."""
    with open(path) as f:
        collection = json.load(f)

    grid: Dict[str, object] = {}
    for feature in collection.get("features", []):
        props = feature.get("properties") or {}
        name = props.get(name_property)
        if name is None or feature.get("geometry") is None:
            continue
        geom = shape(feature["geometry"])
        if name in grid:
            # Grid cells can be split across the antimeridian.
            geom = grid[name].union(geom)
        grid[str(name)] = geom

    logger.debug(f"Loaded {len(grid)} tiling-grid cells from {path}")
    return grid


def resolve_tiles_geometry(
    image_ids: Sequence[str],
    grid: Dict[str, object],
    search_bbox: Optional[Sequence[float]] = None,
):
    """Union of the grid cells for the tile codes in *image_ids*.

    Args:
        image_ids: Acquisition ids; their tile codes select grid cells.
        grid: ``{tile_code: geometry}`` from :func:`load_tiling_grid`.
        search_bbox: Optional ``[west, south, east, north]`` restricting the
            cells considered.

    Raises:
        DegenerateGeometryError: No grid cell matches (or all matches lie
            outside *search_bbox*).
    """
    codes = unique_tile_codes(image_ids)
    area = box(*search_bbox) if search_bbox else None

    cells = []
    for code in codes:
        cell = grid.get(code)
        if cell is None:
            logger.warning(f"Tile {code} not found in tiling grid")
            continue
        if area is not None and not cell.intersects(area):
            logger.warning(f"Tile {code} lies outside the search area")
            continue
        cells.append(cell)

    footprint = unary_union(cells) if cells else None
    if footprint is None or footprint.is_empty:
        raise DegenerateGeometryError(
            f"No footprint geometry for tile codes: {', '.join(codes) or '<none>'}"
        )
    return footprint


def footprint_mask(geometry, tile: RasterTile) -> np.ndarray:
    """Boolean ``(H, W)`` mask, True inside *geometry* (given in lon/lat).

    Tiles without georeferencing are returned fully inside.
    """
    if tile.transform is None or tile.crs is None:
        return np.ones(tile.shape, dtype=bool)
    projected = transform_geom(GRID_CRS, tile.crs, mapping(geometry))
    return geometry_mask(
        [projected],
        out_shape=tile.shape,
        transform=tile.transform,
        invert=True,
    )
