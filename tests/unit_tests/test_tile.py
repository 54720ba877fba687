import numpy as np
import pytest
from affine import Affine

from s2_marine_pipeline.errors import SchemaMismatchError
from s2_marine_pipeline.raster.tile import (
    CloudProbabilityLayer,
    RasterTile,
    mask_and,
    mask_or,
    original_id_from_image_id,
)


def test_original_id_strips_collection_prefix():
    assert original_id_from_image_id("COPERNICUS/S2/2017_T55KDV") == "2017_T55KDV"
    assert original_id_from_image_id("2017_T55KDV") == "2017_T55KDV"


def test_band_shape_must_match_valid():
    with pytest.raises(SchemaMismatchError):
        RasterTile(bands={"B2": np.zeros((3, 3))}, valid=np.ones((4, 4), dtype=bool))


def test_missing_band_raises_schema_error(make_tile):
    with pytest.raises(SchemaMismatchError, match="B99"):
        make_tile().band("B99")


def test_missing_solar_azimuth_raises():
    tile = RasterTile(bands={}, valid=np.ones((2, 2), dtype=bool))
    with pytest.raises(SchemaMismatchError):
        tile.solar_azimuth


def test_resolution_from_transform(make_tile):
    assert make_tile(res=20.0).resolution == 20.0
    bare = RasterTile(bands={}, valid=np.ones((2, 2), dtype=bool))
    assert bare.resolution == 10.0


def test_with_bands_returns_new_tile(make_tile):
    tile = make_tile()
    out = tile.with_bands({"extra": np.zeros(tile.shape)})
    assert "extra" in out.bands
    assert "extra" not in tile.bands


def test_renamed_is_positional():
    tile = RasterTile(
        bands={"a": np.zeros((2, 2)), "b": np.ones((2, 2))},
        valid=np.ones((2, 2), dtype=bool),
    )
    out = tile.renamed(["x", "y"])
    assert out.band_names == ["x", "y"]
    assert (out.band("y") == 1).all()
    with pytest.raises(SchemaMismatchError):
        tile.renamed(["x"])


def test_probability_grid_must_match(make_tile):
    with pytest.raises(SchemaMismatchError):
        make_tile().with_cloud_probability(CloudProbabilityLayer("x", np.zeros((3, 3))))


def test_same_grid(make_tile):
    assert make_tile().same_grid(make_tile())
    shifted = make_tile()
    shifted = RasterTile(
        bands=shifted.bands, valid=shifted.valid,
        transform=shifted.transform * Affine.translation(5, 0),
    )
    assert not make_tile().same_grid(shifted)


def test_mask_helpers():
    a = np.array([True, False, False])
    b = np.array([0, 1, 0])
    assert mask_or(a, b).tolist() == [True, True, False]
    assert mask_and(a, b).tolist() == [False, False, False]
