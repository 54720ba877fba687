import numpy as np
import pytest

from s2_marine_pipeline.config import MaskConfig
from s2_marine_pipeline.errors import MissingCloudProbabilityError
from s2_marine_pipeline.preprocessing.cloud_shadow import (
    add_cloud_shadow_mask,
    apply_cloud_shadow_mask,
    estimate_cloud_shadow_mask,
    shadow_azimuth,
)
from s2_marine_pipeline.raster.tile import (
    CLOUDMASK_BAND,
    HIGH_CLOUDMASK_BAND,
    LOW_CLOUDMASK_BAND,
    CloudProbabilityLayer,
)


def _layer(prob):
    return CloudProbabilityLayer("x", np.asarray(prob, dtype=np.float32))


def test_shadow_azimuth():
    assert shadow_azimuth(90.0) == 0.0
    assert shadow_azimuth(0.0) == 90.0


def test_clear_sky_gives_empty_mask(make_tile):
    tile = make_tile(shape=(60, 60))
    mask = estimate_cloud_shadow_mask(tile, _layer(np.zeros((60, 60))), 40, 0, 400, 150)
    assert mask.dtype == bool
    assert not mask.any()


def test_threshold_is_strict(make_tile):
    tile = make_tile(shape=(60, 60))
    at_threshold = estimate_cloud_shadow_mask(tile, _layer(np.full((60, 60), 40)), 40, 0, 400, 150)
    above = estimate_cloud_shadow_mask(tile, _layer(np.full((60, 60), 41)), 40, 0, 400, 150)
    assert not at_threshold.any()
    assert above.all()


class TestErosion:

    def test_isolated_pixel_removed_by_erosion(self, make_tile):
        tile = make_tile(shape=(200, 200))
        prob = np.zeros((200, 200))
        prob[100, 100] = 100
        eroded = estimate_cloud_shadow_mask(tile, _layer(prob), 80, 300, 1500, 300)
        not_eroded = estimate_cloud_shadow_mask(tile, _layer(prob), 80, 0, 1500, 300)
        assert not eroded.any()
        assert not_eroded[100, 100]

    def test_large_cloud_survives_erosion(self, make_tile):
        tile = make_tile(shape=(200, 200))
        prob = np.zeros((200, 200))
        prob[50:150, 50:150] = 100
        mask = estimate_cloud_shadow_mask(tile, _layer(prob), 80, 300, 1500, 300)
        assert mask[100, 100]


class TestProjectionDirection:

    def _cloud_block(self):
        prob = np.zeros((400, 400))
        prob[180:220, 180:220] = 100
        return _layer(prob)

    def test_sun_in_east_casts_shadow_west(self, make_tile):
        tile = make_tile(shape=(400, 400), solar_azimuth=90.0)
        mask = estimate_cloud_shadow_mask(tile, self._cloud_block(), 40, 0, 1000, 0)
        assert mask[200, 200]
        assert mask[200, 100]
        assert not mask[200, 60]
        assert not mask[200, 300]

    def test_sun_in_north_casts_shadow_south(self, make_tile):
        tile = make_tile(shape=(400, 400), solar_azimuth=0.0)
        mask = estimate_cloud_shadow_mask(tile, self._cloud_block(), 40, 0, 1000, 0)
        assert mask[300, 200]
        assert not mask[100, 200]


def test_buffer_grows_mask(make_tile):
    tile = make_tile(shape=(200, 200))
    prob = np.zeros((200, 200))
    prob[100:104, 100:104] = 100
    unbuffered = estimate_cloud_shadow_mask(tile, _layer(prob), 40, 0, 0, 0)
    buffered = estimate_cloud_shadow_mask(tile, _layer(prob), 40, 0, 0, 150)
    assert buffered.sum() > unbuffered.sum()
    assert (buffered | ~unbuffered).all()


def test_refine_land_shadows_keeps_bright_land_outside_cloud(make_tile):
    tile = make_tile(shape=(200, 200), solar_azimuth=90.0, B8=3000)
    prob = np.zeros((200, 200))
    prob[90:110, 90:110] = 100
    cfg = MaskConfig(refine_land_shadows=True)
    mask = estimate_cloud_shadow_mask(tile, _layer(prob), 40, 0, 400, 0, cfg)
    assert mask[100, 100]
    assert not mask[100, 70]


class TestAddApply:

    def test_add_requires_probability(self, make_tile):
        with pytest.raises(MissingCloudProbabilityError) as info:
            add_cloud_shadow_mask(make_tile())
        assert info.value.original_ids == ["20170812T003031_20170812T003034_T55KDV"]

    def test_add_creates_three_float_mask_bands(self, make_tile):
        tile = add_cloud_shadow_mask(make_tile(probability=100))
        for name in (CLOUDMASK_BAND, HIGH_CLOUDMASK_BAND, LOW_CLOUDMASK_BAND):
            assert tile.band(name).dtype == np.float32
        assert (tile.band(CLOUDMASK_BAND) == 1).all()

    def test_cloudmask_is_union_of_passes(self, make_tile):
        tile = add_cloud_shadow_mask(make_tile(shape=(60, 60), probability=50))
        low = tile.band(LOW_CLOUDMASK_BAND)
        high = tile.band(HIGH_CLOUDMASK_BAND)
        assert low.all() and not high.any()
        np.testing.assert_array_equal(tile.band(CLOUDMASK_BAND), np.maximum(low, high))

    def test_apply_masks_reflectance_only(self, make_tile):
        prob = np.zeros((60, 60))
        prob[:30] = 100
        tile = apply_cloud_shadow_mask(add_cloud_shadow_mask(make_tile(shape=(60, 60), probability=prob)))
        assert HIGH_CLOUDMASK_BAND not in tile.bands
        assert LOW_CLOUDMASK_BAND not in tile.bands
        assert np.isnan(tile.band("B2")[0, 0])
        assert tile.band("QA60")[0, 0] == 1000
        assert tile.band(CLOUDMASK_BAND)[0, 0] == 1
        cloud = tile.band(CLOUDMASK_BAND) == 1
        assert np.isfinite(tile.band("B4")[~cloud]).all()
