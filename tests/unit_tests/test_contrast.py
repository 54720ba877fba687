import numpy as np
import pytest

from s2_marine_pipeline.errors import InvalidConfigurationError
from s2_marine_pipeline.grading.contrast import NODATA_VALUE, contrast_curve, to_uint8


class TestContrastCurve:

    def test_endpoints_map_to_zero_and_one(self):
        out = contrast_curve(np.array([0.013, 0.3]), 0.013, 0.3, 2.2)
        assert out[0] == pytest.approx(0.0)
        assert out[1] == pytest.approx(1.0)

    def test_clamps_outside_range(self):
        out = contrast_curve(np.array([-1.0, 0.0, 5.0]), 0.1, 0.2, 1.0)
        np.testing.assert_allclose(out, [0.0, 0.0, 1.0])

    def test_gamma_applied_after_stretch(self):
        out = contrast_curve(np.array([0.5]), 0.0, 1.0, 2.0)
        assert out[0] == pytest.approx(0.5 ** 0.5, rel=1e-5)

    def test_monotonic_non_decreasing(self):
        values = np.linspace(-0.1, 0.5, 200)
        out = contrast_curve(values, 0.034, 0.175, 2.5)
        assert np.all(np.diff(out) >= 0)

    def test_nan_stays_nan(self):
        out = contrast_curve(np.array([np.nan, 0.2]), 0.0, 1.0, 1.0)
        assert np.isnan(out[0])
        assert out.dtype == np.float32

    @pytest.mark.parametrize("min_, max_, gamma", [(0.3, 0.3, 1.0), (0.4, 0.1, 1.0), (0.0, 1.0, 0.0)])
    def test_invalid_parameters_raise(self, min_, max_, gamma):
        with pytest.raises(InvalidConfigurationError):
            contrast_curve(np.array([0.1]), min_, max_, gamma)


class TestToUint8:

    def test_zero_and_one_map_to_1_and_255(self):
        out = to_uint8(np.array([[0.0, 1.0, 0.5]]), np.ones((1, 3), dtype=bool))
        assert out.dtype == np.uint8
        assert out.tolist() == [[1, 255, 128]]

    def test_out_of_range_values_are_clipped(self):
        out = to_uint8(np.array([[-0.5, 2.0]]), np.ones((1, 2), dtype=bool))
        assert out.tolist() == [[1, 255]]

    def test_invalid_and_nan_pixels_are_nodata(self):
        values = np.array([[0.2, np.nan, 0.7]])
        valid = np.array([[False, True, True]])
        out = to_uint8(values, valid)
        assert out[0, 0] == NODATA_VALUE
        assert out[0, 1] == NODATA_VALUE
        assert out[0, 2] > 0

    def test_multichannel_shares_valid_mask(self):
        values = np.ones((3, 2, 2), dtype=np.float32)
        valid = np.array([[True, False], [True, True]])
        out = to_uint8(values, valid)
        assert out.shape == (3, 2, 2)
        assert (out[:, 0, 1] == 0).all()
        assert (out[:, 1, 1] == 255).all()
