import numpy as np
import pytest

from s2_marine_pipeline.errors import InvalidConfigurationError, SchemaMismatchError
from s2_marine_pipeline.grading.colour_grades import (
    RGB_CHANNELS,
    ColourGrade,
    describe,
    grade,
    grade_styles,
)
from s2_marine_pipeline.raster.tile import CLOUDMASK_BAND


def test_parse_known_and_unknown():
    assert ColourGrade.parse("DeepMarine") is ColourGrade.DEEP_MARINE
    with pytest.raises(InvalidConfigurationError):
        ColourGrade.parse("Foo")


def test_true_colour_channels_and_values(make_tile):
    out = grade(make_tile(B4=1300, B3=3100, B2=0), "TrueColour")
    assert out.channel_names == list(RGB_CHANNELS)
    red = out.channels["vis-red"][0, 0]
    assert red == pytest.approx(((0.13 - 0.013) / (0.3 - 0.013)) ** (1 / 2.2), rel=1e-5)
    assert out.channels["vis-green"][0, 0] == pytest.approx(1.0)
    assert out.channels["vis-blue"][0, 0] == pytest.approx(0.0, abs=1e-6)


def test_deep_false_uses_green_blue_uv(make_tile):
    out = grade(make_tile(B3=2000, B2=0, B1=2000), "DeepFalse")
    assert out.channels["vis-red"][0, 0] == pytest.approx(1.0)
    assert out.channels["vis-green"][0, 0] == pytest.approx(0.0)
    assert out.channels["vis-blue"][0, 0] == pytest.approx(1.0)


def test_shallow_uses_swir_nir_red_edge(make_tile):
    out = grade(make_tile(B11=3000, B8=200, B5=0), "Shallow")
    assert out.channels["vis-red"][0, 0] == pytest.approx(1.0)
    assert out.channels["vis-green"][0, 0] == pytest.approx(0.0)
    assert out.channels["vis-blue"][0, 0] == pytest.approx(0.0)


@pytest.mark.parametrize("style", [g.value for g in ColourGrade])
def test_every_grade_in_unit_range(make_tile, style):
    rng = np.random.default_rng(1)
    bands = {b: rng.uniform(0, 3000, size=(30, 30)) for b in ("B1", "B2", "B3", "B4", "B5", "B8", "B11")}
    out = grade(make_tile(shape=(30, 30), **bands), style)
    arr = out.as_array()
    assert arr.dtype == np.float32
    assert np.nanmin(arr) >= 0.0
    assert np.nanmax(arr) <= 1.0


def test_reef_top_single_channel(make_tile):
    bright = grade(make_tile(B4=200), "ReefTop")
    dark = grade(make_tile(B4=100), "ReefTop")
    assert bright.channel_names == ["B4"]
    assert bright.channels["B4"][20, 20] == pytest.approx(1.0)
    assert dark.channels["B4"][20, 20] == pytest.approx(0.0)


def test_deep_feature_single_channel(make_tile):
    out = grade(make_tile(B2=1500, B3=270), "DeepFeature")
    assert out.channel_names == ["B2"]
    assert out.channels["B2"][20, 20] == pytest.approx(1.0)


def test_include_mask_appends_cloudmask(make_tile):
    tile = make_tile().with_bands({CLOUDMASK_BAND: np.zeros((40, 40), dtype=np.float32)})
    out = grade(tile, "TrueColour", include_mask=True)
    assert out.channel_names == list(RGB_CHANNELS) + [CLOUDMASK_BAND]


def test_include_mask_without_cloudmask_band(make_tile):
    out = grade(make_tile(), "TrueColour", include_mask=True)
    assert out.channel_names == list(RGB_CHANNELS)


def test_missing_band_raises(make_tile):
    tile = make_tile().select(["B2", "B3"])
    with pytest.raises(SchemaMismatchError):
        grade(tile, "TrueColour")


def test_uint8_export(make_tile):
    valid = np.ones((40, 40), dtype=bool)
    valid[0, 0] = False
    out = grade(make_tile(valid=valid), "TrueColour").to_uint8()
    assert out.shape == (3, 40, 40)
    assert out.dtype == np.uint8
    assert (out[:, 0, 0] == 0).all()
    assert (out[:, 1, 1] > 0).all()


class TestGradeStyles:

    def test_unknown_style_isolated(self, make_tile):
        outputs, errors = grade_styles(make_tile(), ["Foo", "TrueColour"])
        assert list(outputs) == ["TrueColour"]
        assert list(errors) == ["Foo"]

    def test_all_styles(self, make_tile):
        outputs, errors = grade_styles(make_tile(), [g.value for g in ColourGrade])
        assert len(outputs) == 6
        assert errors == {}

    @pytest.mark.parametrize("styles", ["TrueColour", None, 3])
    def test_non_sequence_raises(self, make_tile, styles):
        with pytest.raises(InvalidConfigurationError):
            grade_styles(make_tile(), styles)


def test_describe_mentions_bands():
    assert "B1" in describe("DeepFalse")
    assert "smoothed" in describe("ReefTop")
