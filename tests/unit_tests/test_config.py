import textwrap

from s2_marine_pipeline.config import PipelineConfig, load_config


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config()
    assert cfg == PipelineConfig()
    assert cfg.mask.low_cloud.prob_threshold == 40
    assert cfg.mask.high_cloud.projection_m == 1500
    assert cfg.glint.band_scales["B3"] == 0.9
    assert cfg.export.styles == ["TrueColour", "DeepFalse"]


def test_partial_yaml_keeps_other_defaults(tmp_path):
    path = tmp_path / "pipeline.yaml"
    path.write_text(textwrap.dedent("""
        mask:
          high_cloud:
            buffer_m: 500
          refine_land_shadows: true
        glint:
          band_scales: {B4: 0.5}
        export:
          styles: [ReefTop]
          basename: test
        composite:
          on_missing_probability: drop
        grid:
          search_bbox: null
    """))
    cfg = load_config(str(path))
    assert cfg.mask.high_cloud.buffer_m == 500
    assert cfg.mask.high_cloud.erosion_m == 300
    assert cfg.mask.refine_land_shadows is True
    assert cfg.glint.band_scales == {"B4": 0.5}
    assert cfg.export.styles == ["ReefTop"]
    assert cfg.export.basename == "test"
    assert cfg.export.scale_m == 10.0
    assert cfg.composite.on_missing_probability == "drop"
    assert cfg.grid.search_bbox is None


def test_default_config_yaml_in_cwd(tmp_path, monkeypatch):
    (tmp_path / "config.yaml").write_text("catalog:\n  max_cloudy_pixel_percentage: 5\n")
    monkeypatch.chdir(tmp_path)
    assert load_config().catalog.max_cloudy_pixel_percentage == 5
