"""Tests for pipeline settings validation and serialization."""

import dataclasses

import pytest

from scannorm.services.pipeline_config import PipelineConfig
from scannorm.utils.exceptions import ConfigurationError


class TestDefaults:
    def test_defaults_valid(self):
        config = PipelineConfig().validate()
        assert config.fill_rgb == (255, 255, 255)
        assert config.approx_epsilons == (0.02, 0.04, 0.06)
        assert config.jpeg_quality == 92

    def test_default_tone_curve(self):
        assert PipelineConfig().tone_curve == ((0, 0), (82, 148), (122, 255), (255, 255))


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"fill_color": "grey"},
            {"threshold_mode": "otsu"},
            {"background_model": "sky"},
            {"fixed_threshold": 300},
            {"min_area_ratio": 0},
            {"approx_epsilons": ()},
            {"approx_epsilons": (0.02, 0.7)},
            {"corner_patch_ratio": 0.6},
            {"bbox_margin_ratio": -0.1},
            {"overcrop_margin_ratio": 0.3},
            {"detection_max_side": 10},
            {"orientation_epsilon": -1.0},
            {"illumination_kernel_ratio": 0},
            {"illumination_offset": 0},
            {"jpeg_quality": 0},
            {"jpeg_quality": 150},
            {"jpeg_quality": "high"},
            {"tone_curve": ((0, 0),)},
            {"tone_curve": ((10, 0), (255, 255))},
            {"tone_curve": ((0, 0), (100, 10), (90, 20), (255, 255))},
            {"tone_curve": ((0, 0), (255, 300))},
        ],
    )
    def test_invalid(self, overrides):
        config = dataclasses.replace(PipelineConfig(), **overrides)
        with pytest.raises(ConfigurationError):
            config.validate()

    @pytest.mark.parametrize("quality", [0.92, 0.5, 1, 75, 100])
    def test_quality_fraction_or_percentage(self, quality):
        assert PipelineConfig(jpeg_quality=quality).validate().jpeg_quality == quality

    def test_error_names_setting(self):
        with pytest.raises(ConfigurationError) as exc:
            PipelineConfig(fill_color="grey").validate()
        assert exc.value.setting_name == "fill_color"


class TestSerialization:
    def test_dict_round_trip(self):
        config = PipelineConfig(fill_color="black", approx_epsilons=(0.05,))
        data = config.to_dict()
        assert data["approx_epsilons"] == [0.05]
        assert data["tone_curve"][1] == [82, 148]
        assert PipelineConfig.from_dict(data) == config

    def test_from_dict_ignores_unknown(self):
        assert PipelineConfig.from_dict({"colour": "red"}) == PipelineConfig()

    def test_from_dict_validates(self):
        with pytest.raises(ConfigurationError):
            PipelineConfig.from_dict({"fill_color": "red"})
