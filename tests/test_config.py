"""
Unit tests for engine configuration loading.
"""

import json

import pytest

from bounceback.config import EngineConfig, load_config, save_config, update_config_from_dict


class TestEngineConfig:

    def test_defaults(self):
        config = EngineConfig()

        assert config.mode == "balanced"
        assert config.impact.cooldown_frames == 15
        assert config.impact.proximity_px == 10.0
        assert config.ball.enable_frequency_strategy is False
        assert config.tracking.lost_after_frames == 10

    def test_from_dict_nested(self):
        config = EngineConfig.from_dict({
            "mode": "fast",
            "impact": {"cooldown_frames": 5},
            "ball": {"frequency_radii": [10, 20]},
        })

        assert config.mode == "fast"
        assert config.impact.cooldown_frames == 5
        assert config.impact.proximity_px == 10.0
        assert config.ball.frequency_radii == (10, 20)

    def test_unknown_keys_ignored(self):
        config = EngineConfig.from_dict({"nonsense": 1, "impact": {"bogus": 2}})

        assert not hasattr(config, "nonsense")
        assert config.impact.cooldown_frames == 15

    def test_section_must_be_object(self):
        with pytest.raises(ValueError):
            update_config_from_dict(EngineConfig(), {"impact": 3})

    def test_load_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.json"))

        assert config == EngineConfig()

    def test_load_malformed_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(ValueError):
            load_config(str(path))

    def test_load_non_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")

        with pytest.raises(ValueError):
            load_config(str(path))

    def test_save_load_round_trip(self, tmp_path):
        path = str(tmp_path / "config.json")
        config = EngineConfig.from_dict({"mode": "accurate", "motion": {"diff_threshold": 40}})

        save_config(config, path)
        loaded = load_config(path)

        assert loaded == config
        with open(path) as f:
            assert json.load(f)["motion"]["diff_threshold"] == 40
