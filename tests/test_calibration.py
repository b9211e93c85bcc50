"""
Unit tests for lighting calibration.
"""

import json

import numpy as np
import pytest

from bounceback.calibration import (
    CalibrationProfile,
    CalibrationStore,
    adaptive_color_ranges,
    compute_profile,
    lighting_class,
    recommended_mode,
)
from bounceback.frames import UnsupportedFrameFormat, to_canonical
from bounceback.modes import Mode

from conftest import blank


class TestProfile:

    def test_brightness_and_contrast(self, ball_frame):
        profile = compute_profile(to_canonical(ball_frame))

        assert 100 < profile.brightness < 110
        assert profile.contrast > 0
        assert profile.frame_size == (200, 100)
        assert len(profile.histogram) == 32
        assert sum(profile.histogram) == pytest.approx(1.0)

    def test_deterministic(self, ball_frame):
        frame = to_canonical(ball_frame)

        assert compute_profile(frame) == compute_profile(frame)

    @pytest.mark.parametrize("brightness,label", [
        (200, 'bright'),
        (151, 'bright'),
        (150, 'moderate'),
        (120, 'moderate'),
        (100, 'indoor'),
        (30, 'indoor'),
    ])
    def test_lighting_class(self, brightness, label):
        assert lighting_class(brightness) == label

    @pytest.mark.parametrize("brightness,mode", [
        (200, Mode.FAST),
        (120, Mode.BALANCED),
        (80, Mode.BALANCED),
        (79, Mode.ACCURATE),
    ])
    def test_recommended_mode(self, brightness, mode):
        assert recommended_mode(brightness) is mode

    def test_bright_scene_widens_yellow(self):
        bright = adaptive_color_ranges(200)['yellow'][0]
        indoor = adaptive_color_ranges(90)['yellow'][0]

        assert bright[0][0] < indoor[0][0]
        assert bright[1][0] > indoor[1][0]

    def test_red_has_two_bands(self):
        assert len(adaptive_color_ranges(120)['red']) == 2

    def test_dict_round_trip(self, ball_frame):
        profile = compute_profile(to_canonical(ball_frame))
        restored = CalibrationProfile.from_dict(json.loads(json.dumps(profile.to_dict())))

        assert restored == profile

    def test_brightness_offset(self):
        profile = compute_profile(to_canonical(blank(64, 64, 160)))

        assert profile.brightness_offset == pytest.approx(32.0)
        assert profile.to_dict()['brightness_offset'] == pytest.approx(32.0)

    def test_profile_is_unhashable(self, ball_frame):
        profile = compute_profile(to_canonical(ball_frame))

        with pytest.raises(TypeError):
            hash(profile)


class TestCalibrationStore:

    def test_uncalibrated_store_adapts_per_frame(self):
        store = CalibrationStore()
        dark = to_canonical(blank(value=40))
        light = to_canonical(blank(value=220))

        assert not store.is_calibrated
        assert store.profile_for(dark).lighting == 'indoor'
        assert store.profile_for(light).lighting == 'bright'

    def test_calibrate_twice_equals_once(self, ball_frame):
        once = CalibrationStore()
        twice = CalibrationStore()

        once.calibrate(ball_frame)
        twice.calibrate(ball_frame)
        twice.calibrate(ball_frame)

        assert once.profile == twice.profile

    def test_calibrated_profile_used_for_other_frames(self, ball_frame):
        store = CalibrationStore()
        profile = store.calibrate(ball_frame)

        assert store.profile_for(to_canonical(blank(value=240))) is profile

    def test_save_and_load(self, tmp_path, ball_frame):
        path = str(tmp_path / "calibration.json")
        store = CalibrationStore()
        store.calibrate(ball_frame)

        assert store.save(path)

        restored = CalibrationStore()
        assert restored.load(path)
        assert restored.profile == store.profile

    def test_load_missing_file(self, tmp_path):
        store = CalibrationStore()

        assert not store.load(str(tmp_path / "missing.json"))
        assert not store.is_calibrated

    def test_save_without_profile(self, tmp_path):
        assert not CalibrationStore().save(str(tmp_path / "nothing.json"))

    def test_clear(self, ball_frame):
        store = CalibrationStore()
        store.calibrate(ball_frame)
        store.clear()

        assert store.profile is None

    def test_rejects_bad_frame(self):
        store = CalibrationStore()

        with pytest.raises(UnsupportedFrameFormat):
            store.calibrate(np.zeros((0, 0), dtype=np.uint8))
        assert not store.is_calibrated
