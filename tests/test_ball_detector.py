"""
Unit tests for fusion and the unified / simple detectors.
"""

import pytest

from bounceback.ball_detector import (
    SimpleBallDetector,
    UnifiedBallDetector,
    fuse,
    to_host_coordinates,
)
from bounceback.calibration import compute_profile
from bounceback.detection import Detection, DetectorKind
from bounceback.frames import to_canonical
from bounceback.modes import DEFAULT_MODE_PARAMETERS, Mode

from conftest import blank, with_disc


def _candidate(kind, confidence, x=0.0):
    return Detection(x, 0.0, confidence, kind, radius=5.0)


class TestFuse:

    def test_highest_confidence_wins(self):
        winner = fuse([
            _candidate(DetectorKind.COLOR, 0.7),
            _candidate(DetectorKind.SHAPE, 0.9),
            _candidate(DetectorKind.MOTION, 0.6),
        ], 0.5)

        assert winner.kind is DetectorKind.SHAPE

    def test_motion_wins_ties(self):
        winner = fuse([
            _candidate(DetectorKind.COLOR, 0.8),
            _candidate(DetectorKind.MOTION, 0.8),
            _candidate(DetectorKind.SHAPE, 0.8),
        ], 0.5)

        assert winner.kind is DetectorKind.MOTION

    def test_tie_order_without_motion(self):
        winner = fuse([
            _candidate(DetectorKind.SOCCER, 0.8),
            _candidate(DetectorKind.SHAPE, 0.8),
            _candidate(DetectorKind.COLOR, 0.8),
        ], 0.5)

        assert winner.kind is DetectorKind.COLOR

    def test_all_below_threshold(self):
        assert fuse([_candidate(DetectorKind.COLOR, 0.4)], 0.5) is None

    def test_threshold_is_inclusive(self):
        assert fuse([_candidate(DetectorKind.COLOR, 0.5)], 0.5) is not None

    def test_no_candidates(self):
        assert fuse([None, None], 0.5) is None


class TestHostCoordinates:

    def test_scaled_back(self, ball_frame):
        search = to_canonical(ball_frame).scaled(0.5)
        det = Detection(50, 25, 0.9, DetectorKind.COLOR, radius=5, area=80)
        host = to_host_coordinates(det, search)

        assert (host.x, host.y) == (100, 50)
        assert host.radius == 10
        assert host.area == pytest.approx(320)


class TestUnifiedBallDetector:

    @pytest.fixture
    def detector(self):
        det = UnifiedBallDetector()
        yield det
        det.close()

    def _detect(self, detector, image, mode=Mode.BALANCED):
        frame = to_canonical(image)
        return detector.detect(frame, DEFAULT_MODE_PARAMETERS[mode], compute_profile(frame))

    @pytest.mark.parametrize("mode", list(Mode))
    def test_blank_frames_have_no_ball(self, detector, blank_frame, mode):
        assert self._detect(detector, blank_frame, mode) is None
        assert self._detect(detector, blank_frame, mode) is None

    @pytest.mark.parametrize("mode", list(Mode))
    def test_ball_found_in_every_mode(self, detector, blank_frame, ball_frame, mode):
        self._detect(detector, blank_frame, mode)
        det = self._detect(detector, ball_frame, mode)

        assert det is not None
        assert det.x == pytest.approx(100, abs=3)
        assert det.y == pytest.approx(50, abs=3)
        assert det.kind in (DetectorKind.MOTION, DetectorKind.COLOR, DetectorKind.SHAPE)

    def test_known_targets_not_reported_as_ball(self, detector, target_frame):
        targets = [
            Detection(150, 150, 0.9, DetectorKind.TARGET, radius=40, label='yellow'),
            Detection(280, 150, 0.9, DetectorKind.TARGET, radius=40, label='red'),
        ]
        detector.set_known_targets(targets)

        assert self._detect(detector, target_frame) is None

    def test_reset_clears_motion_reference(self, detector, blank_frame, ball_frame):
        self._detect(detector, blank_frame)
        detector.reset()

        motion = detector.strategies['motion']
        assert motion.motion_mask(to_canonical(ball_frame).gray) is None


class TestSimpleBallDetector:

    def test_large_ball(self):
        frame = to_canonical(with_disc(blank(), (100, 50), 20))
        det = SimpleBallDetector().detect(frame, DEFAULT_MODE_PARAMETERS[Mode.BALANCED],
                                          compute_profile(frame))

        assert det is not None
        assert det.kind is DetectorKind.SOCCER
        assert det.x == pytest.approx(100, abs=2)

    def test_blank(self, blank_frame):
        frame = to_canonical(blank_frame)
        det = SimpleBallDetector().detect(frame, DEFAULT_MODE_PARAMETERS[Mode.BALANCED],
                                          compute_profile(frame))

        assert det is None
