"""
Unit tests for the impact evaluator.
"""

import pytest

from bounceback.config import ImpactConfig
from bounceback.detection import Detection, DetectorKind, TargetSet
from bounceback.geometry import Region
from bounceback.impact import ImpactEvaluator, ImpactState

GOAL = Region(90, 40, 20, 20)
TARGET = Detection(100, 50, 0.9, DetectorKind.TARGET, radius=5.0, label='yellow', number=1)


def _ball(x=100.0, y=50.0):
    return Detection(x, y, 0.9, DetectorKind.COLOR, radius=4.0)


class TestImpactEvaluator:

    def test_hit_then_cooldown(self):
        evaluator = ImpactEvaluator(ImpactConfig(cooldown_frames=3))
        results = [evaluator.evaluate(_ball(), [TARGET], GOAL) for _ in range(5)]

        assert results == [True, False, False, False, True]

    def test_default_cooldown_suppresses_fifteen_calls(self):
        evaluator = ImpactEvaluator()

        assert evaluator.evaluate(_ball(), [TARGET], GOAL)
        for _ in range(15):
            assert not evaluator.evaluate(_ball(), [TARGET], GOAL)
        assert evaluator.evaluate(_ball(), [TARGET], GOAL)

    def test_absent_ball(self):
        evaluator = ImpactEvaluator()

        assert evaluator.evaluate(None, [TARGET], GOAL) is False
        assert evaluator.state == ImpactState.ARMED

    def test_ball_leaving_goal_rearms(self):
        evaluator = ImpactEvaluator()

        assert evaluator.evaluate(_ball(), [TARGET], GOAL)
        assert evaluator.state == ImpactState.COOLDOWN
        assert not evaluator.evaluate(_ball(150, 50), [TARGET], GOAL)
        assert evaluator.state == ImpactState.ARMED
        assert evaluator.evaluate(_ball(), [TARGET], GOAL)

    def test_missed_detection_keeps_cooldown(self):
        """A frame with no ball during cooldown does not count the hit again."""
        evaluator = ImpactEvaluator()
        results = [
            evaluator.evaluate(_ball(), [TARGET], GOAL),
            evaluator.evaluate(None, [TARGET], GOAL),
            evaluator.evaluate(_ball(), [TARGET], GOAL),
        ]

        assert results == [True, False, False]
        assert evaluator.state == ImpactState.COOLDOWN
        assert evaluator.cooldown_remaining == 13

    def test_missed_detections_consume_window(self):
        evaluator = ImpactEvaluator(ImpactConfig(cooldown_frames=3))
        evaluator.evaluate(_ball(), [TARGET], GOAL)

        for _ in range(3):
            assert not evaluator.evaluate(None, [TARGET], GOAL)
        assert evaluator.state == ImpactState.ARMED
        assert evaluator.evaluate(_ball(), [TARGET], GOAL)

    @pytest.mark.parametrize("offset,expected", [
        (15.0, True),     # radius 5 + proximity 10
        (15.5, False),
    ])
    def test_proximity_boundary(self, offset, expected):
        goal = Region(0, 0, 200, 200)
        evaluator = ImpactEvaluator()

        assert evaluator.evaluate(_ball(100 + offset, 50), [TARGET], goal) is expected

    def test_ball_outside_goal_never_hits(self):
        evaluator = ImpactEvaluator()
        target = TARGET.with_fields(x=111.0)

        assert not evaluator.evaluate(_ball(112, 50), [target], GOAL)

    def test_empty_region(self):
        assert not ImpactEvaluator().evaluate(_ball(), [TARGET], Region(100, 50, 0, 0))

    def test_no_targets(self):
        assert not ImpactEvaluator().evaluate(_ball(), [], GOAL)

    def test_accepts_target_set_and_tuple_region(self):
        targets = TargetSet.ranked([TARGET], GOAL)

        assert ImpactEvaluator().evaluate(_ball(), targets, (90, 40, 20, 20))

    def test_event_details(self):
        evaluator = ImpactEvaluator()
        event = evaluator.evaluate_event(_ball(103, 46), [TARGET], GOAL)

        assert event.target_number == 1
        assert event.target_label == 'yellow'
        assert event.distance_px == pytest.approx(5.0)
        assert event.quadrant == 2
        assert evaluator.last_event is event

    def test_zero_cooldown(self):
        evaluator = ImpactEvaluator(ImpactConfig(cooldown_frames=0))

        assert evaluator.evaluate(_ball(), [TARGET], GOAL)
        assert evaluator.evaluate(_ball(), [TARGET], GOAL)

    def test_reset(self):
        evaluator = ImpactEvaluator()
        evaluator.evaluate(_ball(), [TARGET], GOAL)
        evaluator.reset()

        assert evaluator.state == ImpactState.ARMED
        assert evaluator.last_event is None
        assert evaluator.evaluate(_ball(), [TARGET], GOAL)
