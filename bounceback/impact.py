"""
Impact evaluation.

State machine:
ARMED -> COOLDOWN (ball inside the goal and within radius + proximity of a target)
COOLDOWN -> ARMED (cooldown window consumed, or ball seen outside the goal)

The call that registers an impact returns True; every call during the
cooldown returns False, so one physical hit is reported once.
"""

import logging
import threading
import time
from dataclasses import dataclass, asdict
from typing import Iterable, Optional, Tuple

from .config import ImpactConfig
from .detection import Detection
from .geometry import Region, distance

logger = logging.getLogger(__name__)


class ImpactState:
    """States of the impact evaluator."""
    ARMED = "armed"  # Ready to register the next impact
    COOLDOWN = "cooldown"  # Just registered one, suppressing repeats


@dataclass
class ImpactEvent:
    """A registered impact."""
    ball_x: float
    ball_y: float
    target_x: float
    target_y: float
    distance_px: float
    target_number: Optional[int] = None
    target_label: Optional[str] = None
    quadrant: Optional[int] = None
    call_index: int = 0
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class ImpactEvaluator:
    """Decides whether the ball hit a target, with per-hit cooldown."""

    def __init__(self, config: Optional[ImpactConfig] = None):
        self.config = config or ImpactConfig()
        self._lock = threading.Lock()
        self._state = ImpactState.ARMED
        self._remaining = 0
        self._calls = 0
        self.last_event: Optional[ImpactEvent] = None

    def evaluate(
        self,
        ball: Optional[Detection],
        targets: Iterable[Detection],
        goal_region
    ) -> bool:
        """True exactly when a new impact is registered by this call."""
        return self.evaluate_event(ball, targets, goal_region) is not None

    def evaluate_event(
        self,
        ball: Optional[Detection],
        targets: Iterable[Detection],
        goal_region
    ) -> Optional[ImpactEvent]:
        """Like evaluate() but returns the registered ImpactEvent (or None)."""
        region = Region.from_tuple(goal_region) if goal_region is not None else Region()
        in_goal = ball is not None and region.contains(ball.x, ball.y)

        with self._lock:
            self._calls += 1

            if self._state == ImpactState.COOLDOWN:
                self._handle_cooldown_state(ball is not None, in_goal)
                return None

            if not in_goal:
                return None
            hit = self._closest_hit(ball, targets)
            if hit is None:
                return None

            target, dist = hit
            event = ImpactEvent(
                ball_x=ball.x,
                ball_y=ball.y,
                target_x=target.x,
                target_y=target.y,
                distance_px=dist,
                target_number=target.number,
                target_label=target.label,
                quadrant=target.quadrant if target.quadrant is not None else region.quadrant_of(ball.x, ball.y),
                call_index=self._calls,
                timestamp=time.time(),
            )
            if self.config.cooldown_frames > 0:
                self._state = ImpactState.COOLDOWN
                self._remaining = self.config.cooldown_frames
            self.last_event = event

        logger.info(
            "[ImpactEvaluator] Impact at (%.1f, %.1f) target=%s dist=%.1fpx",
            event.ball_x, event.ball_y, event.target_number, event.distance_px
        )
        return event

    def _handle_cooldown_state(self, seen: bool, in_goal: bool):
        # A missed detection is not the ball leaving, it only uses up the window
        if seen and not in_goal:
            # Ball left the goal, the next entry is a new hit
            self._state = ImpactState.ARMED
            self._remaining = 0
            return
        self._remaining -= 1
        if self._remaining <= 0:
            self._state = ImpactState.ARMED
            self._remaining = 0

    def _closest_hit(
        self,
        ball: Detection,
        targets: Iterable[Detection]
    ) -> Optional[Tuple[Detection, float]]:
        best = None
        for target in targets:
            dist = distance(ball.center, target.center)
            reach = (target.radius or 0.0) + self.config.proximity_px
            if dist <= reach and (best is None or dist < best[1]):
                best = (target, dist)
        return best

    def reset(self):
        with self._lock:
            self._state = ImpactState.ARMED
            self._remaining = 0
            self._calls = 0
            self.last_event = None

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    @property
    def cooldown_remaining(self) -> int:
        with self._lock:
            return self._remaining
