"""
Unified ball detector.

Runs the strategies enabled for the current mode on a reduced resolution
copy of the frame and fuses their candidates:
- candidates below the mode's confidence threshold are dropped
- candidates matching a known target (same centre and size) are dropped
- the most confident candidate wins
- ties go to motion, then color, shape, soccer, frequency

In parallel modes the strategies fan out to a thread pool and fusion is
the join point.
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import cv2

from .calibration import CalibrationProfile
from .config import BallDetectorConfig, MotionConfig
from .detection import Detection, DetectorKind
from .frames import Frame
from .modes import ModeParameters
from .strategies import BallStrategy, ColorStrategy, SoccerStrategy, build_strategies

logger = logging.getLogger(__name__)

# Lower index wins a confidence tie
TIE_BREAK_ORDER: Tuple[DetectorKind, ...] = (
    DetectorKind.MOTION,
    DetectorKind.COLOR,
    DetectorKind.SHAPE,
    DetectorKind.SOCCER,
    DetectorKind.FREQUENCY,
)

CONFIDENCE_TIE_EPSILON = 1e-6


def fuse(candidates: Sequence[Detection], threshold: float) -> Optional[Detection]:
    """Pick the winning candidate, or None if nothing reaches the threshold."""
    eligible = [c for c in candidates if c is not None and c.confidence >= threshold]
    if not eligible:
        return None
    top = max(c.confidence for c in eligible)
    tied = [c for c in eligible if top - c.confidence <= CONFIDENCE_TIE_EPSILON]
    return min(tied, key=lambda c: TIE_BREAK_ORDER.index(c.kind))


def to_host_coordinates(detection: Detection, frame: Frame) -> Detection:
    """Map a detection found on `frame` back to host frame pixels."""
    if frame.scale == 1.0:
        return detection
    scale = frame.scale
    return detection.with_fields(
        x=detection.x / scale,
        y=detection.y / scale,
        radius=detection.radius / scale if detection.radius is not None else None,
        area=detection.area / (scale * scale) if detection.area is not None else None,
    )


class UnifiedBallDetector:
    """Fuses every enabled strategy into one ball detection."""

    def __init__(
        self,
        config: Optional[BallDetectorConfig] = None,
        motion_config: Optional[MotionConfig] = None,
        executor: Optional[ThreadPoolExecutor] = None
    ):
        self.config = config or BallDetectorConfig()
        self.strategies: Dict[str, BallStrategy] = build_strategies(
            self.config, motion_config or MotionConfig()
        )
        self._executor = executor
        self._owns_executor = False
        self._lock = threading.Lock()
        self._known_targets: Tuple[Tuple[float, float, float], ...] = ()

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix="ball-strategy"
            )
            self._owns_executor = True
        return self._executor

    def enabled(self, params: ModeParameters) -> List[BallStrategy]:
        """Strategies selected by the mode that are also built (frequency is opt-in)."""
        return [self.strategies[name] for name in params.strategies if name in self.strategies]

    def detect(
        self,
        frame: Frame,
        params: ModeParameters,
        profile: CalibrationProfile
    ) -> Optional[Detection]:
        """
        Detect the ball in a canonical frame.

        Returns:
            Winning detection in host frame pixels, or None.
        """
        search = frame.scaled(params.search_scale)
        strategies = self.enabled(params)

        if params.parallel and len(strategies) > 1:
            pool = self._pool()
            futures = [pool.submit(self._run, s, search, params, profile) for s in strategies]
            candidates = [f.result() for f in futures]
        else:
            candidates = [self._run(s, search, params, profile) for s in strategies]

        candidates = [
            to_host_coordinates(c, search) for c in candidates
            if c is not None
        ]
        winner = fuse([c for c in candidates if not self._is_target(c)], params.confidence_threshold)
        if winner is None:
            return None
        logger.debug(
            "[BallDetector] %s won at (%.1f, %.1f) conf=%.2f",
            winner.kind.value, winner.x, winner.y, winner.confidence
        )
        return winner

    @staticmethod
    def _run(strategy, frame, params, profile) -> Optional[Detection]:
        try:
            return strategy.detect(frame, params, profile)
        except cv2.error as e:
            # Degenerate frames (too small for a kernel etc.) only cost this candidate
            logger.warning("[BallDetector] %s strategy failed: %s", strategy.kind.value, e)
            return None

    def set_known_targets(self, targets: Iterable[Detection]):
        """Targets from the last target search, in host frame pixels."""
        known = tuple((t.x, t.y, t.radius or 0.0) for t in targets)
        with self._lock:
            self._known_targets = known
        color = self.strategies.get('color')
        if isinstance(color, ColorStrategy):
            color.set_known_targets([(x, y) for x, y, _ in known])

    def _is_target(self, candidate: Detection) -> bool:
        """A candidate the size of a known target sitting on its centre is the target itself."""
        if candidate.radius is None:
            return False
        with self._lock:
            known = self._known_targets
        for tx, ty, tr in known:
            if tr <= 0:
                continue
            near = math.hypot(candidate.x - tx, candidate.y - ty) <= 0.5 * tr
            if near and 0.7 * tr <= candidate.radius <= 1.3 * tr:
                return True
        return False

    def reset(self):
        with self._lock:
            self._known_targets = ()
        for strategy in self.strategies.values():
            strategy.reset()

    def close(self):
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            self._owns_executor = False


class SimpleBallDetector:
    """
    Low latency detector: soccer strategy only, full resolution, no fusion.

    Its answer need not agree with the unified detector's.
    """

    def __init__(self, config: Optional[BallDetectorConfig] = None):
        self.config = config or BallDetectorConfig()
        self._strategy = SoccerStrategy(self.config)

    def detect(
        self,
        frame: Frame,
        params: ModeParameters,
        profile: CalibrationProfile
    ) -> Optional[Detection]:
        try:
            detection = self._strategy.detect(frame, params, profile)
        except cv2.error as e:
            logger.warning("[SimpleBallDetector] detection failed: %s", e)
            return None
        if detection is None:
            return None
        return to_host_coordinates(detection, frame)
