"""
Tracking engine.

The engine is the context object the host talks to. It owns one of each
component (calibration store, mode controller, detectors, tracker,
impact evaluator) and exposes the per-frame operations:

    engine = TrackingEngine()
    ball = engine.detect_ball(frame)
    targets = engine.detect_targets(frame, goal_region)
    if engine.detect_impact(ball, targets, goal_region):
        ...

Frames are converted before any shared state is touched, so a frame the
adapter rejects leaves the statistics untouched.

Module level functions operate on a lazily created process-wide engine.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Union

import cv2

from .ball_detector import SimpleBallDetector, UnifiedBallDetector, to_host_coordinates
from .calibration import CalibrationProfile, CalibrationStore, average_brightness
from .config import EngineConfig
from .detection import Detection, DetectorKind, TargetSet
from .frames import Frame, FrameInput, to_canonical
from .geometry import Region
from .impact import ImpactEvaluator, ImpactEvent
from .modes import DEFAULT_MODE_PARAMETERS, Mode, ModeController, parameters_from_dict
from .strategies import MotionStrategy, centroid, find_contours
from .target_detector import TargetDetector
from .tracking import StatsSnapshot, Tracker

logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    """Everything process_frame found in one frame."""
    ball: Optional[Detection]
    targets: TargetSet
    impact: bool
    impact_event: Optional[ImpactEvent] = None
    latency_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            'ball': self.ball.to_dict() if self.ball else None,
            'targets': self.targets.to_dict(),
            'impact': self.impact,
            'impact_event': self.impact_event.to_dict() if self.impact_event else None,
            'latency_ms': round(self.latency_ms, 3),
        }


class TrackingEngine:
    """
    Ball and target tracking engine.

    Thread safety: calls may come from any thread; tracking counters,
    calibration and mode are each guarded by their own lock.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        cfg = self.config

        overrides = {}
        for name, values in cfg.mode_parameters.items():
            mode = Mode.parse(name)
            overrides[mode] = parameters_from_dict(DEFAULT_MODE_PARAMETERS[mode], values)
        self.modes = ModeController(cfg.mode, overrides)

        self.calibration = CalibrationStore()
        if cfg.calibration_path:
            self.calibration.load(cfg.calibration_path)

        self._executor = ThreadPoolExecutor(
            max_workers=cfg.ball.max_workers,
            thread_name_prefix="bounceback"
        )
        self.ball_detector = UnifiedBallDetector(cfg.ball, cfg.motion, self._executor)
        self.simple_detector = SimpleBallDetector(cfg.ball)
        self.target_detector = TargetDetector(cfg.target)
        self.impact = ImpactEvaluator(cfg.impact)
        self.tracker = Tracker(cfg.tracking)

        # Separate reference frames so diagnostics never disturb ball tracking
        self._motion_scan = MotionStrategy(cfg.motion)

        self._state_lock = threading.Lock()
        self._frame_size: Optional[tuple] = None
        self._last_targets: TargetSet = TargetSet.empty()

        logger.info("[Engine] Ready, mode=%s", self.modes.mode.value)

    # -- frame handling -------------------------------------------------

    def _adapt(self, frame: FrameInput) -> Frame:
        canonical = to_canonical(
            frame,
            color_order=self.config.frame.color_order,
            max_width=self.config.frame.max_width
        )
        with self._state_lock:
            self._frame_size = (int(round(canonical.width / canonical.scale)),
                                int(round(canonical.height / canonical.scale)))
        return canonical

    # -- ball -------------------------------------------------------------

    def detect_ball(self, frame: FrameInput) -> Optional[Detection]:
        """
        Unified ball detection.

        Candidates matching the targets of the last detect_targets() call
        are dropped. Until targets have been detected once, a stationary
        yellow or red target can be reported as the ball, so hosts should
        call detect_targets() first (process_frame() does).

        Returns:
            Best detection in frame pixels, or None if nothing reached the
            mode's confidence threshold.

        Raises:
            UnsupportedFrameFormat: frame could not be converted.
        """
        canonical = self._adapt(frame)
        start = time.perf_counter()
        profile = self.calibration.profile_for(canonical)
        detection = self.ball_detector.detect(canonical, self.modes.parameters, profile)
        self.tracker.record_ball(detection, (time.perf_counter() - start) * 1000)
        return detection

    def detect_simple_ball(self, frame: FrameInput) -> Optional[Detection]:
        """Soccer-ball-only detection at full resolution, for low latency callers."""
        canonical = self._adapt(frame)
        start = time.perf_counter()
        profile = self.calibration.profile_for(canonical)
        detection = self.simple_detector.detect(canonical, self.modes.parameters, profile)
        self.tracker.record_ball(detection, (time.perf_counter() - start) * 1000)
        return detection

    # -- targets / impact -------------------------------------------------

    def detect_targets(self, frame: FrameInput, goal_region) -> TargetSet:
        """
        Detect targets inside the goal region.

        Returns:
            TargetSet ordered by confidence; empty when the region does not
            overlap the frame.
        """
        canonical = self._adapt(frame)
        start = time.perf_counter()
        profile = self.calibration.profile_for(canonical)
        targets = self.target_detector.detect(canonical, Region.from_tuple(goal_region), profile)
        self.tracker.record_targets(targets, (time.perf_counter() - start) * 1000)
        self.ball_detector.set_known_targets(targets)
        with self._state_lock:
            self._last_targets = targets
        return targets

    def detect_impact(
        self,
        ball: Optional[Detection],
        targets: Union[TargetSet, Iterable[Detection]],
        goal_region
    ) -> bool:
        """True when this call registers a new impact. Never raises for a missing ball."""
        return self._evaluate_impact(ball, targets, goal_region) is not None

    def _evaluate_impact(self, ball, targets, goal_region) -> Optional[ImpactEvent]:
        region = Region.from_tuple(goal_region)
        with self._state_lock:
            frame_size = self._frame_size
        if frame_size is not None:
            region = region.clip(*frame_size)
        event = self.impact.evaluate_event(ball, list(targets), region)
        if event is not None:
            self.tracker.record_impact()
        return event

    @property
    def last_impact(self) -> Optional[ImpactEvent]:
        return self.impact.last_event

    @property
    def last_targets(self) -> TargetSet:
        with self._state_lock:
            return self._last_targets

    def process_frame(self, frame: FrameInput, goal_region) -> FrameResult:
        """Targets, ball and impact for one frame in a single call."""
        start = time.perf_counter()
        canonical = self._adapt(frame)
        targets = self.detect_targets(canonical, goal_region)
        ball = self.detect_ball(canonical)
        event = self._evaluate_impact(ball, targets, targets.goal_region)
        return FrameResult(
            ball=ball,
            targets=targets,
            impact=event is not None,
            impact_event=event,
            latency_ms=(time.perf_counter() - start) * 1000,
        )

    # -- session ----------------------------------------------------------

    def reset_tracking(self):
        """Clear statistics, last known ball, motion references and impact cooldown."""
        self.tracker.reset()
        self.ball_detector.reset()
        self.impact.reset()
        self._motion_scan.reset()
        with self._state_lock:
            self._last_targets = TargetSet.empty()

    def get_statistics(self) -> StatsSnapshot:
        profile = self.calibration.profile
        return replace(
            self.tracker.snapshot(),
            mode=self.modes.mode.value,
            calibration_brightness=profile.brightness if profile else None,
        )

    # -- mode / calibration -----------------------------------------------

    def set_mode(self, mode: Union[Mode, str]):
        """
        Raises:
            InvalidMode: unknown mode; the current one stays active.
        """
        self.modes.set_mode(mode)

    @property
    def mode(self) -> Mode:
        return self.modes.mode

    def calibrate(self, frame: FrameInput) -> CalibrationProfile:
        """Calibrate colour thresholds from a reference frame; applies from the next detection."""
        canonical = self._adapt(frame)
        profile = self.calibration.calibrate(canonical)
        if self.config.auto_mode_from_calibration:
            self.modes.set_mode(profile.recommended_mode)
        return profile

    # -- diagnostics -------------------------------------------------------

    def detect_motion(self, frame: FrameInput) -> List[Detection]:
        """
        Moving regions in the frame, largest first.

        Uses its own reference frames; the first call only primes them.
        """
        canonical = self._adapt(frame)
        mask = self._motion_scan.motion_mask(canonical.gray)
        if mask is None:
            return []

        cfg = self.config.motion
        scale2 = canonical.scale * canonical.scale
        regions = []
        for contour in find_contours(mask):
            area = cv2.contourArea(contour)
            if not cfg.region_min_area * scale2 <= area <= cfg.region_max_area * scale2:
                continue
            center = centroid(contour)
            if center is None:
                continue
            host_area = area / scale2
            bx, by, bw, bh = cv2.boundingRect(contour)
            detection = Detection(
                center[0], center[1],
                min(1.0, host_area / 1000.0),
                DetectorKind.MOTION,
                area=area,
                bbox=tuple(int(round(v / canonical.scale)) for v in (bx, by, bw, bh)),
            )
            regions.append(to_host_coordinates(detection, canonical))
        regions.sort(key=lambda d: d.area, reverse=True)
        return regions

    def analyze_frame_performance(self, frame: FrameInput) -> dict:
        """Conversion time and basic frame metrics."""
        start = time.perf_counter()
        canonical = self._adapt(frame)
        brightness = average_brightness(canonical.gray)
        elapsed_us = (time.perf_counter() - start) * 1e6
        return {
            'processing_time_us': elapsed_us,
            'average_brightness': brightness,
            'frame_width': canonical.width,
            'frame_height': canonical.height,
            'mode': self.modes.mode.value,
            'mode_parameters': self.modes.parameters.to_dict(),
        }

    # -- lifecycle --------------------------------------------------------

    def close(self):
        self.ball_detector.close()
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


_default_engine: Optional[TrackingEngine] = None
_default_lock = threading.Lock()


def get_default_engine() -> TrackingEngine:
    """Process-wide engine, created on first use and kept until exit."""
    global _default_engine
    with _default_lock:
        if _default_engine is None:
            _default_engine = TrackingEngine()
        return _default_engine


def detect_ball(frame: FrameInput) -> Optional[Detection]:
    return get_default_engine().detect_ball(frame)


def detect_simple_ball(frame: FrameInput) -> Optional[Detection]:
    return get_default_engine().detect_simple_ball(frame)


def detect_targets(frame: FrameInput, goal_region) -> TargetSet:
    return get_default_engine().detect_targets(frame, goal_region)


def detect_impact(ball: Optional[Detection], targets, goal_region) -> bool:
    return get_default_engine().detect_impact(ball, targets, goal_region)


def reset_tracking():
    get_default_engine().reset_tracking()


def get_statistics() -> StatsSnapshot:
    return get_default_engine().get_statistics()


def set_mode(mode: Union[Mode, str]):
    get_default_engine().set_mode(mode)


def calibrate(frame: FrameInput) -> CalibrationProfile:
    return get_default_engine().calibrate(frame)


def detect_motion(frame: FrameInput) -> List[Detection]:
    return get_default_engine().detect_motion(frame)
