"""
Tracking state: cross-frame continuity and session statistics.

One TrackState per engine. All updates happen under a single lock so a
reset is atomic with respect to in-flight detections: a detection that
finishes after the reset is counted in the fresh session.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional, Tuple

from .config import TrackingConfig
from .detection import Detection, TargetSet

logger = logging.getLogger(__name__)


@dataclass
class StatsSnapshot:
    """Point in time copy of the tracking statistics."""
    frames_processed: int = 0
    detections_succeeded: int = 0
    detections_failed: int = 0
    impacts: int = 0
    target_frames: int = 0
    last_target_count: int = 0
    average_latency_ms: float = 0.0
    last_ball: Optional[Detection] = None
    velocity: Tuple[float, float] = (0.0, 0.0)   # px / frame
    ball_visible: bool = False
    consecutive_misses: int = 0
    session_seconds: float = 0.0
    processing_fps: float = 0.0
    mode: Optional[str] = None
    calibration_brightness: Optional[float] = None

    @property
    def success_rate(self) -> float:
        if self.frames_processed == 0:
            return 0.0
        return self.detections_succeeded / self.frames_processed

    @property
    def speed(self) -> float:
        return (self.velocity[0] ** 2 + self.velocity[1] ** 2) ** 0.5

    def to_dict(self) -> dict:
        return {
            'frames_processed': self.frames_processed,
            'detections_succeeded': self.detections_succeeded,
            'detections_failed': self.detections_failed,
            'success_rate': round(self.success_rate, 4),
            'impacts': self.impacts,
            'target_frames': self.target_frames,
            'last_target_count': self.last_target_count,
            'average_latency_ms': round(self.average_latency_ms, 3),
            'last_ball': self.last_ball.to_dict() if self.last_ball else None,
            'velocity': list(self.velocity),
            'speed': self.speed,
            'ball_visible': self.ball_visible,
            'consecutive_misses': self.consecutive_misses,
            'session_seconds': round(self.session_seconds, 3),
            'processing_fps': round(self.processing_fps, 2),
            'mode': self.mode,
            'calibration_brightness': self.calibration_brightness,
        }


@dataclass
class TrackState:
    """Mutable session state, only touched under Tracker's lock."""
    frames_processed: int = 0
    detections_succeeded: int = 0
    detections_failed: int = 0
    impacts: int = 0
    target_frames: int = 0
    last_target_count: int = 0
    latency_total_ms: float = 0.0
    latency_samples: int = 0
    last_ball: Optional[Detection] = None
    last_ball_frame: int = 0
    velocity: Tuple[float, float] = (0.0, 0.0)
    consecutive_misses: int = 0
    ball_visible: bool = False
    history: Deque[Detection] = field(default_factory=deque)
    started_at: float = field(default_factory=time.time)
    updated_at: float = 0.0


class Tracker:
    """
    Owns the TrackState.

    Counters only grow within a session; reset() starts a new one.
    """

    def __init__(self, config: Optional[TrackingConfig] = None):
        self.config = config or TrackingConfig()
        self._lock = threading.Lock()
        self._state = self._new_state()

    def _new_state(self) -> TrackState:
        return TrackState(history=deque(maxlen=self.config.history_size))

    def record_ball(self, detection: Optional[Detection], latency_ms: Optional[float] = None):
        """Count one ball detection call and update the last known ball."""
        with self._lock:
            s = self._state
            s.frames_processed += 1
            s.updated_at = time.time()
            if latency_ms is not None:
                s.latency_total_ms += latency_ms
                s.latency_samples += 1

            if detection is None:
                s.detections_failed += 1
                s.consecutive_misses += 1
                if s.ball_visible and s.consecutive_misses > self.config.lost_after_frames:
                    s.ball_visible = False
                    logger.debug("[Tracker] Ball lost after %d misses", s.consecutive_misses)
                return

            s.detections_succeeded += 1
            if s.last_ball is not None:
                gap = max(1, s.frames_processed - s.last_ball_frame)
                s.velocity = ((detection.x - s.last_ball.x) / gap,
                              (detection.y - s.last_ball.y) / gap)
            s.last_ball = detection
            s.last_ball_frame = s.frames_processed
            s.consecutive_misses = 0
            s.ball_visible = True
            s.history.append(detection)

    def record_targets(self, targets: TargetSet, latency_ms: Optional[float] = None):
        with self._lock:
            s = self._state
            s.target_frames += 1
            s.last_target_count = len(targets)
            s.updated_at = time.time()
            if latency_ms is not None:
                s.latency_total_ms += latency_ms
                s.latency_samples += 1

    def record_impact(self):
        with self._lock:
            self._state.impacts += 1
            self._state.updated_at = time.time()

    @property
    def last_ball(self) -> Optional[Detection]:
        with self._lock:
            return self._state.last_ball

    @property
    def history(self) -> Tuple[Detection, ...]:
        with self._lock:
            return tuple(self._state.history)

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            s = self._state
            elapsed = max(0.0, time.time() - s.started_at)
            return StatsSnapshot(
                frames_processed=s.frames_processed,
                detections_succeeded=s.detections_succeeded,
                detections_failed=s.detections_failed,
                impacts=s.impacts,
                target_frames=s.target_frames,
                last_target_count=s.last_target_count,
                average_latency_ms=(s.latency_total_ms / s.latency_samples
                                    if s.latency_samples else 0.0),
                last_ball=s.last_ball,
                velocity=s.velocity,
                ball_visible=s.ball_visible,
                consecutive_misses=s.consecutive_misses,
                session_seconds=elapsed,
                processing_fps=s.frames_processed / elapsed if elapsed > 0 else 0.0,
            )

    def reset(self):
        """Start a fresh session; all counters and the last ball are cleared together."""
        with self._lock:
            self._state = self._new_state()
        logger.info("[Tracker] Tracking state reset")
