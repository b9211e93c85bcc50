"""
Lighting calibration for the detectors.

A calibration profile captures the scene lighting from one reference
frame and derives the HSV thresholds the colour based detectors use:
- Mean brightness and contrast
- 32 bin luminance histogram
- Lighting class (bright / moderate / indoor)
- Adaptive HSV ranges for targets, goal tape and ball colours

Until a profile has been stored, detectors compute an adaptive profile
from every frame they see.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from .frames import Frame, FrameInput, to_canonical
from .modes import Mode

logger = logging.getLogger(__name__)

HsvRange = Tuple[Tuple[int, int, int], Tuple[int, int, int]]

# Lighting class boundaries (mean gray level)
BRIGHT_THRESHOLD = 150
MODERATE_THRESHOLD = 100
DARK_THRESHOLD = 80

HISTOGRAM_BINS = 32

# Ball colours do not shift with lighting
_BALL_RANGES: Dict[str, List[HsvRange]] = {
    'white': [((0, 0, 200), (180, 30, 255))],
    'orange': [((10, 100, 100), (20, 255, 255))],
}

_TARGET_RANGES: Dict[str, Dict[str, List[HsvRange]]] = {
    'bright': {
        'yellow': [((10, 50, 80), (45, 255, 255))],
        'red': [((0, 70, 70), (15, 255, 255)), ((150, 70, 70), (180, 255, 255))],
        'pink': [((140, 60, 80), (170, 255, 255))],
    },
    'moderate': {
        'yellow': [((15, 70, 100), (40, 255, 255))],
        'red': [((0, 80, 80), (12, 255, 255)), ((155, 80, 80), (179, 255, 255))],
        'pink': [((140, 80, 100), (170, 255, 255))],
    },
    'indoor': {
        'yellow': [((20, 100, 100), (35, 255, 255))],
        'red': [((0, 100, 100), (10, 255, 255)), ((160, 100, 100), (179, 255, 255))],
        'pink': [((140, 100, 100), (170, 255, 255))],
    },
}


def lighting_class(brightness: float) -> str:
    if brightness > BRIGHT_THRESHOLD:
        return 'bright'
    if brightness > MODERATE_THRESHOLD:
        return 'moderate'
    return 'indoor'


def recommended_mode(brightness: float) -> Mode:
    """Bright scenes can afford the fast mode, dark ones need accurate."""
    if brightness > BRIGHT_THRESHOLD:
        return Mode.FAST
    if brightness < DARK_THRESHOLD:
        return Mode.ACCURATE
    return Mode.BALANCED


def adaptive_color_ranges(brightness: float) -> Dict[str, List[HsvRange]]:
    """HSV ranges per colour name for the given scene brightness."""
    ranges = {name: list(bands) for name, bands in _TARGET_RANGES[lighting_class(brightness)].items()}
    ranges.update({name: list(bands) for name, bands in _BALL_RANGES.items()})
    return ranges


def average_brightness(gray: np.ndarray) -> float:
    return float(np.mean(gray)) if gray.size else 0.0


def enhance_contrast(bgr: np.ndarray) -> np.ndarray:
    """CLAHE on the L channel, keeps colours intact."""
    lab = cv2.cvtColor(bgr, cv2.COLOR_BGR2LAB)
    l_channel, a_channel, b_channel = cv2.split(lab)
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    l_channel = clahe.apply(l_channel)
    return cv2.cvtColor(cv2.merge([l_channel, a_channel, b_channel]), cv2.COLOR_LAB2BGR)


def color_mask(hsv: np.ndarray, bands: List[HsvRange]) -> np.ndarray:
    """OR of inRange masks over all bands of one colour."""
    mask = np.zeros(hsv.shape[:2], dtype=np.uint8)
    for lower, upper in bands:
        mask |= cv2.inRange(hsv, np.array(lower, dtype=np.uint8), np.array(upper, dtype=np.uint8))
    return mask


@dataclass(frozen=True)
class CalibrationProfile:
    """Lighting profile derived from a reference frame."""
    brightness: float = 128.0
    contrast: float = 0.0
    histogram: Tuple[float, ...] = ()
    frame_size: Tuple[int, int] = (0, 0)   # (width, height)
    color_ranges: Dict[str, List[HsvRange]] = field(default_factory=lambda: adaptive_color_ranges(128.0))

    # Compared by value, but the colour ranges are a mutable dict
    __hash__ = None

    @property
    def brightness_offset(self) -> float:
        """Signed distance from mid-grey."""
        return self.brightness - 128.0

    @property
    def lighting(self) -> str:
        return lighting_class(self.brightness)

    @property
    def recommended_mode(self) -> Mode:
        return recommended_mode(self.brightness)

    def ranges(self, color: str) -> List[HsvRange]:
        return self.color_ranges.get(color, [])

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'brightness': self.brightness,
            'brightness_offset': self.brightness_offset,
            'contrast': self.contrast,
            'histogram': list(self.histogram),
            'frame_size': list(self.frame_size),
            'color_ranges': {
                name: [[list(lower), list(upper)] for lower, upper in bands]
                for name, bands in self.color_ranges.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CalibrationProfile':
        """Create from dictionary."""
        brightness = float(data.get('brightness', 128.0))
        if data.get('color_ranges'):
            ranges = {
                name: [(tuple(lower), tuple(upper)) for lower, upper in bands]
                for name, bands in data['color_ranges'].items()
            }
        else:
            ranges = adaptive_color_ranges(brightness)
        return cls(
            brightness=brightness,
            contrast=float(data.get('contrast', 0.0)),
            histogram=tuple(float(v) for v in data.get('histogram', ())),
            frame_size=tuple(data.get('frame_size', (0, 0))),
            color_ranges=ranges,
        )


def compute_profile(frame: Frame) -> CalibrationProfile:
    """Pure function of the frame: the same frame always yields an equal profile."""
    gray = frame.gray
    mean, stddev = cv2.meanStdDev(gray)
    brightness = float(mean[0][0])
    hist = cv2.calcHist([gray], [0], None, [HISTOGRAM_BINS], [0, 256]).flatten()
    total = float(hist.sum())
    histogram = tuple(float(v) / total for v in hist) if total > 0 else tuple(0.0 for _ in hist)
    return CalibrationProfile(
        brightness=brightness,
        contrast=float(stddev[0][0]),
        histogram=histogram,
        frame_size=frame.size,
        color_ranges=adaptive_color_ranges(brightness),
    )


class CalibrationStore:
    """
    Holds the current calibration profile.

    Last writer wins; a new profile takes effect on the next detection.
    """

    def __init__(self, profile: Optional[CalibrationProfile] = None):
        self._lock = threading.Lock()
        self._profile = profile

    @property
    def profile(self) -> Optional[CalibrationProfile]:
        with self._lock:
            return self._profile

    @property
    def is_calibrated(self) -> bool:
        return self.profile is not None

    def calibrate(self, frame: FrameInput) -> CalibrationProfile:
        """Compute a profile from the frame and replace the stored one."""
        canonical = to_canonical(frame)
        profile = compute_profile(canonical)
        with self._lock:
            self._profile = profile
        logger.info(
            "[Calibration] brightness=%.1f contrast=%.1f lighting=%s",
            profile.brightness, profile.contrast, profile.lighting
        )
        return profile

    def profile_for(self, frame: Frame) -> CalibrationProfile:
        """Stored profile, or an adaptive one computed from this frame."""
        profile = self.profile
        if profile is not None:
            return profile
        return compute_profile(frame)

    def set_profile(self, profile: Optional[CalibrationProfile]):
        with self._lock:
            self._profile = profile

    def clear(self):
        self.set_profile(None)

    def save(self, path: str) -> bool:
        """
        Save the current profile to a JSON file.

        Returns:
            True if saved successfully.
        """
        profile = self.profile
        if profile is None:
            logger.warning("[Calibration] Nothing to save, no profile stored")
            return False
        try:
            with open(path, 'w') as f:
                json.dump(profile.to_dict(), f, indent=2)
            logger.info("[Calibration] Saved to %s", path)
            return True
        except OSError as e:
            logger.error("[Calibration] Failed to save: %s", e)
            return False

    def load(self, path: str) -> bool:
        """
        Load a profile from a JSON file.

        Returns:
            True if loaded successfully.
        """
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info("[Calibration] No calibration file found at %s, using adaptive profile", path)
            return False
        except (OSError, json.JSONDecodeError) as e:
            logger.error("[Calibration] Failed to load: %s", e)
            return False
        self.set_profile(CalibrationProfile.from_dict(data))
        logger.info("[Calibration] Loaded from %s", path)
        return True
