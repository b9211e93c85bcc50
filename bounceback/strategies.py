"""
Ball detection strategies.

Every strategy answers the same question for one frame: where is the
ball, and how sure are you? Strategies never raise for "not found", they
return None.

- ColorStrategy: CLAHE enhanced HSV masks for the known ball colours
- ShapeStrategy: Hough circles validated by Otsu contour circularity
- MotionStrategy: frame differencing gated by a running background
- SoccerStrategy: white or black panel mask, circularity scored
- FrequencyStrategy: FFT matched filter against disc templates (experimental)

Coordinates returned are in the pixel space of the frame passed in; the
unified detector maps them back to the host frame.
"""

import logging
import math
import threading
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .calibration import CalibrationProfile, color_mask, enhance_contrast
from .config import BallDetectorConfig, MotionConfig
from .detection import Detection, DetectorKind
from .frames import Frame
from .modes import ModeParameters

logger = logging.getLogger(__name__)

_KERNEL = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (5, 5))

# Colours that are also used for targets
_TARGET_COLORS = ('yellow', 'red')


def circularity(contour: np.ndarray) -> float:
    """4*pi*A / P^2, 1.0 for a perfect circle."""
    area = cv2.contourArea(contour)
    perimeter = cv2.arcLength(contour, True)
    if perimeter <= 0:
        return 0.0
    return min(1.0, 4 * math.pi * area / (perimeter * perimeter))


def local_contrast(gray: np.ndarray, x: float, y: float, radius: float) -> float:
    """
    Mean gray level difference between a disc and the ring around it.

    Returns 0 when the ring falls completely outside the image.
    """
    radius = max(radius, 1.0)
    outer = radius * 2.0
    h, w = gray.shape[:2]
    x0, x1 = max(0, int(x - outer)), min(w, int(x + outer) + 1)
    y0, y1 = max(0, int(y - outer)), min(h, int(y + outer) + 1)
    if x1 <= x0 or y1 <= y0:
        return 0.0
    patch = gray[y0:y1, x0:x1].astype(np.float32)
    yy, xx = np.ogrid[y0:y1, x0:x1]
    d2 = (xx - x) ** 2 + (yy - y) ** 2
    inner = d2 <= (0.8 * radius) ** 2
    ring = (d2 >= (1.2 * radius) ** 2) & (d2 <= outer ** 2)
    if not inner.any() or not ring.any():
        return 0.0
    return float(abs(patch[inner].mean() - patch[ring].mean()))


def clean_mask(mask: np.ndarray) -> np.ndarray:
    mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, _KERNEL)
    return cv2.morphologyEx(mask, cv2.MORPH_CLOSE, _KERNEL)


def find_contours(mask: np.ndarray) -> List[np.ndarray]:
    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    return list(contours)


def centroid(contour: np.ndarray) -> Optional[Tuple[float, float]]:
    m = cv2.moments(contour)
    if m['m00'] == 0:
        return None
    return (m['m10'] / m['m00'], m['m01'] / m['m00'])


def touches_border(contour: np.ndarray, width: int, height: int) -> bool:
    bx, by, bw, bh = cv2.boundingRect(contour)
    return bx <= 0 or by <= 0 or bx + bw >= width or by + bh >= height


class BallStrategy:
    """Common interface of the ball strategies."""

    kind: DetectorKind = None

    def detect(
        self,
        frame: Frame,
        params: ModeParameters,
        profile: CalibrationProfile
    ) -> Optional[Detection]:
        raise NotImplementedError

    def reset(self):
        """Forget any cross-frame state."""
        pass


class ColorStrategy(BallStrategy):
    """Colour mask detection with shape and contrast gates."""

    kind = DetectorKind.COLOR

    def __init__(self, config: Optional[BallDetectorConfig] = None):
        self.config = config or BallDetectorConfig()
        self._lock = threading.Lock()
        self._known_targets: Tuple[Tuple[float, float], ...] = ()

    def set_known_targets(self, centers: Sequence[Tuple[float, float]]):
        """Target centres in host frame pixels; yellow/red blobs near them are ignored."""
        with self._lock:
            self._known_targets = tuple(centers)

    def reset(self):
        self.set_known_targets(())

    def detect(self, frame, params, profile):
        cfg = self.config
        scale = frame.scale
        min_area = cfg.min_ball_area * scale * scale
        max_area = cfg.max_ball_area * scale * scale
        with self._lock:
            targets = [(tx * scale, ty * scale) for tx, ty in self._known_targets]
        exclusion = cfg.target_exclusion_px * scale

        hsv = cv2.cvtColor(enhance_contrast(frame.bgr), cv2.COLOR_BGR2HSV)
        best: Optional[Detection] = None

        for color in cfg.ball_colors:
            bands = profile.ranges(color)
            if not bands:
                continue
            mask = clean_mask(color_mask(hsv, bands))
            for contour in find_contours(mask):
                area = cv2.contourArea(contour)
                if not min_area <= area <= max_area:
                    continue
                _, _, bw, bh = cv2.boundingRect(contour)
                aspect = bw / float(bh) if bh else 0.0
                if not cfg.min_aspect <= aspect <= cfg.max_aspect:
                    continue
                circ = circularity(contour)
                if circ < cfg.min_circularity:
                    continue
                center = centroid(contour)
                if center is None:
                    continue
                cx, cy = center
                if color in _TARGET_COLORS and any(
                    math.hypot(cx - tx, cy - ty) < exclusion for tx, ty in targets
                ):
                    continue
                (_, _), radius = cv2.minEnclosingCircle(contour)
                contrast = local_contrast(frame.gray, cx, cy, radius)
                if contrast < cfg.min_contrast:
                    continue
                contrast_factor = min(1.0, contrast / (4.0 * cfg.min_contrast))
                confidence = min(1.0, 0.4 + 0.6 * circ * contrast_factor)
                if best is None or confidence > best.confidence:
                    best = Detection(cx, cy, confidence, self.kind, radius=radius,
                                     label=color, area=area)
        return best


class ShapeStrategy(BallStrategy):
    """Hough circle candidates, each confirmed by an Otsu contour."""

    kind = DetectorKind.SHAPE

    def __init__(self, config: Optional[BallDetectorConfig] = None):
        self.config = config or BallDetectorConfig()

    def detect(self, frame, params, profile):
        cfg = self.config
        gray = cv2.GaussianBlur(frame.gray, (9, 9), 2)
        min_radius = max(1, int(cfg.min_radius * frame.scale))
        max_radius = max(min_radius + 1, int(cfg.max_radius * frame.scale))

        circles = cv2.HoughCircles(
            gray,
            cv2.HOUGH_GRADIENT,
            dp=params.hough_dp,
            minDist=max(1.0, gray.shape[0] / 6.0),
            param1=cfg.hough_param1,
            param2=cfg.hough_param2,
            minRadius=min_radius,
            maxRadius=max_radius
        )
        if circles is None:
            return None

        best: Optional[Detection] = None
        for x, y, r in circles[0]:
            detection = self._validate(frame.gray, float(x), float(y), float(r))
            if detection and (best is None or detection.confidence > best.confidence):
                best = detection
        return best

    def _validate(self, gray: np.ndarray, x: float, y: float, r: float) -> Optional[Detection]:
        cfg = self.config
        h, w = gray.shape[:2]
        pad = int(r * 1.5) + 2
        x0, x1 = max(0, int(x) - pad), min(w, int(x) + pad + 1)
        y0, y1 = max(0, int(y) - pad), min(h, int(y) + pad + 1)
        roi = gray[y0:y1, x0:x1]
        if roi.size == 0:
            return None

        thresh, binary = cv2.threshold(roi, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        cy_local = min(roi.shape[0] - 1, max(0, int(y) - y0))
        cx_local = min(roi.shape[1] - 1, max(0, int(x) - x0))
        if roi[cy_local, cx_local] < thresh:
            # Dark ball on a lighter surface
            binary = cv2.bitwise_not(binary)

        point = (float(x - x0), float(y - y0))
        for contour in find_contours(binary):
            if cv2.pointPolygonTest(contour, point, False) < 0:
                continue
            circ = circularity(contour)
            if circ < cfg.min_circularity:
                return None
            contrast = local_contrast(gray, x, y, r)
            if contrast < cfg.min_contrast:
                return None
            contrast_factor = min(1.0, contrast / (4.0 * cfg.min_contrast))
            confidence = min(1.0, 0.3 + 0.7 * circ * contrast_factor)
            return Detection(x, y, confidence, self.kind, radius=r,
                             area=float(cv2.contourArea(contour)))
        return None


class MotionStrategy(BallStrategy):
    """
    Moving blob detection.

    A pixel counts as moving when it differs from the previous frame AND
    from the running background, which suppresses the ghost the ball
    leaves at its previous position.
    """

    kind = DetectorKind.MOTION

    def __init__(self, config: Optional[MotionConfig] = None):
        self.config = config or MotionConfig()
        self._lock = threading.Lock()
        self._prev: Optional[np.ndarray] = None
        self._background: Optional[np.ndarray] = None

    def reset(self):
        with self._lock:
            self._prev = None
            self._background = None

    def motion_mask(self, gray: np.ndarray) -> Optional[np.ndarray]:
        """Advance the reference frames and return the motion mask (None on the first frame)."""
        cfg = self.config
        k = cfg.blur_kernel | 1
        blurred = cv2.GaussianBlur(gray, (k, k), 0)
        with self._lock:
            prev, background = self._prev, self._background
            self._prev = blurred
            if prev is None or prev.shape != blurred.shape:
                self._background = blurred.astype(np.float32)
                return None
            frame_diff = cv2.absdiff(blurred, prev)
            background_diff = cv2.absdiff(blurred, cv2.convertScaleAbs(background))
            cv2.accumulateWeighted(blurred, background, cfg.background_alpha)

        _, moving = cv2.threshold(frame_diff, cfg.diff_threshold, 255, cv2.THRESH_BINARY)
        _, foreground = cv2.threshold(background_diff, cfg.diff_threshold, 255, cv2.THRESH_BINARY)
        return clean_mask(cv2.bitwise_and(moving, foreground))

    def detect(self, frame, params, profile):
        cfg = self.config
        mask = self.motion_mask(frame.gray)
        if mask is None:
            return None

        scale2 = frame.scale * frame.scale
        largest = None
        largest_area = 0.0
        for contour in find_contours(mask):
            area = cv2.contourArea(contour)
            if cfg.min_area * scale2 <= area <= cfg.max_area * scale2 and area > largest_area:
                largest, largest_area = contour, area
        if largest is None:
            return None

        center = centroid(largest)
        if center is None:
            return None
        (_, _), radius = cv2.minEnclosingCircle(largest)
        confidence = min(1.0, 1.1 * circularity(largest))
        return Detection(center[0], center[1], confidence, self.kind,
                         radius=radius, area=largest_area)


class SoccerStrategy(BallStrategy):
    """White-or-black panel ball, best area x circularity score wins."""

    kind = DetectorKind.SOCCER

    _WHITE = ((0, 0, 180), (180, 50, 255))
    _BLACK = ((0, 0, 0), (180, 255, 60))

    def __init__(self, config: Optional[BallDetectorConfig] = None):
        self.config = config or BallDetectorConfig()

    def detect(self, frame, params, profile):
        cfg = self.config
        k = cfg.soccer_blur | 1
        hsv = cv2.cvtColor(cv2.GaussianBlur(frame.bgr, (k, k), 0), cv2.COLOR_BGR2HSV)
        mask = color_mask(hsv, [self._WHITE, self._BLACK])
        mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, _KERNEL)

        scale2 = frame.scale * frame.scale
        best = None
        best_score = 0.0
        for contour in find_contours(mask):
            if touches_border(contour, frame.width, frame.height):
                continue
            area = cv2.contourArea(contour)
            if not cfg.soccer_min_area * scale2 <= area <= cfg.soccer_max_area * scale2:
                continue
            circ = circularity(contour)
            if circ < cfg.soccer_min_circularity:
                continue
            score = area * circ
            if score > best_score:
                best, best_score = (contour, area, circ), score
        if best is None:
            return None

        contour, area, circ = best
        center = centroid(contour)
        if center is None:
            return None
        (_, _), radius = cv2.minEnclosingCircle(contour)
        return Detection(center[0], center[1], circ, self.kind, radius=radius,
                         label='soccer', area=area)


class FrequencyStrategy(BallStrategy):
    """
    Matched filter in the frequency domain.

    Normalized cross-correlation of the gray frame with bright disc
    templates, computed with FFTs. Peaks must also pass the contrast and
    circularity gates. Disabled unless enable_frequency_strategy is set.
    """

    kind = DetectorKind.FREQUENCY

    def __init__(self, config: Optional[BallDetectorConfig] = None):
        self.config = config or BallDetectorConfig()

    @staticmethod
    def _template(radius: int) -> np.ndarray:
        size = 2 * radius + 1
        template = np.zeros((size, size), dtype=np.float64)
        cv2.circle(template, (radius, radius), radius, 1.0, -1)
        template -= template.mean()
        norm = np.linalg.norm(template)
        return template / norm if norm > 0 else template

    def _correlate(self, image: np.ndarray, radius: int) -> Optional[Tuple[float, float, float]]:
        """Best (score, x, y) for one template radius."""
        h, w = image.shape
        template = self._template(radius)
        k = template.shape[0]
        if k >= h or k >= w:
            return None

        padded = np.zeros_like(image)
        padded[:k, :k] = template
        corr = np.fft.irfft2(np.fft.rfft2(image) * np.conj(np.fft.rfft2(padded)), s=image.shape)

        # Windowed sums for the normalisation, centred on each pixel
        n = float(k * k)
        sums = cv2.boxFilter(image, -1, (k, k), normalize=False, borderType=cv2.BORDER_CONSTANT)
        sq_sums = cv2.boxFilter(image * image, -1, (k, k), normalize=False, borderType=cv2.BORDER_CONSTANT)
        half = k // 2
        valid_h, valid_w = h - k + 1, w - k + 1
        s1 = sums[half:half + valid_h, half:half + valid_w]
        s2 = sq_sums[half:half + valid_h, half:half + valid_w]
        variance = np.maximum(s2 - s1 * s1 / n, 0.0)
        denom = np.sqrt(variance)
        valid_corr = corr[:valid_h, :valid_w]
        ncc = np.where(denom > 1e-3, valid_corr / np.maximum(denom, 1e-3), 0.0)

        idx = int(np.argmax(ncc))
        py, px = divmod(idx, valid_w)
        return float(ncc[py, px]), float(px + half), float(py + half)

    def detect(self, frame, params, profile):
        cfg = self.config
        image = frame.gray.astype(np.float64)
        best = None
        for base_radius in cfg.frequency_radii:
            radius = max(2, int(round(base_radius * frame.scale)))
            result = self._correlate(image, radius)
            if result and (best is None or result[0] > best[0]):
                best = (result[0], result[1], result[2], radius)
        if best is None:
            return None

        score, x, y, radius = best
        if score < cfg.frequency_min_score:
            return None
        if local_contrast(frame.gray, x, y, radius) < cfg.min_contrast:
            return None
        if self._blob_circularity(frame.gray, x, y, radius) < cfg.min_circularity:
            return None
        return Detection(x, y, min(1.0, score), self.kind, radius=float(radius))

    @staticmethod
    def _blob_circularity(gray: np.ndarray, x: float, y: float, radius: int) -> float:
        h, w = gray.shape[:2]
        pad = radius * 2
        x0, x1 = max(0, int(x) - pad), min(w, int(x) + pad + 1)
        y0, y1 = max(0, int(y) - pad), min(h, int(y) + pad + 1)
        roi = gray[y0:y1, x0:x1]
        if roi.size == 0:
            return 0.0
        _, binary = cv2.threshold(roi, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        point = (float(x - x0), float(y - y0))
        for contour in find_contours(binary):
            if cv2.pointPolygonTest(contour, point, False) >= 0:
                return circularity(contour)
        return 0.0


def build_strategies(
    ball_config: BallDetectorConfig,
    motion_config: MotionConfig
) -> Dict[str, BallStrategy]:
    """All strategies keyed by their kind name."""
    strategies: Dict[str, BallStrategy] = {
        'motion': MotionStrategy(motion_config),
        'color': ColorStrategy(ball_config),
        'shape': ShapeStrategy(ball_config),
        'soccer': SoccerStrategy(ball_config),
    }
    if ball_config.enable_frequency_strategy:
        strategies['frequency'] = FrequencyStrategy(ball_config)
    return strategies
