"""
Target detector.

Finds the stationary coloured targets (yellow / red discs) inside the
goal region. Hough circles on a contrast enhanced crop come first and a
contour search on the colour masks adds any target they missed. The
pink tape marking the goal frame is located as a bonus and reported
as `tape_region`.
"""

import logging
from typing import List, Optional

import cv2
import numpy as np

from .calibration import CalibrationProfile, color_mask, enhance_contrast
from .config import TargetDetectorConfig
from .detection import Detection, DetectorKind, TargetSet
from .frames import Frame
from .geometry import Region
from .strategies import circularity, clean_mask, find_contours

logger = logging.getLogger(__name__)


class TargetDetector:
    """Detects targets inside a goal region."""

    def __init__(self, config: Optional[TargetDetectorConfig] = None):
        self.config = config or TargetDetectorConfig()

    def detect(self, frame: Frame, goal_region: Region, profile: CalibrationProfile) -> TargetSet:
        """
        Detect targets in the goal region.

        Args:
            frame: Canonical frame.
            goal_region: Region in host frame pixels; clipped to the frame.
            profile: Calibration profile supplying the colour ranges.

        Returns:
            TargetSet ordered by confidence; empty for an empty region.
        """
        scale = frame.scale
        host_w = int(round(frame.width / scale))
        host_h = int(round(frame.height / scale))
        region = Region.from_tuple(goal_region).clip(host_w, host_h)
        region_px = region.scaled(scale).clip(frame.width, frame.height)
        if region.is_empty or region_px.is_empty:
            return TargetSet.empty(region)

        crop = frame.crop(*region_px.to_tuple())
        enhanced = enhance_contrast(crop.bgr)
        hsv = cv2.cvtColor(enhanced, cv2.COLOR_BGR2HSV)
        gray = cv2.cvtColor(enhanced, cv2.COLOR_BGR2GRAY)
        masks = {
            color: color_mask(hsv, profile.ranges(color))
            for color in self.config.target_colors
        }

        found = self._detect_hough(gray, masks, scale)
        # Contours fill in targets the circle transform missed
        for det in self._detect_contours(masks, scale):
            if not any(_overlaps(det, other) for other in found):
                found.append(det)

        targets = []
        for det in found:
            x = (det.x + region_px.x) / scale
            y = (det.y + region_px.y) / scale
            # Centre must lie inside the goal region
            if not region.contains(x, y):
                continue
            bbox = None
            if det.bbox is not None:
                bx, by, bw, bh = det.bbox
                bbox = (int(round((bx + region_px.x) / scale)), int(round((by + region_px.y) / scale)),
                        int(round(bw / scale)), int(round(bh / scale)))
            targets.append(det.with_fields(x=x, y=y, radius=det.radius / scale, bbox=bbox))

        targets.sort(key=lambda d: d.confidence, reverse=True)
        targets = targets[:self.config.max_targets]
        tape = self.detect_tape(frame, profile)
        if targets:
            logger.debug("[TargetDetector] %d target(s) in %s", len(targets), region.to_tuple())
        return TargetSet.ranked(targets, region, tape)

    def _detect_hough(self, gray: np.ndarray, masks: dict, scale: float) -> List[Detection]:
        cfg = self.config
        k = cfg.blur_kernel | 1
        blurred = cv2.GaussianBlur(gray, (k, k), 0)
        min_radius = max(1, int(cfg.min_radius * scale))
        max_radius = max(min_radius + 1, int(cfg.max_radius * scale))

        circles = cv2.HoughCircles(
            blurred,
            cv2.HOUGH_GRADIENT,
            dp=1,
            minDist=float(min_radius * 2),
            param1=cfg.hough_param1,
            param2=cfg.hough_param2,
            minRadius=min_radius,
            maxRadius=max_radius
        )
        if circles is None:
            return []

        found = []
        for x, y, r in circles[0]:
            disc = np.zeros(gray.shape, dtype=np.uint8)
            cv2.circle(disc, (int(round(x)), int(round(y))), int(round(r)), 255, -1)
            disc_px = cv2.countNonZero(disc)
            if disc_px == 0:
                continue
            best_color, best_fill = None, 0.0
            for color, mask in masks.items():
                fill = cv2.countNonZero(cv2.bitwise_and(mask, disc)) / float(disc_px)
                if fill > best_fill:
                    best_color, best_fill = color, fill
            if best_color is None or best_fill < cfg.min_color_fill:
                continue
            confidence = min(1.0, 0.5 + 0.5 * best_fill)
            found.append(Detection(float(x), float(y), confidence, DetectorKind.TARGET,
                                   radius=float(r), label=best_color))
        return found

    def _detect_contours(self, masks: dict, scale: float) -> List[Detection]:
        cfg = self.config
        min_area = cfg.contour_min_area * scale * scale
        max_area = cfg.contour_max_area * scale * scale

        found = []
        for color, mask in masks.items():
            cleaned = clean_mask(mask)
            for contour in find_contours(cleaned):
                area = cv2.contourArea(contour)
                if not min_area <= area <= max_area:
                    continue
                bx, by, bw, bh = cv2.boundingRect(contour)
                aspect = bw / float(bh) if bh else 0.0
                if not 0.9 <= aspect <= 1.1:
                    continue
                # Solid discs only, outlines enclose mostly other colours
                solid = cv2.countNonZero(cleaned[by:by + bh, bx:bx + bw]) / area
                if solid < 0.7:
                    continue
                (cx, cy), radius = cv2.minEnclosingCircle(contour)
                confidence = min(1.0, 0.3 + 0.6 * circularity(contour))
                found.append(Detection(float(cx), float(cy), confidence, DetectorKind.TARGET,
                                       radius=float(radius), label=color, area=float(area),
                                       bbox=(bx, by, bw, bh)))
        return found

    def detect_tape(self, frame: Frame, profile: CalibrationProfile) -> Optional[Region]:
        """Bounding box (host pixels) of the pink goal tape, if visible."""
        bands = profile.ranges('pink')
        if not bands:
            return None
        scale = frame.scale
        hsv = frame.hsv()
        mask = clean_mask(color_mask(hsv, bands))
        contours = [c for c in find_contours(mask) if cv2.contourArea(c) > 50 * scale * scale]
        if not contours:
            return None
        hull = cv2.convexHull(np.vstack(contours))
        if cv2.contourArea(hull) <= self.config.tape_min_area * scale * scale:
            return None
        x, y, w, h = cv2.boundingRect(hull)
        return Region(int(round(x / scale)), int(round(y / scale)),
                      int(round(w / scale)), int(round(h / scale)))


def _overlaps(a: Detection, b: Detection) -> bool:
    reach = max(a.radius or 0.0, b.radius or 0.0)
    return (a.x - b.x) ** 2 + (a.y - b.y) ** 2 <= reach * reach
