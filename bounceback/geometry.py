"""
Geometry helpers for goal regions.

Regions are axis-aligned rectangles in frame pixel coordinates. They are
passed by value and always clipped to the frame before use.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle (x, y, width, height) in pixels."""
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> 'Region':
        """Build a region from two opposite corners (any order)."""
        left, right = sorted((x1, x2))
        top, bottom = sorted((y1, y2))
        return cls(int(round(left)), int(round(top)),
                   int(round(right - left)), int(round(bottom - top)))

    @classmethod
    def from_tuple(cls, rect) -> 'Region':
        """Accept a Region or any (x, y, w, h) sequence."""
        if isinstance(rect, Region):
            return rect
        x, y, w, h = rect
        return cls(int(x), int(y), int(w), int(h))

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def contains(self, x: float, y: float) -> bool:
        """Point-in-rectangle test, edges inclusive. Empty regions contain nothing."""
        if self.is_empty:
            return False
        return self.x <= x <= self.right and self.y <= y <= self.bottom

    def clip(self, frame_width: int, frame_height: int) -> 'Region':
        """
        Clip to the frame bounds.

        A region lying entirely outside the frame collapses to zero area.
        """
        left = min(max(self.x, 0), frame_width)
        top = min(max(self.y, 0), frame_height)
        right = min(max(self.right, 0), frame_width)
        bottom = min(max(self.bottom, 0), frame_height)
        return Region(left, top, max(0, right - left), max(0, bottom - top))

    def scaled(self, factor: float) -> 'Region':
        return Region(int(round(self.x * factor)), int(round(self.y * factor)),
                      int(round(self.width * factor)), int(round(self.height * factor)))

    def quadrant_of(self, x: float, y: float) -> Optional[int]:
        """
        Goal quadrant of a point.

        1 = top-left, 2 = top-right, 3 = bottom-left, 4 = bottom-right.
        Returns None for points outside the region.
        """
        if not self.contains(x, y):
            return None
        cx, cy = self.center
        if y < cy:
            return 1 if x < cx else 2
        return 3 if x < cx else 4

    def to_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def to_dict(self) -> dict:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


def distance(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    """Euclidean distance between two points."""
    return math.hypot(p1[0] - p2[0], p1[1] - p2[1])
