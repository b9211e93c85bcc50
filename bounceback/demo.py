"""
Synthetic training scene.

Renders a goal framed with pink tape, a yellow and a red target and a
white ball that travels to the yellow target, rests on it for a few
frames and rolls back out. Used by the demo driver when no video source
is attached.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

import cv2
import numpy as np

from .geometry import Region

# BGR colours
BACKGROUND = (40, 90, 40)
TAPE = (230, 50, 255)
YELLOW = (0, 220, 255)
RED = (0, 0, 220)
WHITE = (255, 255, 255)


@dataclass
class SceneTarget:
    x: int
    y: int
    radius: int
    color: Tuple[int, int, int]


@dataclass
class DemoScene:
    """Deterministic scene generator."""
    width: int = 640
    height: int = 360
    goal: Region = field(default_factory=lambda: Region(380, 60, 220, 220))
    targets: List[SceneTarget] = field(default_factory=lambda: [
        SceneTarget(440, 120, 35, YELLOW),
        SceneTarget(540, 220, 35, RED),
    ])
    ball_radius: int = 12
    ball_start: Tuple[int, int] = (60, 300)
    travel_frames: int = 20
    rest_frames: int = 3
    noise: float = 3.0
    seed: int = 7

    def __post_init__(self):
        self._rng = np.random.default_rng(self.seed)

    @property
    def period(self) -> int:
        return 2 * self.travel_frames + self.rest_frames

    def ball_position(self, index: int) -> Tuple[float, float]:
        """Ball centre for a frame, cycling through travel in / rest / travel out."""
        target = self.targets[0]
        sx, sy = self.ball_start
        phase = index % self.period
        if phase < self.travel_frames:
            t = phase / float(self.travel_frames)
        elif phase < self.travel_frames + self.rest_frames:
            t = 1.0
        else:
            t = 1.0 - (phase - self.travel_frames - self.rest_frames) / float(self.travel_frames)
        return (sx + (target.x - sx) * t, sy + (target.y - sy) * t)

    def render(self, index: int) -> np.ndarray:
        frame = np.full((self.height, self.width, 3), BACKGROUND, dtype=np.uint8)
        g = self.goal
        cv2.rectangle(frame, (g.x, g.y), (g.right, g.bottom), TAPE, 6)
        for target in self.targets:
            cv2.circle(frame, (target.x, target.y), target.radius, target.color, -1)

        x, y = self.ball_position(index)
        cv2.circle(frame, (int(round(x)), int(round(y))), self.ball_radius, WHITE, -1)

        if self.noise > 0:
            noise = self._rng.normal(0, self.noise, frame.shape)
            frame = np.clip(frame.astype(np.float32) + noise, 0, 255).astype(np.uint8)
        return frame
