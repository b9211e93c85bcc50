"""
Shared fixtures: synthetic frames drawn with OpenCV.
"""

import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

# Make the package importable without installation
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from bounceback import TrackingEngine  # noqa: E402

FRAME_W = 200
FRAME_H = 100
BACKGROUND = 100


def blank(width: int = FRAME_W, height: int = FRAME_H, value: int = BACKGROUND) -> np.ndarray:
    """Uniform gray BGR frame."""
    return np.full((height, width, 3), value, dtype=np.uint8)


def with_disc(frame: np.ndarray, center, radius: int, color=(255, 255, 255)) -> np.ndarray:
    """Copy of `frame` with a filled disc."""
    out = frame.copy()
    cv2.circle(out, (int(center[0]), int(center[1])), radius, color, -1)
    return out


@pytest.fixture
def blank_frame():
    return blank()


@pytest.fixture
def ball_frame():
    """White ball, radius 10, at (100, 50)."""
    return with_disc(blank(), (100, 50), 10)


@pytest.fixture
def engine():
    eng = TrackingEngine()
    yield eng
    eng.close()


@pytest.fixture
def target_frame():
    """Yellow and red targets on a 400x300 gray frame."""
    frame = blank(400, 300)
    frame = with_disc(frame, (150, 150), 40, (0, 220, 255))
    frame = with_disc(frame, (280, 150), 40, (0, 0, 220))
    return frame
