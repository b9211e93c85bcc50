"""
Frame adapter.

Turns whatever pixel buffer the host hands over into the canonical
representation every detector works on:
- BGR uint8 colour buffer
- Matching single channel grayscale buffer

Supported inputs:
- numpy arrays: HxW gray, HxWx3 (BGR or RGB), HxWx4 (BGRA or RGBA), uint8 or uint16
- Encoded image bytes (JPEG/PNG/... anything cv2.imdecode reads)
- An already canonical Frame (returned unchanged)
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class UnsupportedFrameFormat(ValueError):
    """Raised when a frame cannot be converted to the canonical format."""
    pass


# Colour orders accepted per channel count
_THREE_CHANNEL_ORDERS = {
    'bgr': None,
    'rgb': cv2.COLOR_RGB2BGR,
}
_FOUR_CHANNEL_ORDERS = {
    'bgra': cv2.COLOR_BGRA2BGR,
    'rgba': cv2.COLOR_RGBA2BGR,
}


@dataclass(frozen=True, eq=False)
class Frame:
    """Canonical frame: BGR + gray buffers, read-only for the duration of a call."""
    bgr: np.ndarray
    gray: np.ndarray
    scale: float = 1.0          # Size relative to the buffer the host passed in
    source_format: str = 'bgr'

    @property
    def width(self) -> int:
        return self.bgr.shape[1]

    @property
    def height(self) -> int:
        return self.bgr.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def hsv(self) -> np.ndarray:
        return cv2.cvtColor(self.bgr, cv2.COLOR_BGR2HSV)

    def scaled(self, factor: float) -> 'Frame':
        """
        Resized copy used for reduced-resolution searches.

        Coordinates found on the copy map back by dividing by `factor`.
        """
        if factor >= 1.0:
            return self
        width = max(1, int(round(self.width * factor)))
        height = max(1, int(round(self.height * factor)))
        bgr = cv2.resize(self.bgr, (width, height), interpolation=cv2.INTER_AREA)
        gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
        return Frame(bgr, gray, self.scale * factor, self.source_format)

    def crop(self, x: int, y: int, width: int, height: int) -> 'Frame':
        bgr = self.bgr[y:y + height, x:x + width]
        gray = self.gray[y:y + height, x:x + width]
        return Frame(bgr, gray, self.scale, self.source_format)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Frame):
            return NotImplemented
        return (self.scale == other.scale
                and np.array_equal(self.bgr, other.bgr)
                and np.array_equal(self.gray, other.gray))

    __hash__ = None


FrameInput = Union[Frame, np.ndarray, bytes, bytearray, memoryview]


def to_canonical(
    frame: FrameInput,
    color_order: Optional[str] = None,
    max_width: Optional[int] = None
) -> Frame:
    """
    Convert a host frame to the canonical BGR/gray representation.

    Args:
        frame: Pixel buffer, encoded image bytes or a canonical Frame.
        color_order: Channel order of colour arrays ('bgr', 'rgb', 'bgra',
            'rgba'). Defaults to BGR/BGRA.
        max_width: Downsample wider frames to this width.

    Returns:
        Canonical Frame.

    Raises:
        UnsupportedFrameFormat: for missing, empty or undecodable input.
    """
    if isinstance(frame, Frame):
        canonical = frame
    else:
        canonical = _convert(frame, color_order)

    if max_width and canonical.width > max_width:
        canonical = canonical.scaled(max_width / canonical.width)
    return canonical


def _convert(frame, color_order: Optional[str]) -> Frame:
    if frame is None:
        raise UnsupportedFrameFormat("frame is None")

    if isinstance(frame, (bytes, bytearray, memoryview)):
        return _decode(bytes(frame))

    if not isinstance(frame, np.ndarray):
        raise UnsupportedFrameFormat(f"unsupported frame type: {type(frame).__name__}")

    if frame.size == 0:
        raise UnsupportedFrameFormat("frame is empty")

    array = _to_uint8(frame)
    order = color_order.lower() if color_order else None

    if array.ndim == 2 or (array.ndim == 3 and array.shape[2] == 1):
        if order not in (None, 'gray'):
            raise UnsupportedFrameFormat(f"colour order '{color_order}' given for a gray frame")
        gray = np.ascontiguousarray(array.reshape(array.shape[0], array.shape[1]))
        bgr = cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)
        return Frame(bgr, gray, source_format='gray')

    if array.ndim != 3:
        raise UnsupportedFrameFormat(f"unsupported frame shape: {frame.shape}")

    channels = array.shape[2]
    if channels == 3:
        order = order or 'bgr'
        if order not in _THREE_CHANNEL_ORDERS:
            raise UnsupportedFrameFormat(f"colour order '{color_order}' invalid for 3 channels")
        code = _THREE_CHANNEL_ORDERS[order]
        bgr = np.ascontiguousarray(array) if code is None else cv2.cvtColor(array, code)
    elif channels == 4:
        order = order or 'bgra'
        if order not in _FOUR_CHANNEL_ORDERS:
            raise UnsupportedFrameFormat(f"colour order '{color_order}' invalid for 4 channels")
        bgr = cv2.cvtColor(np.ascontiguousarray(array), _FOUR_CHANNEL_ORDERS[order])
    else:
        raise UnsupportedFrameFormat(f"unsupported channel count: {channels}")

    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    return Frame(bgr, gray, source_format=order)


def _to_uint8(array: np.ndarray) -> np.ndarray:
    if array.dtype == np.uint8:
        return array
    if array.dtype == np.uint16:
        # Keep the high byte
        return (array >> 8).astype(np.uint8)
    raise UnsupportedFrameFormat(f"unsupported pixel type: {array.dtype}")


def _decode(data: bytes) -> Frame:
    if not data:
        raise UnsupportedFrameFormat("encoded frame is empty")
    buffer = np.frombuffer(data, dtype=np.uint8)
    bgr = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if bgr is None:
        logger.debug("[FrameAdapter] imdecode failed for %d bytes", len(data))
        raise UnsupportedFrameFormat("could not decode image bytes")
    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    return Frame(bgr, gray, source_format='encoded')
