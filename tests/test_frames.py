"""
Unit tests for the frame adapter.
"""

import cv2
import numpy as np
import pytest

from bounceback.frames import Frame, UnsupportedFrameFormat, to_canonical


class TestToCanonical:
    """Conversions into the canonical BGR + gray frame."""

    def test_bgr_passthrough(self, ball_frame):
        frame = to_canonical(ball_frame)

        assert isinstance(frame, Frame)
        assert frame.size == (200, 100)
        assert np.array_equal(frame.bgr, ball_frame)
        assert frame.gray.shape == (100, 200)

    def test_gray_input(self):
        gray = np.full((40, 60), 77, dtype=np.uint8)
        frame = to_canonical(gray)

        assert frame.bgr.shape == (40, 60, 3)
        assert np.all(frame.gray == 77)
        assert frame.source_format == 'gray'

    def test_rgba_converted_to_bgr(self):
        rgba = np.zeros((10, 10, 4), dtype=np.uint8)
        rgba[..., 0] = 255  # red
        rgba[..., 3] = 255
        frame = to_canonical(rgba, color_order='rgba')

        assert tuple(frame.bgr[0, 0]) == (0, 0, 255)

    def test_bgra_default_for_four_channels(self):
        bgra = np.zeros((10, 10, 4), dtype=np.uint8)
        bgra[..., 0] = 255  # blue
        frame = to_canonical(bgra)

        assert tuple(frame.bgr[0, 0]) == (255, 0, 0)

    def test_rgb_order(self):
        rgb = np.zeros((5, 5, 3), dtype=np.uint8)
        rgb[..., 0] = 200
        frame = to_canonical(rgb, color_order='RGB')

        assert tuple(frame.bgr[0, 0]) == (0, 0, 200)

    def test_uint16_scaled_to_uint8(self):
        deep = np.full((8, 8), 0xFF00, dtype=np.uint16)
        frame = to_canonical(deep)

        assert frame.gray.dtype == np.uint8
        assert np.all(frame.gray == 0xFF)

    def test_encoded_bytes(self, ball_frame):
        ok, encoded = cv2.imencode('.png', ball_frame)
        assert ok

        frame = to_canonical(encoded.tobytes())

        assert np.array_equal(frame.bgr, ball_frame)

    def test_canonical_frame_returned_unchanged(self, ball_frame):
        frame = to_canonical(ball_frame)

        assert to_canonical(frame) is frame

    def test_idempotent(self, ball_frame):
        assert to_canonical(ball_frame) == to_canonical(ball_frame)

    def test_max_width_downsamples(self, ball_frame):
        frame = to_canonical(ball_frame, max_width=100)

        assert frame.size == (100, 50)
        assert frame.scale == pytest.approx(0.5)


class TestUnsupportedFormats:
    """Inputs the adapter must reject."""

    @pytest.mark.parametrize("bad", [
        None,
        np.zeros((0, 0, 3), dtype=np.uint8),
        np.zeros((10, 10, 3), dtype=np.float32),
        np.zeros((10, 10, 5), dtype=np.uint8),
        np.zeros((2, 10, 10, 3), dtype=np.uint8),
        b"",
        b"definitely not an image",
        "frame.png",
    ])
    def test_rejected(self, bad):
        with pytest.raises(UnsupportedFrameFormat):
            to_canonical(bad)

    def test_wrong_color_order(self, ball_frame):
        with pytest.raises(UnsupportedFrameFormat):
            to_canonical(ball_frame, color_order='rgba')

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            to_canonical(None)


class TestFrame:

    def test_scaled_keeps_cumulative_scale(self, ball_frame):
        frame = to_canonical(ball_frame).scaled(0.5).scaled(0.5)

        assert frame.scale == pytest.approx(0.25)
        assert frame.size == (50, 25)

    def test_scaled_full_size_is_same_frame(self, ball_frame):
        frame = to_canonical(ball_frame)

        assert frame.scaled(1.0) is frame

    def test_hsv(self, ball_frame):
        hsv = to_canonical(ball_frame).hsv()

        assert hsv.shape == (100, 200, 3)
        assert list(hsv[50, 100]) == [0, 0, 255]
        assert list(hsv[5, 5]) == [0, 0, 100]

    def test_crop(self, ball_frame):
        crop = to_canonical(ball_frame).crop(90, 40, 20, 20)

        assert crop.size == (20, 20)
        assert crop.gray[10, 10] == 255
