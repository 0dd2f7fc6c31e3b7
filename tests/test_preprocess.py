"""
Tests for letterbox preprocessing.
"""

import numpy as np
import pytest

from inference.preprocess import Letterbox, preprocess
from models.frame import FrameBuffer, PixelFormat

from conftest import make_frame


class TestLetterbox:
    def test_wide_frame_padded_vertically(self):
        box = Letterbox.fit(640, 480, 640, 640)

        assert box.ratio == 1.0
        assert (box.pad_x, box.pad_y) == (0, 80)

    def test_downscale(self):
        box = Letterbox.fit(1280, 960, 640, 640)

        assert box.ratio == 0.5
        assert (box.pad_x, box.pad_y) == (0, 80)

    def test_tall_frame_padded_horizontally(self):
        box = Letterbox.fit(300, 600, 640, 640)

        assert box.ratio == pytest.approx(640 / 600)
        assert box.pad_y == 0
        assert box.pad_x == (640 - int(300 * 640 / 600)) // 2

    def test_mapping_round_trip(self):
        box = Letterbox.fit(1280, 720, 640, 640)

        x, y = box.to_source(*box.to_model(123.5, 456.25))

        assert x == pytest.approx(123.5)
        assert y == pytest.approx(456.25)


class TestPreprocess:
    def test_tensor_shape_and_dtype(self, frame):
        out = preprocess(frame, 640, 640)

        assert out.tensor.shape == (1, 3, 640, 640)
        assert out.tensor.dtype == np.float32

    def test_padding_is_zero_and_content_is_exact_at_unit_scale(self):
        frame = make_frame(640, 480, PixelFormat.BGR24, value=255)
        tensor = preprocess(frame, 640, 640).tensor

        assert not tensor[0, :, :80, :].any()
        assert not tensor[0, :, 560:, :].any()
        assert np.allclose(tensor[0, :, 81:559, 1:639], 1.0)

    def test_channels_reordered_to_rgb(self):
        image = np.zeros((4, 4, 3), dtype=np.uint8)
        image[..., 0] = 255  # blue in BGR
        frame = FrameBuffer.from_numpy(image, PixelFormat.BGR24)

        tensor = preprocess(frame, 4, 4).tensor

        assert np.allclose(tensor[0, 2], 1.0)
        assert not tensor[0, 0].any()
        assert not tensor[0, 1].any()

    def test_alpha_dropped(self):
        image = np.zeros((4, 4, 4), dtype=np.uint8)
        image[..., 3] = 255
        frame = FrameBuffer.from_numpy(image, PixelFormat.BGRA32)

        assert not preprocess(frame, 4, 4).tensor.any()

    def test_mono_replicated(self):
        frame = make_frame(8, 8, PixelFormat.MONO8, value=51)
        tensor = preprocess(frame, 8, 8).tensor

        assert np.allclose(tensor, 0.2)

    def test_letterbox_carried(self, frame):
        out = preprocess(frame, 640, 640)

        assert out.letterbox == Letterbox.fit(640, 480, 640, 640)
