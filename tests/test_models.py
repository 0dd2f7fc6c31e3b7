"""
Tests for the frame, detection and status models.
"""

import numpy as np
import pytest

from models.detection import Detection, InferenceResult, Verdict
from models.frame import FrameBuffer, PixelFormat
from models.status import SourceState


class TestPixelFormat:
    def test_bytes_per_pixel(self):
        assert PixelFormat.MONO8.bytes_per_pixel == 1
        assert PixelFormat.BGR24.bytes_per_pixel == 3
        assert PixelFormat.BGRA32.bytes_per_pixel == 4


class TestFrameBuffer:
    def test_payload_length_must_match_stride(self):
        with pytest.raises(ValueError):
            FrameBuffer(4, 2, 12, PixelFormat.BGR24, b"\x00" * 23)

    def test_stride_below_row_width_rejected(self):
        with pytest.raises(ValueError):
            FrameBuffer(4, 2, 8, PixelFormat.BGR24, b"\x00" * 16)

    def test_padded_stride_sliced_in_view(self):
        rows = np.arange(2 * 8, dtype=np.uint8).reshape(2, 8)
        frame = FrameBuffer(2, 2, 8, PixelFormat.BGR24, rows.tobytes())

        view = frame.as_array()

        assert view.shape == (2, 2, 3)
        assert view[1, 0].tolist() == [8, 9, 10]

    def test_snapshot_is_independent_of_source_array(self):
        image = np.zeros((2, 3), dtype=np.uint8)
        frame = FrameBuffer.from_numpy(image, PixelFormat.MONO8)

        image[:] = 255

        assert not frame.as_array().any()

    def test_view_is_read_only(self):
        frame = FrameBuffer.from_numpy(np.zeros((2, 2, 4), dtype=np.uint8), PixelFormat.BGRA32)

        with pytest.raises(ValueError):
            frame.as_array()[0, 0, 0] = 1

    def test_channel_mismatch_rejected(self):
        with pytest.raises(ValueError):
            FrameBuffer.from_numpy(np.zeros((2, 2, 3), dtype=np.uint8), PixelFormat.BGRA32)


class TestInferenceResult:
    def test_verdict_ng_at_threshold(self):
        dets = [Detection(0, 0, 1, 1, score=0.25)]

        assert InferenceResult.from_detections(dets, 0.25).verdict is Verdict.NG

    def test_verdict_ok_without_detections(self):
        result = InferenceResult.from_detections([], 0.25)

        assert result.verdict is Verdict.OK
        assert result.error is None

    def test_failed_is_ok_with_error(self):
        result = InferenceResult.failed("boom")

        assert result.verdict is Verdict.OK
        assert result.detections == ()
        assert result.to_dict()["error"] == "boom"


class TestDetection:
    def test_geometry(self):
        det = Detection(10, 20, 40, 60, score=0.9, class_id=1, class_name="dent")

        assert det.width == 30
        assert det.height == 40
        assert det.area == 1200
        assert det.as_tuple() == (10, 20, 40, 60)
        assert det.to_dict()["class_name"] == "dent"


class TestSourceState:
    def test_active_states(self):
        assert SourceState.CONNECTING.is_active
        assert SourceState.STREAMING_SIMULATED.is_active
        assert not SourceState.STOPPED.is_active
        assert not SourceState.IDLE.is_active
