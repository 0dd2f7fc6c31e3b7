"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import time

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from models.frame import FrameBuffer, PixelFormat


def wait_for(predicate, timeout=3.0, interval=0.01):
    """Poll `predicate` until it is truthy or the timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


class FakeNode:
    """Stands in for an onnxruntime NodeArg."""

    def __init__(self, name, shape):
        self.name = name
        self.shape = shape


class FakeSession:
    """Minimal InferenceSession replacement returning a fixed output."""

    def __init__(self, output, input_shape=None, output_shape=None):
        self.output = np.asarray(output, dtype=np.float32)
        self.input_shape = input_shape if input_shape is not None else [1, 3, 640, 640]
        self.output_shape = output_shape if output_shape is not None else list(self.output.shape)
        self.calls = 0
        self.last_tensor = None

    def get_inputs(self):
        return [FakeNode("images", self.input_shape)]

    def get_outputs(self):
        return [FakeNode("output0", self.output_shape)]

    def run(self, output_names, feeds):
        self.calls += 1
        self.last_tensor = feeds["images"]
        return [self.output]


def box_output(boxes, class_count=1):
    """
    Build a [1, F, N] output from (cx, cy, w, h, conf, class_id) rows.

    The class score channel of `class_id` carries `conf`.
    """
    features = 5 + class_count
    out = np.zeros((1, features, max(1, len(boxes))), dtype=np.float32)
    for i, (cx, cy, w, h, conf, class_id) in enumerate(boxes):
        out[0, :5, i] = (cx, cy, w, h, conf)
        out[0, 5 + class_id, i] = conf
    return out


def make_frame(width=640, height=480, pixel_format=PixelFormat.BGR24, value=128, frame_index=1):
    channels = pixel_format.channels
    shape = (height, width) if channels == 1 else (height, width, channels)
    image = np.full(shape, value, dtype=np.uint8)
    return FrameBuffer.from_numpy(image, pixel_format, timestamp=time.time(), frame_index=frame_index)


@pytest.fixture
def frame():
    return make_frame()


@pytest.fixture
def model_files(tmp_path):
    """An empty stand-in model file and a one-class names file."""
    model_path = tmp_path / "model.onnx"
    model_path.write_bytes(b"onnx")
    names_path = tmp_path / "names.yaml"
    names_path.write_text("names:\n  - scratch\n")
    return str(model_path), str(names_path)


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
camera:
  backend: "opencv"
  device_id: 0
  retrieve_timeout_ms: 5000

detection:
  model_path: "model.onnx"
  names_path: "names.yaml"
  conf_threshold: 0.25
  iou_threshold: 0.45

inspection:
  interval_ms: 500
  item_name: "Unknown"

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "camera": {
            "backend": "simulated",
            "device_id": 0,
            "retrieve_timeout_ms": 5000,
            "simulation": {"width": 64, "height": 48, "interval_ms": 10},
        },
        "detection": {
            "model_path": "model.onnx",
            "names_path": "names.yaml",
            "conf_threshold": 0.25,
            "iou_threshold": 0.45,
            "input_size": [640, 640],
            "workers": 2,
        },
        "inspection": {
            "interval_ms": 500,
            "item_name": "Connector A",
            "log_capacity": 10,
            "model_dir": "models",
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
