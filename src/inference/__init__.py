"""
Detection pipeline: letterbox preprocessing, ONNX model, decoding and NMS.
"""

from .engine import DetectionEngine
from .model import DetectionModel, LoadedModel, ModelConfig, create_onnx_session, read_class_names
from .postprocess import (
    BOXES_FIRST,
    FEATURES_FIRST,
    compute_iou,
    decode_output,
    non_max_suppression,
)
from .preprocess import Letterbox, Preprocessed, preprocess
from .rwlock import ReadWriteLock

__all__ = [
    "DetectionEngine",
    "DetectionModel",
    "LoadedModel",
    "ModelConfig",
    "create_onnx_session",
    "read_class_names",
    "BOXES_FIRST",
    "FEATURES_FIRST",
    "compute_iou",
    "decode_output",
    "non_max_suppression",
    "Letterbox",
    "Preprocessed",
    "preprocess",
    "ReadWriteLock",
]
