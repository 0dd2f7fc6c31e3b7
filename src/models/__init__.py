"""
Typed models for the component inspector.

Frame buffers, detections, state enums, the error taxonomy and the
configuration dataclasses shared by every other package.
"""

from .frame import FrameBuffer, PixelFormat
from .detection import Detection, InferenceResult, Verdict
from .status import CoordinatorState, SourceState, TickStatus
from .errors import (
    InspectionError,
    SensorUnavailable,
    TransportFault,
    ConversionError,
    ModelFileError,
    ConfigFileError,
    InferenceFault,
    Cancelled,
)
from .config import (
    Config,
    CameraConfig,
    SimulationConfig,
    DetectionConfig,
    InspectionConfig,
)

__all__ = [
    # Frame
    "FrameBuffer",
    "PixelFormat",
    # Detection
    "Detection",
    "InferenceResult",
    "Verdict",
    # State
    "CoordinatorState",
    "SourceState",
    "TickStatus",
    # Errors
    "InspectionError",
    "SensorUnavailable",
    "TransportFault",
    "ConversionError",
    "ModelFileError",
    "ConfigFileError",
    "InferenceFault",
    "Cancelled",
    # Config
    "Config",
    "CameraConfig",
    "SimulationConfig",
    "DetectionConfig",
    "InspectionConfig",
]
