"""
Observation layer: imaging sensors and the frame acquisition loop.

Each sensor implements the SensorDriver interface; FrameSource drives one
and emits canonical FrameBuffer objects.
"""

from .base import GrabResult, SensorDriver
from .frame_source import FrameSource, create_sensor
from .opencv_source import OpenCVSensor
from .pixel_format import FormatPlan, preferred_sensor_format, select_format
from .pylon_source import PylonSensor
from .synthetic import SyntheticFrameGenerator

__all__ = [
    "GrabResult",
    "SensorDriver",
    "FrameSource",
    "create_sensor",
    "OpenCVSensor",
    "PylonSensor",
    "FormatPlan",
    "preferred_sensor_format",
    "select_format",
    "SyntheticFrameGenerator",
]
