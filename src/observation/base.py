"""
SensorDriver interface for pluggable imaging sensors.

This defines the contract the FrameSource acquisition loop drives, so the
same loop works with any sensor:
- USB/CSI cameras through OpenCV
- Basler GigE/USB3 cameras through pylon
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from models.config import CameraConfig


@dataclass
class GrabResult:
    """
    One retrieval from the sensor.

    Attributes:
        succeeded: Whether the sensor delivered a complete frame.
        width: Frame width in pixels.
        height: Frame height in pixels.
        pixel_format: Native format string of `payload` (e.g. "BayerRG8").
        payload: Native pixel data, H x W or H x W x C uint8.
        error_code: Sensor error code for failed grabs.
        error_description: Sensor error text for failed grabs.
    """
    succeeded: bool
    width: int = 0
    height: int = 0
    pixel_format: str = ""
    payload: Optional[np.ndarray] = None
    error_code: int = 0
    error_description: str = ""


class SensorDriver(ABC):
    """
    Abstract base class for imaging sensors.

    Lifecycle:
        1. Create instance with config
        2. Call open() to connect
        3. Call negotiate_pixel_format() and start_streaming()
        4. Call retrieve() repeatedly to get frames
        5. Call stop_streaming() and close() to release resources

    Errors:
        open() raises SensorUnavailable when the sensor is absent.
        retrieve() raises TransportFault when the connection is lost.
    """

    def __init__(self, config: CameraConfig):
        self._config = config
        self._is_open = False
        self._is_streaming = False

    @property
    def model_name(self) -> str:
        """Human-readable sensor model name."""
        return type(self).__name__

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def is_streaming(self) -> bool:
        return self._is_streaming

    @abstractmethod
    def open(self) -> None:
        """
        Connect to the sensor.

        Raises:
            SensorUnavailable: If the sensor cannot be found or opened.
        """

    def enable_auto_exposure(self) -> None:
        """Best-effort continuous auto exposure/gain. Default: not supported."""

    @abstractmethod
    def negotiate_pixel_format(self) -> str:
        """Select the streaming pixel format and return its name."""

    @abstractmethod
    def start_streaming(self) -> None:
        """Begin acquisition; frames are then pulled with retrieve()."""

    @abstractmethod
    def retrieve(self, timeout_ms: int) -> Optional[GrabResult]:
        """
        Wait for the next frame.

        Returns:
            A GrabResult, or None if no frame arrived within `timeout_ms`.

        Raises:
            TransportFault: If the sensor connection is unusable.
        """

    @abstractmethod
    def stop_streaming(self) -> None:
        """Stop acquisition. Safe to call when not streaming."""

    @abstractmethod
    def close(self) -> None:
        """
        Release the sensor handle.

        Safe to call multiple times.
        """
