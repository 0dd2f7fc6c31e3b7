"""
OpenCV-based sensor driver.

Supports:
- USB webcams (device_id as int, e.g., 0)
- RTSP/IP cameras and video files (device_id as str)

OpenCV decodes to packed BGR, so format negotiation always settles on BGR8.
Each grab still reports its own channel layout so the converter copes with
backends that hand back single-channel frames.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

import cv2
import numpy as np

from models.config import CameraConfig
from models.errors import SensorUnavailable, TransportFault
from .base import GrabResult, SensorDriver


def _native_format(frame: np.ndarray) -> str:
    channels = 1 if frame.ndim == 2 else frame.shape[2]
    return {1: "Mono8", 3: "BGR8", 4: "BGRA8"}.get(channels, "")


class OpenCVSensor(SensorDriver):
    """
    Sensor driver wrapping cv2.VideoCapture.

    cv2.VideoCapture.read() has no timeout; a failed read counts as a failed
    grab and `max_read_failures` consecutive failures are a transport fault.
    """

    def __init__(self, config: CameraConfig):
        super().__init__(config)
        self._cap: Optional[cv2.VideoCapture] = None
        self._consecutive_failures = 0

    @property
    def device_id(self) -> Union[int, str]:
        return self._config.device_id

    @property
    def model_name(self) -> str:
        return f"OpenCV device {self.device_id}"

    def open(self) -> None:
        """Open the capture device."""
        if self._is_open:
            return

        self._cap = cv2.VideoCapture(self.device_id)
        if not self._cap.isOpened():
            self._cap.release()
            self._cap = None
            raise SensorUnavailable(f"Failed to open camera device {self.device_id}")

        # Only USB cameras take capture properties, not streams/files
        if isinstance(self.device_id, int):
            if self._config.resolution:
                w, h = self._config.resolution
                self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
                self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            if self._config.fps:
                self._cap.set(cv2.CAP_PROP_FPS, self._config.fps)
            self._cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

            logging.info(f"Camera actual settings: {self.get_video_info()}")

        self._is_open = True
        self._consecutive_failures = 0
        logging.info(f"OpenCVSensor opened: device={self.device_id}")

    def enable_auto_exposure(self) -> None:
        if self._cap is None:
            return
        # V4L2 uses 3 for aperture-priority auto; other backends ignore it.
        if not self._cap.set(cv2.CAP_PROP_AUTO_EXPOSURE, 3):
            logging.debug("Auto exposure not supported by this capture backend")

    def negotiate_pixel_format(self) -> str:
        return "BGR8"

    def start_streaming(self) -> None:
        if not self._is_open:
            raise SensorUnavailable("Sensor is not open")
        self._is_streaming = True

    def retrieve(self, timeout_ms: int) -> Optional[GrabResult]:
        if self._cap is None or not self._is_streaming:
            raise TransportFault("Capture device is closed")

        ret, frame = self._cap.read()
        if not ret or frame is None:
            self._consecutive_failures += 1
            if self._consecutive_failures >= self._config.max_read_failures:
                raise TransportFault(
                    f"Too many consecutive read failures ({self._consecutive_failures})"
                )
            return GrabResult(
                succeeded=False,
                error_code=self._consecutive_failures,
                error_description="cv2.VideoCapture.read() returned no frame",
            )

        self._consecutive_failures = 0
        return GrabResult(
            succeeded=True,
            width=frame.shape[1],
            height=frame.shape[0],
            pixel_format=_native_format(frame),
            payload=frame,
        )

    def stop_streaming(self) -> None:
        self._is_streaming = False

    def close(self) -> None:
        """Release the capture device."""
        self._is_streaming = False
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logging.info(f"OpenCVSensor closed: device={self.device_id}")
        self._is_open = False

    def get_video_info(self) -> Dict[str, Any]:
        """Get information about the capture device."""
        if self._cap is None or not self._cap.isOpened():
            return {}

        return {
            "width": int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            "height": int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            "fps": self._cap.get(cv2.CAP_PROP_FPS),
            "fourcc": int(self._cap.get(cv2.CAP_PROP_FOURCC)),
        }
