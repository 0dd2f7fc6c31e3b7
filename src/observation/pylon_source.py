"""
Basler pylon sensor driver.

Supports Basler GigE/USB3 cameras via pypylon.

Requirements:
  - pylon runtime installed
  - pypylon installed: pip install pypylon
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from models.config import CameraConfig
from models.errors import SensorUnavailable, TransportFault
from .base import GrabResult, SensorDriver
from .pixel_format import preferred_sensor_format


class PylonSensor(SensorDriver):
    """
    Sensor driver for Basler cameras.

    The driver grabs with the "latest image only" strategy and retrieves
    results itself, so only the newest frame is ever delivered.
    """

    def __init__(self, config: CameraConfig):
        super().__init__(config)
        self._pylon: Any = None
        self._genicam: Any = None
        self._camera: Any = None

    @property
    def model_name(self) -> str:
        if self._camera is None:
            return "Basler camera"
        try:
            return self._camera.GetDeviceInfo().GetModelName()
        except Exception:
            return "Basler camera"

    def open(self) -> None:
        if self._is_open:
            return

        try:
            from pypylon import genicam, pylon  # type: ignore
        except ImportError as e:
            raise SensorUnavailable(
                "pypylon is not available. Install with `pip install pypylon` "
                "or use camera backend 'opencv'."
            ) from e

        self._pylon = pylon
        self._genicam = genicam
        try:
            factory = pylon.TlFactory.GetInstance()
            self._camera = pylon.InstantCamera(factory.CreateFirstDevice())
            self._camera.Open()
        except genicam.GenericException as e:
            self._camera = None
            raise SensorUnavailable(f"No Basler camera found: {e}") from e

        self._is_open = True
        logging.info(f"PylonSensor opened: model={self.model_name}")

    def enable_auto_exposure(self) -> None:
        for node in ("ExposureAuto", "GainAuto"):
            try:
                param = getattr(self._camera, node)
                if param.IsWritable():
                    param.SetValue("Continuous")
            except Exception as e:
                logging.debug(f"{node} could not be enabled: {e}")

    def negotiate_pixel_format(self) -> str:
        param = self._camera.PixelFormat
        try:
            chosen = preferred_sensor_format(param.Symbolics)
            if chosen is not None:
                param.SetValue(chosen)
                logging.info(f"Using PixelFormat: {chosen}")
                return chosen
        except self._genicam.GenericException as e:
            logging.warning(f"Error selecting PixelFormat: {e}")

        current = param.GetValue()
        logging.info(f"Using camera default PixelFormat: {current}")
        return current

    def start_streaming(self) -> None:
        self._camera.StartGrabbing(self._pylon.GrabStrategy_LatestImageOnly)
        self._is_streaming = True

    def retrieve(self, timeout_ms: int) -> Optional[GrabResult]:
        if self._camera is None or not self._camera.IsGrabbing():
            raise TransportFault("Camera is not grabbing")
        try:
            result = self._camera.RetrieveResult(timeout_ms, self._pylon.TimeoutHandling_Return)
        except self._genicam.GenericException as e:
            raise TransportFault(f"Retrieve failed: {e}") from e

        if result is None or not result.IsValid():
            return None

        try:
            if not result.GrabSucceeded():
                return GrabResult(
                    succeeded=False,
                    error_code=result.GetErrorCode(),
                    error_description=result.GetErrorDescription(),
                )
            return GrabResult(
                succeeded=True,
                width=result.GetWidth(),
                height=result.GetHeight(),
                pixel_format=self._camera.PixelFormat.GetValue(),
                payload=result.GetArray(),
            )
        finally:
            result.Release()

    def stop_streaming(self) -> None:
        if self._camera is not None and self._camera.IsGrabbing():
            try:
                self._camera.StopGrabbing()
            except Exception as e:
                logging.warning(f"Error stopping grabbing: {e}")
        self._is_streaming = False

    def close(self) -> None:
        self.stop_streaming()
        if self._camera is not None:
            try:
                if self._camera.IsOpen():
                    self._camera.Close()
            except Exception as e:
                logging.warning(f"Error closing camera: {e}")
            self._camera = None
            logging.info("PylonSensor closed")
        self._is_open = False
