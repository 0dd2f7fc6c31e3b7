"""
FrameSource: sensor acquisition loop with fallback to simulation.

One daemon thread per started source drives the sensor:

    IDLE/STOPPED --start()--> CONNECTING --ok--> STREAMING_REAL
                                  |                    |
                       sensor/transport fault   transport fault
                                  v                    v
                           STREAMING_SIMULATED <-------+
    any active state --stop()--> STOPPING --> STOPPED

Frames, status text and advisory errors go out through an EventDispatcher
so the loop never blocks on a subscriber.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import numpy as np

from models.config import CameraConfig
from models.errors import Cancelled, ConversionError, SensorUnavailable, TransportFault
from models.frame import FrameBuffer, PixelFormat
from models.status import SourceState
from runtime.events import (
    ERROR_OCCURRED,
    FRAME_RECEIVED,
    STATUS_CHANGED,
    EventDispatcher,
)
from .base import SensorDriver
from .convert import BufferPool, convert_payload
from .opencv_source import OpenCVSensor
from .pixel_format import select_format
from .pylon_source import PylonSensor
from .synthetic import SyntheticFrameGenerator

SensorFactory = Callable[[], Optional[SensorDriver]]

EMPTY_CHECK_BYTES = 1000
RETRIEVE_ERROR_BACKOFF_S = 0.05


def create_sensor(config: CameraConfig) -> Optional[SensorDriver]:
    """
    Build the sensor driver named by `camera.backend`.

    Returns None for the "simulated" backend.
    """
    backend = config.backend
    if backend == "opencv":
        return OpenCVSensor(config)
    if backend == "pylon":
        return PylonSensor(config)
    if backend == "simulated":
        return None
    raise SensorUnavailable(f"Unknown camera backend '{backend}'")


class FrameSource:
    """
    Owns the sensor connection and emits FrameBuffer events.

    Example:
        source = FrameSource(CameraConfig(backend="opencv", device_id=0))
        source.subscribe_frames(on_frame)
        source.start()
        ...
        source.stop()
    """

    def __init__(
        self,
        config: CameraConfig,
        sensor_factory: Optional[SensorFactory] = None,
        dispatcher: Optional[EventDispatcher] = None,
        source_id: str = "camera",
    ):
        self._config = config
        self._sensor_factory = sensor_factory or (lambda: create_sensor(config))
        self._owns_dispatcher = dispatcher is None
        self._dispatcher = dispatcher or EventDispatcher(name="frame-source")
        self._source_id = source_id

        self._state = SourceState.IDLE
        self._state_lock = threading.RLock()
        self._cancel: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

        self._sensor: Optional[SensorDriver] = None
        self._sensor_lock = threading.Lock()
        self._retrieve_lock = threading.Lock()

        self._pool = BufferPool()
        self._frame_index = 0
        self._empty_reported = False

    @property
    def state(self) -> SourceState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state in (SourceState.STREAMING_REAL, SourceState.STREAMING_SIMULATED)

    @property
    def is_simulated(self) -> bool:
        return self._state is SourceState.STREAMING_SIMULATED

    @property
    def frames_emitted(self) -> int:
        return self._frame_index

    def subscribe_frames(self, callback: Callable[[FrameBuffer], None]) -> Callable[[], None]:
        return self._dispatcher.subscribe(FRAME_RECEIVED, callback)

    def subscribe_status(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self._dispatcher.subscribe(STATUS_CHANGED, callback)

    def subscribe_errors(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self._dispatcher.subscribe(ERROR_OCCURRED, callback)

    def start(self) -> None:
        """Spawn the acquisition loop and return immediately."""
        with self._state_lock:
            if self._state.is_active:
                return
            if self._thread is not None and self._thread.is_alive():
                logging.warning("Previous acquisition loop is still shutting down; start ignored")
                return
            cancel = threading.Event()
            self._cancel = cancel
            self._empty_reported = False
            self._state = SourceState.CONNECTING
            self._thread = threading.Thread(
                target=self._drive,
                args=(cancel,),
                name=f"{self._source_id}-acquisition",
                daemon=True,
            )
            self._thread.start()
        logging.info(f"FrameSource started: source_id={self._source_id}, backend={self._config.backend}")

    def stop(self, grace_period: Optional[float] = None) -> None:
        """
        Cancel the loop, wait up to the grace period, then release the sensor.

        The sensor is released even if the loop does not exit in time.
        """
        grace = self._config.stop_grace_period_s if grace_period is None else grace_period
        with self._state_lock:
            thread = self._thread
            if self._cancel is not None:
                self._cancel.set()
            if not self._state.is_active and (thread is None or not thread.is_alive()):
                self._release_sensor()
                return
            self._state = SourceState.STOPPING

        if thread is not None and thread is not threading.current_thread():
            thread.join(grace)
            if thread.is_alive():
                logging.warning(
                    f"Acquisition loop did not exit within {grace}s; releasing sensor anyway"
                )

        self._release_sensor()
        with self._state_lock:
            self._state = SourceState.STOPPED
        self._publish_status("Stopped.")
        logging.info(f"FrameSource stopped: source_id={self._source_id}")

    def close(self) -> None:
        """Stop and shut down the dispatcher if this source created it."""
        self.stop()
        if self._owns_dispatcher:
            self._dispatcher.close()

    def __enter__(self) -> "FrameSource":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --- acquisition loop ---

    def _drive(self, cancel: threading.Event) -> None:
        try:
            if self._config.backend == "simulated":
                self._run_simulation(cancel)
                return

            fault = self._run_sensor(cancel)
            if fault is None or cancel.is_set():
                return

            logging.warning(f"Camera init failed: {fault}. Switching to simulation mode.")
            self._publish_status("Camera not found. Switching to Simulation Mode.")
            self._publish_error(f"Camera Error: {fault}")
            self._run_simulation(cancel)
        except Cancelled:
            logging.debug("Acquisition loop cancelled")
        finally:
            self._release_sensor()
            self._pool.clear()
            with self._state_lock:
                if not cancel.is_set():
                    self._state = SourceState.STOPPED
            logging.info("Acquisition loop exited")

    def _run_sensor(self, cancel: threading.Event) -> Optional[Exception]:
        """Run the real-sensor loop; return the fault that ended it, if any."""
        try:
            sensor = self._sensor_factory()
            if sensor is None:
                raise SensorUnavailable("No sensor configured")
            with self._sensor_lock:
                self._sensor = sensor
            self._stream(sensor, cancel)
        except Cancelled:
            raise
        except (SensorUnavailable, TransportFault) as e:
            return e
        except Exception as e:
            logging.error(f"Unexpected sensor error: {e}")
            return e
        finally:
            self._release_sensor()

        if not cancel.is_set():
            self._publish_status("Sensor stream ended.")
        return None

    def _stream(self, sensor: SensorDriver, cancel: threading.Event) -> None:
        sensor.open()
        if self._config.auto_exposure:
            try:
                sensor.enable_auto_exposure()
            except Exception as e:
                logging.warning(f"AutoExposure/Gain enable failed: {e}")

        native = sensor.negotiate_pixel_format()
        plan = select_format(native)
        self._publish_status(f"Connected: {sensor.model_name} (PixelFormat: {native})")
        logging.info(
            f"Pixel format {native or 'unknown'} -> {plan.converter_target} "
            f"({plan.pixel_format.value}, {plan.bytes_per_pixel} B/px)"
        )

        sensor.start_streaming()
        self._enter_streaming(SourceState.STREAMING_REAL, cancel)

        while not cancel.is_set() and sensor.is_streaming:
            if not self._acquire_retriever(cancel):
                break
            try:
                grab = sensor.retrieve(self._config.retrieve_timeout_ms)
                if grab is None:
                    continue
                if not grab.succeeded:
                    logging.debug(f"Grab failed: {grab.error_code} {grab.error_description}")
                    continue
                try:
                    converted = convert_payload(
                        grab.payload, grab.pixel_format or plan.sensor_format, plan, self._pool
                    )
                except ConversionError as e:
                    logging.warning(f"Convert error: {e}")
                    self._publish_error(f"Convert error: {e}")
                    continue
                self._emit(converted, plan.pixel_format)
            except (Cancelled, TransportFault):
                raise
            except Exception as e:
                logging.warning(f"Retrieve error: {e}")
                self._publish_error(f"Retrieve error: {e}")
                cancel.wait(RETRIEVE_ERROR_BACKOFF_S)
            finally:
                self._retrieve_lock.release()

    def _run_simulation(self, cancel: threading.Event) -> None:
        self._enter_streaming(SourceState.STREAMING_SIMULATED, cancel)
        self._publish_status("Running Simulation (No Camera)")
        generator = SyntheticFrameGenerator(
            self._config.simulation, source_id=f"{self._source_id}-sim"
        )
        while not cancel.wait(generator.interval_s):
            frame = generator.next_frame()
            self._frame_index += 1
            self._dispatcher.publish(FRAME_RECEIVED, frame)

    def _emit(self, converted: np.ndarray, pixel_format: PixelFormat) -> None:
        if not converted.reshape(-1)[:EMPTY_CHECK_BYTES].any():
            if not self._empty_reported:
                self._empty_reported = True
                logging.warning("Buffer appears all zeros. Check exposure/lighting.")
                self._publish_error("Frame appears empty (all zeros). Check exposure/lighting.")
        else:
            self._empty_reported = False

        self._frame_index += 1
        frame = FrameBuffer.from_numpy(
            converted,
            pixel_format,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self._source_id,
        )
        self._dispatcher.publish(FRAME_RECEIVED, frame)

    # --- helpers ---

    def _enter_streaming(self, state: SourceState, cancel: threading.Event) -> None:
        with self._state_lock:
            if cancel.is_set():
                raise Cancelled()
            self._state = state
        logging.info(f"FrameSource state: {state.value}")

    def _acquire_retriever(self, cancel: threading.Event) -> bool:
        """Take the single-retriever token; False if cancelled while waiting."""
        while not cancel.is_set():
            if self._retrieve_lock.acquire(timeout=0.1):
                return True
        return False

    def _release_sensor(self) -> None:
        with self._sensor_lock:
            sensor, self._sensor = self._sensor, None
        if sensor is None:
            return
        try:
            sensor.stop_streaming()
        except Exception as e:
            logging.warning(f"Error stopping sensor stream: {e}")
        try:
            sensor.close()
        except Exception as e:
            logging.warning(f"Error closing sensor: {e}")

    def _publish_status(self, message: str) -> None:
        self._dispatcher.publish(STATUS_CHANGED, message)

    def _publish_error(self, message: str) -> None:
        self._dispatcher.publish(ERROR_OCCURRED, message)
