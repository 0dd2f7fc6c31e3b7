"""
InspectionCoordinator: turns timer ticks into at most one analysis at a time.

The acquisition side only swaps the latest-frame reference; each tick takes
whatever frame is latest, so frames that arrive during an analysis are never
queued.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from models.config import DetectionConfig, InspectionConfig
from models.detection import Detection, InferenceResult, Verdict
from models.errors import Cancelled, InspectionError
from models.frame import FrameBuffer
from models.status import CoordinatorState, TickStatus
from inference.engine import DetectionEngine
from .events import RESULT_READY, EventDispatcher

WAITING_MESSAGE = "Waiting for camera frames..."
LOADING_MESSAGE = "Loading model..."


@dataclass(frozen=True)
class TickOutcome:
    """What one tick did; `verdict` is set only for ANALYZED ticks."""
    status: TickStatus
    verdict: Optional[Verdict] = None
    detections: Tuple[Detection, ...] = ()
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def detection_count(self) -> int:
        return len(self.detections)


@dataclass(frozen=True)
class InspectionLogEntry:
    timestamp: float
    item_name: str
    result: InferenceResult

    def to_dict(self) -> Dict[str, Any]:
        d = {"timestamp": self.timestamp, "item_name": self.item_name}
        d.update(self.result.to_dict())
        return d


def _completed(outcome: TickOutcome) -> "Future[TickOutcome]":
    future: "Future[TickOutcome]" = Future()
    future.set_result(outcome)
    return future


class InspectionCoordinator:
    """
    Single-flight inspection driver.

    Example:
        coordinator = InspectionCoordinator(engine, config.inspection, config.detection, dispatcher)
        source.subscribe_frames(coordinator.on_frame)
        outcome = coordinator.tick().result()
    """

    def __init__(
        self,
        engine: DetectionEngine,
        inspection_config: InspectionConfig,
        detection_config: DetectionConfig,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self._engine = engine
        self._inspection = inspection_config
        self._detection = detection_config
        self._dispatcher = dispatcher

        self._lock = threading.Lock()
        self._state = CoordinatorState.IDLE
        self._latest: Optional[FrameBuffer] = None
        self._cancel = threading.Event()
        self._log: Deque[InspectionLogEntry] = deque(maxlen=max(1, inspection_config.log_capacity))
        self._loader = ThreadPoolExecutor(max_workers=1, thread_name_prefix="model-loader")
        self._last_load_error: Optional[str] = None
        self.item_name = inspection_config.item_name

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def latest_frame(self) -> Optional[FrameBuffer]:
        return self._latest

    def on_frame(self, frame: FrameBuffer) -> None:
        self._latest = frame

    def subscribe_results(self, callback: Callable[[InspectionLogEntry], None]) -> Callable[[], None]:
        if self._dispatcher is None:
            raise RuntimeError("Coordinator has no event dispatcher")
        return self._dispatcher.subscribe(RESULT_READY, callback)

    def log_entries(self) -> List[InspectionLogEntry]:
        with self._lock:
            return list(self._log)

    def clear_log(self) -> None:
        with self._lock:
            self._log.clear()

    def tick(self) -> "Future[TickOutcome]":
        """
        Start one inspection step.

        Always returns a Future; it is already completed when the tick had
        nothing to do.
        """
        with self._lock:
            if self._cancel.is_set():
                return _completed(TickOutcome(TickStatus.CANCELLED))
            if self._state is CoordinatorState.ANALYZING:
                return _completed(TickOutcome(TickStatus.SKIPPED))
            frame = self._latest
            if frame is None:
                return _completed(TickOutcome(TickStatus.WAITING, message=WAITING_MESSAGE))

            outcome: "Future[TickOutcome]" = Future()
            self._state = CoordinatorState.ANALYZING
            if not self._engine.model.is_loaded:
                self._loader.submit(self._lazy_load, outcome)
                return outcome
            item_name = self.item_name

        try:
            inner = self._engine.analyze_async(frame, self._cancel)
        except RuntimeError as e:
            # Pool already shut down
            self._set_idle()
            outcome.set_result(TickOutcome(TickStatus.CANCELLED, message=str(e)))
            return outcome
        inner.add_done_callback(lambda f: self._finish(f, outcome, item_name))
        return outcome

    def close(self) -> None:
        """Cancel the in-flight analysis and stop the loader."""
        self._cancel.set()
        self._loader.shutdown(wait=True)

    def _lazy_load(self, outcome: "Future[TickOutcome]") -> None:
        error = None
        try:
            self._engine.model.load(self._detection.model_path, self._detection.names_path)
            self._last_load_error = None
        except InspectionError as e:
            error = str(e)
            self._report_load_failure(error)
        except Exception as e:
            error = f"Unexpected error loading model: {e}"
            self._report_load_failure(error)
        finally:
            self._set_idle()
        outcome.set_result(TickOutcome(TickStatus.NO_MODEL, error=error, message=LOADING_MESSAGE))

    def _report_load_failure(self, error: str) -> None:
        # Retried every tick until the files are staged; log each distinct failure once.
        if error != self._last_load_error:
            logging.error(f"Model load failed: {error}")
        else:
            logging.debug(f"Model load failed again: {error}")
        self._last_load_error = error

    def _finish(self, inner: "Future[InferenceResult]", outcome: "Future[TickOutcome]", item_name: str) -> None:
        try:
            result = inner.result()
        except Cancelled:
            logging.debug("Inspection cancelled")
            self._set_idle()
            outcome.set_result(TickOutcome(TickStatus.CANCELLED))
            return
        except Exception as e:
            logging.warning(f"Inspection error: {e}")
            result = InferenceResult.failed(str(e))

        entry = InspectionLogEntry(timestamp=time.time(), item_name=item_name, result=result)
        with self._lock:
            self._log.append(entry)
            self._state = CoordinatorState.IDLE
        if self._dispatcher is not None:
            self._dispatcher.publish(RESULT_READY, entry)

        logging.info(
            f"[{item_name}] {result.verdict.value}: {len(result.detections)} detection(s)"
            + (f" (error: {result.error})" if result.error else "")
        )
        outcome.set_result(
            TickOutcome(
                status=TickStatus.ANALYZED,
                verdict=result.verdict,
                detections=result.detections,
                error=result.error,
            )
        )

    def _set_idle(self) -> None:
        with self._lock:
            self._state = CoordinatorState.IDLE
