"""
DetectionEngine: frame in, InferenceResult out.

Stages: letterbox preprocess -> model run -> decode -> per-class NMS.
Cancellation is checked between stages only; a stage in progress runs to
completion.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from models.detection import InferenceResult
from models.errors import Cancelled
from models.frame import FrameBuffer
from .model import DetectionModel
from .postprocess import decode_output, non_max_suppression
from .preprocess import preprocess

NO_MODEL_MESSAGE = "No model loaded"


class DetectionEngine:
    """
    Runs detection against the active model on a bounded worker pool.

    Example:
        engine = DetectionEngine(model, workers=2)
        result = engine.analyze_async(frame).result()
        engine.close()
    """

    def __init__(self, model: DetectionModel, workers: int = 2):
        self._model = model
        self._executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="inference")
        self._cancel = threading.Event()
        self._closed = False

    @property
    def model(self) -> DetectionModel:
        return self._model

    def analyze(self, frame: Optional[FrameBuffer], cancel: Optional[threading.Event] = None) -> InferenceResult:
        """
        Analyse one frame under the model read lock.

        Never raises for analysis failures: they come back as an OK result
        with `error` set. Raises Cancelled when cancellation is observed.
        """
        if frame is None:
            return InferenceResult()
        self._check(cancel)

        with self._model.reading() as loaded:
            if loaded is None:
                return InferenceResult.failed(NO_MODEL_MESSAGE)
            config = loaded.config
            try:
                prepared = preprocess(frame, config.input_width, config.input_height)
                self._check(cancel)

                raw = loaded.run(prepared.tensor)
                self._check(cancel)

                dets = decode_output(
                    raw,
                    prepared.letterbox,
                    config.confidence_threshold,
                    config.class_names,
                    layout=config.output_layout,
                )
                dets = non_max_suppression(dets, config.iou_threshold)
            except Cancelled:
                raise
            except Exception as e:
                logging.warning(f"Analysis failed on frame {frame.frame_index}: {e}")
                return InferenceResult.failed(str(e))

        result = InferenceResult.from_detections(dets, config.confidence_threshold)
        logging.debug(
            f"Frame {frame.frame_index}: {result.verdict.value}, {len(result.detections)} detection(s)"
        )
        return result

    def analyze_async(
        self, frame: Optional[FrameBuffer], cancel: Optional[threading.Event] = None
    ) -> "Future[InferenceResult]":
        if self._closed:
            future: "Future[InferenceResult]" = Future()
            future.set_exception(Cancelled("Engine is closed"))
            return future
        return self._executor.submit(self.analyze, frame, cancel)

    def close(self) -> None:
        """Cancel outstanding work, wait for the model lock, stop the pool."""
        if self._closed:
            return
        self._closed = True
        self._cancel.set()
        self._model.unload()
        self._executor.shutdown(wait=True)
        logging.info("DetectionEngine closed")

    def _check(self, cancel: Optional[threading.Event]) -> None:
        if self._cancel.is_set() or (cancel is not None and cancel.is_set()):
            raise Cancelled()
