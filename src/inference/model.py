"""
DetectionModel: owns the ONNX runtime session and its class names.

The active model is swapped wholesale under a writer-preferring lock, so an
analysis either sees the old model from start to finish or the new one.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import yaml

from models.config import DetectionConfig
from models.errors import ConfigFileError, ModelFileError
from .postprocess import layout_from_shape
from .rwlock import ReadWriteLock

SessionFactory = Callable[[str, Optional[List[str]]], Any]


def create_onnx_session(model_path: str, providers: Optional[List[str]] = None):
    """Open an onnxruntime InferenceSession on the requested providers."""
    import onnxruntime as ort

    available = ort.get_available_providers()
    chosen = [p for p in (providers or ["CPUExecutionProvider"]) if p in available]
    if not chosen:
        chosen = ["CPUExecutionProvider"]
    return ort.InferenceSession(model_path, providers=chosen)


def _clean_name(value: Any) -> str:
    return str(value).strip().strip("'\"")


def read_class_names(names_path: str) -> Tuple[str, ...]:
    """
    Read class names from a YAML file with a `names` key.

    `names` may be a sequence or an {index: name} mapping.

    Raises:
        ConfigFileError: If the file is missing or malformed.
    """
    if not names_path or not os.path.isfile(names_path):
        raise ConfigFileError(f"Class-name file not found: {names_path}")
    try:
        with open(names_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(f"Cannot parse class-name file {names_path}: {e}") from e

    if not isinstance(data, dict) or "names" not in data:
        raise ConfigFileError(f"Class-name file {names_path} has no 'names' entry")

    names = data["names"]
    if isinstance(names, dict):
        try:
            ordered = sorted(names.items(), key=lambda kv: int(kv[0]))
        except (TypeError, ValueError) as e:
            raise ConfigFileError(f"Class indices in {names_path} must be integers") from e
        return tuple(_clean_name(v) for _, v in ordered)
    if isinstance(names, list):
        return tuple(_clean_name(v) for v in names)
    raise ConfigFileError(f"'names' in {names_path} must be a list or mapping")


@dataclass(frozen=True)
class ModelConfig:
    input_width: int
    input_height: int
    confidence_threshold: float
    iou_threshold: float
    class_names: Tuple[str, ...] = ()
    output_layout: Optional[str] = None


@dataclass(frozen=True)
class LoadedModel:
    """Immutable snapshot of a usable model."""
    session: Any
    config: ModelConfig
    input_name: str
    model_path: str

    def run(self, tensor: np.ndarray) -> np.ndarray:
        outputs = self.session.run(None, {self.input_name: tensor})
        return np.asarray(outputs[0])


def _static_dim(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and value > 0 else None


def _input_size(shape: Sequence, fallback: Sequence[int]) -> Tuple[int, int]:
    if len(shape) == 4:
        h, w = _static_dim(shape[2]), _static_dim(shape[3])
        if h and w:
            return w, h
    return int(fallback[0]), int(fallback[1])


class DetectionModel:
    """
    Holds at most one loaded model.

    Example:
        model = DetectionModel(config.detection)
        model.load()
        with model.reading() as loaded:
            if loaded is not None:
                raw = loaded.run(tensor)
    """

    def __init__(self, config: DetectionConfig, session_factory: Optional[SessionFactory] = None):
        self._config = config
        self._session_factory = session_factory or create_onnx_session
        self._lock = ReadWriteLock()
        self._current: Optional[LoadedModel] = None

    @property
    def is_loaded(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> Optional[LoadedModel]:
        return self._current

    def load(self, model_path: Optional[str] = None, names_path: Optional[str] = None) -> LoadedModel:
        """
        Load a model and make it active.

        On failure the previously active model, if any, stays active.

        Raises:
            ModelFileError: Model missing or rejected by the runtime.
            ConfigFileError: Class-name file missing or malformed.
        """
        loaded = self._build(
            model_path or self._config.model_path,
            names_path or self._config.names_path,
        )
        with self._lock.write_locked():
            previous, self._current = self._current, loaded
        self._release(previous)
        logging.info(
            f"Model loaded: {loaded.model_path} "
            f"(input {loaded.config.input_width}x{loaded.config.input_height}, "
            f"{len(loaded.config.class_names)} classes, layout={loaded.config.output_layout or 'auto'})"
        )
        return loaded

    def reload(self, model_path: Optional[str] = None, names_path: Optional[str] = None) -> LoadedModel:
        """Build the new session outside the lock, then swap it in."""
        return self.load(model_path, names_path)

    def unload(self) -> None:
        """Release the active session; waits for in-flight analyses. Idempotent."""
        with self._lock.write_locked():
            previous, self._current = self._current, None
        if previous is not None:
            self._release(previous)
            logging.info("Model unloaded")

    @contextmanager
    def reading(self) -> Iterator[Optional[LoadedModel]]:
        """Hold the read lock for one analysis and yield the active model."""
        with self._lock.read_locked():
            yield self._current

    def _build(self, model_path: str, names_path: str) -> LoadedModel:
        if not model_path or not os.path.isfile(model_path):
            raise ModelFileError(f"Model file not found: {model_path}")
        class_names = read_class_names(names_path)

        try:
            session = self._session_factory(model_path, self._config.providers)
            model_input = session.get_inputs()[0]
            outputs = session.get_outputs()
        except Exception as e:
            raise ModelFileError(f"Cannot load model {model_path}: {e}") from e

        width, height = _input_size(list(model_input.shape or []), self._config.input_size)
        layout = layout_from_shape(list(outputs[0].shape or []), len(class_names)) if outputs else None
        config = ModelConfig(
            input_width=width,
            input_height=height,
            confidence_threshold=self._config.conf_threshold,
            iou_threshold=self._config.iou_threshold,
            class_names=class_names,
            output_layout=layout,
        )
        return LoadedModel(
            session=session,
            config=config,
            input_name=model_input.name,
            model_path=model_path,
        )

    @staticmethod
    def _release(loaded: Optional[LoadedModel]) -> None:
        if loaded is None:
            return
        # onnxruntime sessions have no close(); dropping the reference frees them.
        close = getattr(loaded.session, "close", None)
        if callable(close):
            try:
                close()
            except Exception as e:
                logging.warning(f"Error releasing model session: {e}")
