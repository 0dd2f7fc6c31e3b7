"""
Conversion of native sensor payloads into canonical packed layouts.

The converter writes into scratch arrays owned by a BufferPool so that
steady-state streaming does not allocate a working buffer per frame. The
emitted FrameBuffer is always an independent bytes snapshot of the scratch.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from models.errors import ConversionError
from models.frame import PixelFormat
from .pixel_format import (
    FormatPlan,
    TARGET_BGR8_PACKED,
    TARGET_BGRA8_PACKED,
    TARGET_MONO8,
)

BufferKey = Tuple[int, int, PixelFormat]


class BufferPool:
    """Scratch buffers keyed by (width, height, pixel format)."""

    def __init__(self, max_buffers: int = 4):
        self._max_buffers = max_buffers
        self._buffers: Dict[BufferKey, np.ndarray] = {}

    def acquire(self, width: int, height: int, pixel_format: PixelFormat) -> np.ndarray:
        key = (width, height, pixel_format)
        buf = self._buffers.get(key)
        if buf is None:
            if len(self._buffers) >= self._max_buffers:
                # Resolution changes are rare; keep only the newest shapes.
                self._buffers.pop(next(iter(self._buffers)))
            shape = (height, width) if pixel_format is PixelFormat.MONO8 else (
                height, width, pixel_format.channels
            )
            buf = np.empty(shape, dtype=np.uint8)
            self._buffers[key] = buf
            logging.debug(f"Allocated {width}x{height} {pixel_format.value} scratch buffer")
        return buf

    def clear(self) -> None:
        self._buffers.clear()

    def __len__(self) -> int:
        return len(self._buffers)


def _channels(payload: np.ndarray) -> int:
    return 1 if payload.ndim == 2 else payload.shape[2]


def _color_code(native: str, channels: int, target: str) -> Optional[int]:
    """
    Return the cv2 conversion code from the native layout to `target`.

    None means the payload is already in the target layout.
    """
    pf = native.lower()

    if target == TARGET_MONO8:
        if channels == 1:
            return None
        return cv2.COLOR_BGR2GRAY if channels == 3 else cv2.COLOR_BGRA2GRAY

    if target == TARGET_BGR8_PACKED:
        if channels == 1:
            if "bayer" in pf and "rg8" in pf:
                # OpenCV names Bayer patterns from the second row, so an
                # RGGB sensor mosaic is its "BG" pattern.
                return cv2.COLOR_BayerBG2BGR
            return cv2.COLOR_GRAY2BGR
        if channels == 3:
            return cv2.COLOR_RGB2BGR if "rgb8" in pf else None
        return cv2.COLOR_BGRA2BGR

    if target == TARGET_BGRA8_PACKED:
        if channels == 1:
            return cv2.COLOR_GRAY2BGRA
        if channels == 3:
            return cv2.COLOR_RGB2BGRA if "rgb8" in pf else cv2.COLOR_BGR2BGRA
        return cv2.COLOR_RGBA2BGRA if "rgba8" in pf else None

    raise ConversionError(f"Unsupported converter target '{target}'")


def convert_payload(
    payload: np.ndarray,
    native_format: str,
    plan: FormatPlan,
    pool: BufferPool,
) -> np.ndarray:
    """
    Convert a grabbed payload into the plan's canonical layout.

    Returns the pooled scratch array; callers must snapshot it before the
    next conversion reuses it.

    Raises:
        ConversionError: If the payload cannot be converted.
    """
    if payload is None or payload.size == 0:
        raise ConversionError("Empty payload")
    if payload.dtype != np.uint8:
        raise ConversionError(f"Unsupported payload dtype {payload.dtype}")
    if payload.ndim not in (2, 3) or (payload.ndim == 3 and payload.shape[2] not in (1, 3, 4)):
        raise ConversionError(f"Unsupported payload shape {payload.shape}")

    if payload.ndim == 3 and payload.shape[2] == 1:
        payload = payload[:, :, 0]

    height, width = payload.shape[:2]
    code = _color_code(native_format or "", _channels(payload), plan.converter_target)
    out = pool.acquire(width, height, plan.pixel_format)

    try:
        if code is None:
            np.copyto(out, payload)
        else:
            converted = cv2.cvtColor(payload, code, dst=out)
            if converted is not out:
                np.copyto(out, converted)
    except (cv2.error, ValueError) as e:
        raise ConversionError(
            f"Cannot convert {native_format or 'unknown'} {payload.shape} "
            f"to {plan.converter_target}: {e}"
        ) from e

    return out
