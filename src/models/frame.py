"""
FrameBuffer model for captured sensor frames.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class PixelFormat(str, Enum):
    """Canonical in-memory pixel layouts."""
    MONO8 = "Mono8"
    BGR24 = "Bgr24"
    BGRA32 = "Bgra32"

    @property
    def bytes_per_pixel(self) -> int:
        return _BYTES_PER_PIXEL[self]

    @property
    def channels(self) -> int:
        return _BYTES_PER_PIXEL[self]


_BYTES_PER_PIXEL = {
    PixelFormat.MONO8: 1,
    PixelFormat.BGR24: 3,
    PixelFormat.BGRA32: 4,
}


@dataclass(frozen=True)
class FrameBuffer:
    """
    Immutable snapshot of one converted frame.

    Attributes:
        width: Frame width in pixels.
        height: Frame height in pixels.
        stride_bytes: Bytes per row (>= width * bytes_per_pixel).
        pixel_format: Canonical pixel layout of `pixels`.
        pixels: Raw pixel bytes, `stride_bytes * height` long.
        timestamp: Unix timestamp when the frame was captured.
        frame_index: Sequential frame number since the source started.
        source: Identifier for the sensor or synthetic generator.
    """
    width: int
    height: int
    stride_bytes: int
    pixel_format: PixelFormat
    pixels: bytes
    timestamp: float = 0.0
    frame_index: int = 0
    source: Optional[str] = None

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid frame size {self.width}x{self.height}")
        min_stride = self.width * self.pixel_format.bytes_per_pixel
        if self.stride_bytes < min_stride:
            raise ValueError(
                f"Stride {self.stride_bytes} is smaller than {min_stride} "
                f"for {self.width}px of {self.pixel_format.value}"
            )
        expected = self.stride_bytes * self.height
        if len(self.pixels) != expected:
            raise ValueError(
                f"Pixel payload is {len(self.pixels)} bytes, expected {expected}"
            )

    @classmethod
    def from_numpy(
        cls,
        image: np.ndarray,
        pixel_format: PixelFormat,
        timestamp: float = 0.0,
        frame_index: int = 0,
        source: Optional[str] = None,
    ) -> "FrameBuffer":
        """Snapshot a packed H x W (x C) uint8 array into a new FrameBuffer."""
        if image.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {image.dtype}")
        h, w = image.shape[:2]
        channels = 1 if image.ndim == 2 else image.shape[2]
        if channels != pixel_format.channels:
            raise ValueError(
                f"{pixel_format.value} needs {pixel_format.channels} channels, got {channels}"
            )
        return cls(
            width=w,
            height=h,
            stride_bytes=w * pixel_format.bytes_per_pixel,
            pixel_format=pixel_format,
            pixels=np.ascontiguousarray(image).tobytes(),
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
        )

    def as_array(self) -> np.ndarray:
        """
        Return a read-only H x W x C view of the pixels.

        Row padding beyond `width * bytes_per_pixel` is sliced away.
        """
        bpp = self.pixel_format.bytes_per_pixel
        rows = np.frombuffer(self.pixels, dtype=np.uint8).reshape(self.height, self.stride_bytes)
        return rows[:, : self.width * bpp].reshape(self.height, self.width, bpp)

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)
