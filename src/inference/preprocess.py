"""
Letterbox preprocessing.

The frame is scaled to fit the model input while keeping its aspect ratio,
centred on a black canvas and sampled bilinearly. The resulting Letterbox
is carried to the postprocessor so both directions use the same numbers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from models.frame import FrameBuffer, PixelFormat


@dataclass(frozen=True)
class Letterbox:
    """
    Geometry of one letterbox resize.

    Attributes:
        ratio: Scale applied to the source frame.
        pad_x: Left padding in model-input pixels.
        pad_y: Top padding in model-input pixels.
        source_width: Width of the source frame.
        source_height: Height of the source frame.
    """
    ratio: float
    pad_x: int
    pad_y: int
    source_width: int
    source_height: int

    @classmethod
    def fit(cls, source_w: int, source_h: int, target_w: int, target_h: int) -> "Letterbox":
        ratio = min(target_w / source_w, target_h / source_h)
        new_w = int(source_w * ratio)
        new_h = int(source_h * ratio)
        return cls(
            ratio=ratio,
            pad_x=(target_w - new_w) // 2,
            pad_y=(target_h - new_h) // 2,
            source_width=source_w,
            source_height=source_h,
        )

    def to_source(self, x: float, y: float) -> Tuple[float, float]:
        """Map a model-input coordinate back to source-frame pixels."""
        return ((x - self.pad_x) / self.ratio, (y - self.pad_y) / self.ratio)

    def to_model(self, x: float, y: float) -> Tuple[float, float]:
        """Map a source-frame coordinate into model-input pixels."""
        return (x * self.ratio + self.pad_x, y * self.ratio + self.pad_y)


@dataclass(frozen=True)
class Preprocessed:
    tensor: np.ndarray
    letterbox: Letterbox


def _axis_taps(size_out: int, pad: int, ratio: float, size_in: int):
    """Source indices and weights of the two bilinear taps along one axis."""
    coords = (np.arange(size_out, dtype=np.float64) - pad + 0.5) / ratio - 0.5
    lo = np.floor(coords).astype(np.int64)
    frac = coords - lo
    hi = lo + 1
    # Out-of-bounds taps contribute nothing.
    w_lo = np.where((lo >= 0) & (lo < size_in), 1.0 - frac, 0.0)
    w_hi = np.where((hi >= 0) & (hi < size_in), frac, 0.0)
    return (
        np.clip(lo, 0, size_in - 1),
        np.clip(hi, 0, size_in - 1),
        w_lo.astype(np.float32),
        w_hi.astype(np.float32),
    )


def _to_rgb(frame: FrameBuffer) -> np.ndarray:
    pixels = frame.as_array()
    if frame.pixel_format is PixelFormat.MONO8:
        return np.repeat(pixels, 3, axis=2)
    # BGR24 / BGRA32: drop alpha, reverse to RGB
    return pixels[:, :, 2::-1]


def preprocess(frame: FrameBuffer, target_w: int, target_h: int) -> Preprocessed:
    """
    Letterbox `frame` into a float32 [1, 3, target_h, target_w] RGB tensor.

    Values are normalised to [0, 1]; padding is 0.
    """
    box = Letterbox.fit(frame.width, frame.height, target_w, target_h)
    src = _to_rgb(frame).astype(np.float32)

    y_lo, y_hi, wy_lo, wy_hi = _axis_taps(target_h, box.pad_y, box.ratio, frame.height)
    x_lo, x_hi, wx_lo, wx_hi = _axis_taps(target_w, box.pad_x, box.ratio, frame.width)

    out = np.zeros((target_h, target_w, 3), dtype=np.float32)
    for ys, wy in ((y_lo, wy_lo), (y_hi, wy_hi)):
        rows = src[ys]
        for xs, wx in ((x_lo, wx_lo), (x_hi, wx_hi)):
            weight = wy[:, None, None] * wx[None, :, None]
            out += weight * rows[:, xs]

    out /= 255.0
    tensor = np.ascontiguousarray(out.transpose(2, 0, 1)[None, ...])
    return Preprocessed(tensor=tensor, letterbox=box)
