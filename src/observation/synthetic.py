"""
Synthetic frame generator used for simulation mode.
"""

from __future__ import annotations

import time
from typing import Optional

import numpy as np

from models.config import SimulationConfig
from models.frame import FrameBuffer, PixelFormat


class SyntheticFrameGenerator:
    """Produces random-filled BGRA32 frames; deterministic when seeded."""

    def __init__(self, config: SimulationConfig, source_id: str = "simulated"):
        self._config = config
        self._source_id = source_id
        self._rng = np.random.default_rng(config.seed)
        self._frame_index = 0

    @property
    def interval_s(self) -> float:
        return self._config.interval_ms / 1000.0

    def next_frame(self, timestamp: Optional[float] = None) -> FrameBuffer:
        cfg = self._config
        pixels = self._rng.integers(
            0, 256, size=(cfg.height, cfg.width, 4), dtype=np.uint8
        )
        self._frame_index += 1
        return FrameBuffer.from_numpy(
            pixels,
            PixelFormat.BGRA32,
            timestamp=time.time() if timestamp is None else timestamp,
            frame_index=self._frame_index,
            source=self._source_id,
        )
