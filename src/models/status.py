"""
State enums for the frame source and inspection coordinator.
"""

from __future__ import annotations

from enum import Enum


class SourceState(str, Enum):
    """Lifecycle of a FrameSource."""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING_REAL = "streaming_real"
    STREAMING_SIMULATED = "streaming_simulated"
    STOPPING = "stopping"
    STOPPED = "stopped"

    @property
    def is_active(self) -> bool:
        return self in (
            SourceState.CONNECTING,
            SourceState.STREAMING_REAL,
            SourceState.STREAMING_SIMULATED,
        )


class CoordinatorState(str, Enum):
    """Single-flight state of the inspection coordinator."""
    IDLE = "idle"
    ANALYZING = "analyzing"


class TickStatus(str, Enum):
    """What an inspection tick ended up doing."""
    ANALYZED = "analyzed"
    SKIPPED = "skipped"
    WAITING = "waiting"
    NO_MODEL = "no_model"
    CANCELLED = "cancelled"
