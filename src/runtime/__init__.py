"""
Runtime wiring: event delivery and the inspection coordinator.
"""

from .coordinator import InspectionCoordinator, InspectionLogEntry, TickOutcome
from .events import (
    ERROR_OCCURRED,
    FRAME_RECEIVED,
    RESULT_READY,
    STATUS_CHANGED,
    EventDispatcher,
)

__all__ = [
    "InspectionCoordinator",
    "InspectionLogEntry",
    "TickOutcome",
    "EventDispatcher",
    "ERROR_OCCURRED",
    "FRAME_RECEIVED",
    "RESULT_READY",
    "STATUS_CHANGED",
]
