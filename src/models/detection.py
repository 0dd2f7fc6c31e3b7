"""
Detection models for inspection results.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple


class Verdict(str, Enum):
    """Inspection verdict for one analysed frame."""
    OK = "OK"
    NG = "NG"


@dataclass(frozen=True)
class Detection:
    """
    A single detection in source-frame pixel coordinates.

    Attributes:
        x1: Left edge x coordinate.
        y1: Top edge y coordinate.
        x2: Right edge x coordinate.
        y2: Bottom edge y coordinate.
        score: Detection confidence (0-1).
        class_id: Index into the model's class-name table.
        class_name: Human-readable class name, when the table has one.
    """
    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    class_id: int = 0
    class_name: Optional[str] = None

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2) tuple."""
        return (self.x1, self.y1, self.x2, self.y2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "score": self.score,
            "class_id": self.class_id,
            "class_name": self.class_name,
        }


@dataclass(frozen=True)
class InferenceResult:
    """
    Outcome of analysing one frame. Built once, never mutated.

    A failed analysis keeps verdict OK so that a transient fault is never
    reported as a defect; the reason is carried in `error`.
    """
    verdict: Verdict = Verdict.OK
    detections: Tuple[Detection, ...] = ()
    error: Optional[str] = None

    @classmethod
    def from_detections(
        cls, detections: Iterable[Detection], confidence_threshold: float
    ) -> "InferenceResult":
        dets = tuple(detections)
        verdict = (
            Verdict.NG
            if any(d.score >= confidence_threshold for d in dets)
            else Verdict.OK
        )
        return cls(verdict=verdict, detections=dets)

    @classmethod
    def failed(cls, message: str) -> "InferenceResult":
        return cls(verdict=Verdict.OK, detections=(), error=message)

    @property
    def is_ng(self) -> bool:
        return self.verdict is Verdict.NG

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "verdict": self.verdict.value,
            "detections": [det.to_dict() for det in self.detections],
        }
        if self.error:
            d["error"] = self.error
        return d
