"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class SimulationConfig:
    """Synthetic frame generator used when no sensor is usable."""
    width: int = 640
    height: int = 480
    interval_ms: int = 33
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SimulationConfig":
        return cls(
            width=d.get("width", 640),
            height=d.get("height", 480),
            interval_ms=d.get("interval_ms", 33),
            seed=d.get("seed"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "width": self.width,
            "height": self.height,
            "interval_ms": self.interval_ms,
        }
        if self.seed is not None:
            d["seed"] = self.seed
        return d


@dataclass
class CameraConfig:
    """Camera configuration."""
    backend: str = "opencv"
    device_id: Union[int, str] = 0
    resolution: Optional[List[int]] = None
    fps: Optional[int] = None
    retrieve_timeout_ms: int = 5000
    stop_grace_period_s: float = 2.0
    auto_exposure: bool = True
    max_read_failures: int = 10
    simulation: SimulationConfig = field(default_factory=SimulationConfig)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            backend=d.get("backend", "opencv"),
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution"),
            fps=d.get("fps"),
            retrieve_timeout_ms=d.get("retrieve_timeout_ms", 5000),
            stop_grace_period_s=d.get("stop_grace_period_s", 2.0),
            auto_exposure=d.get("auto_exposure", True),
            max_read_failures=d.get("max_read_failures", 10),
            simulation=SimulationConfig.from_dict(d.get("simulation") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "backend": self.backend,
            "device_id": self.device_id,
            "retrieve_timeout_ms": self.retrieve_timeout_ms,
            "stop_grace_period_s": self.stop_grace_period_s,
            "auto_exposure": self.auto_exposure,
            "max_read_failures": self.max_read_failures,
            "simulation": self.simulation.to_dict(),
        }
        if self.resolution is not None:
            d["resolution"] = self.resolution
        if self.fps is not None:
            d["fps"] = self.fps
        return d


@dataclass
class DetectionConfig:
    """ONNX detector configuration."""
    model_path: str = ""
    names_path: str = ""
    conf_threshold: float = 0.25
    iou_threshold: float = 0.45
    input_size: List[int] = field(default_factory=lambda: [640, 640])
    workers: int = 2
    providers: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        return cls(
            model_path=d.get("model_path", ""),
            names_path=d.get("names_path", ""),
            conf_threshold=d.get("conf_threshold", 0.25),
            iou_threshold=d.get("iou_threshold", 0.45),
            input_size=d.get("input_size", [640, 640]),
            workers=d.get("workers", 2),
            providers=d.get("providers"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "model_path": self.model_path,
            "names_path": self.names_path,
            "conf_threshold": self.conf_threshold,
            "iou_threshold": self.iou_threshold,
            "input_size": self.input_size,
            "workers": self.workers,
        }
        if self.providers is not None:
            d["providers"] = self.providers
        return d


@dataclass
class InspectionConfig:
    """Inspection tick and log configuration."""
    interval_ms: int = 500
    item_name: str = "Unknown"
    log_capacity: int = 200
    model_dir: str = "models"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "InspectionConfig":
        return cls(
            interval_ms=d.get("interval_ms", 500),
            item_name=d.get("item_name", "Unknown"),
            log_capacity=d.get("log_capacity", 200),
            model_dir=d.get("model_dir", "models"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interval_ms": self.interval_ms,
            "item_name": self.item_name,
            "log_capacity": self.log_capacity,
            "model_dir": self.model_dir,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    camera: CameraConfig = field(default_factory=CameraConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    inspection: InspectionConfig = field(default_factory=InspectionConfig)
    event_queue_size: int = 64
    log_path: str = "logs/inspector.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            camera=CameraConfig.from_dict(d.get("camera") or {}),
            detection=DetectionConfig.from_dict(d.get("detection") or {}),
            inspection=InspectionConfig.from_dict(d.get("inspection") or {}),
            event_queue_size=d.get("event_queue_size", 64),
            log_path=d.get("log_path", "logs/inspector.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "camera": self.camera.to_dict(),
            "detection": self.detection.to_dict(),
            "inspection": self.inspection.to_dict(),
            "event_queue_size": self.event_queue_size,
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
