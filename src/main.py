"""
Component inspection service.

Pulls frames from the configured sensor (or a synthetic source when no sensor
is usable), analyses the latest frame on every inspection tick and logs an
OK/NG verdict per tick.

Usage:
    python src/main.py --config config/config.yaml --item "Connector A"

Arguments:
    --config: Path to configuration file
    --item: Component type label for inspection log entries
    --max-ticks: Stop after this many ticks (runs until interrupted otherwise)
"""

import os
import sys
import argparse
import logging
import time
import yaml
from typing import Dict, Any, Tuple, Optional

from models.config import Config
from models.errors import InspectionError
from models.status import TickStatus
from observation.frame_source import FrameSource
from inference.engine import DetectionEngine
from inference.model import DetectionModel
from ops.logging import setup_logging
from runtime.coordinator import InspectionCoordinator, InspectionLogEntry
from runtime.events import EventDispatcher

CAMERA_BACKENDS = ('opencv', 'pylon', 'simulated')
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
WATCH_INTERVAL_S = 2.0


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['camera', 'detection', 'inspection', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    camera = config.get('camera') or {}
    backend = camera.get('backend', 'opencv')
    if backend not in CAMERA_BACKENDS:
        return False, f"camera.backend must be one of: {', '.join(CAMERA_BACKENDS)}"
    if 'device_id' in camera:
        if not isinstance(camera['device_id'], (int, str)):
            return False, "camera.device_id must be an integer (index) or string (URL)"
        if isinstance(camera['device_id'], int) and camera['device_id'] < 0:
            return False, "camera.device_id integer must be non-negative"
    if 'resolution' in camera and camera['resolution'] is not None:
        res = camera['resolution']
        if not isinstance(res, list) or len(res) != 2 or not all(isinstance(x, int) and x > 0 for x in res):
            return False, "camera.resolution must be a list of two positive integers"
    for key in ('retrieve_timeout_ms', 'max_read_failures'):
        if key in camera and (not isinstance(camera[key], int) or camera[key] <= 0):
            return False, f"camera.{key} must be a positive integer"
    if 'stop_grace_period_s' in camera and (not _is_number(camera['stop_grace_period_s']) or camera['stop_grace_period_s'] < 0):
        return False, "camera.stop_grace_period_s must be a non-negative number"

    simulation = camera.get('simulation') or {}
    for key in ('width', 'height', 'interval_ms'):
        if key in simulation and (not isinstance(simulation[key], int) or simulation[key] <= 0):
            return False, f"camera.simulation.{key} must be a positive integer"

    detection = config.get('detection') or {}
    for key in ('model_path', 'names_path'):
        if key in detection and not isinstance(detection[key], str):
            return False, f"detection.{key} must be a string"
    for key in ('conf_threshold', 'iou_threshold'):
        if key in detection:
            value = detection[key]
            if not _is_number(value) or not (0 <= value <= 1):
                return False, f"detection.{key} must be between 0 and 1"
    if 'input_size' in detection:
        size = detection['input_size']
        if not isinstance(size, list) or len(size) != 2 or not all(isinstance(x, int) and x > 0 for x in size):
            return False, "detection.input_size must be a list of [width, height]"
    if 'workers' in detection and (not isinstance(detection['workers'], int) or detection['workers'] <= 0):
        return False, "detection.workers must be a positive integer"
    if detection.get('providers') is not None and not isinstance(detection['providers'], list):
        return False, "detection.providers must be a list of provider names"

    inspection = config.get('inspection') or {}
    for key in ('interval_ms', 'log_capacity'):
        if key in inspection and (not isinstance(inspection[key], int) or inspection[key] <= 0):
            return False, f"inspection.{key} must be a positive integer"

    if 'event_queue_size' in config and (not isinstance(config['event_queue_size'], int) or config['event_queue_size'] <= 0):
        return False, "event_queue_size must be a positive integer"

    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def staged_path(model_dir: str, path: str) -> str:
    """Bare file names live in the staging directory; other paths are used as given."""
    if path and model_dir and not os.path.dirname(path):
        return os.path.join(model_dir, path)
    return path


class ModelFileWatcher:
    """
    Watches the staged model and class-name files.

    `poll()` returns True once per change of either file's modification time.
    """

    def __init__(self, model_path: str, names_path: str):
        self.paths = (model_path, names_path)
        self._mtimes = self._snapshot()

    def _snapshot(self) -> Tuple[Optional[float], ...]:
        mtimes = []
        for path in self.paths:
            try:
                mtimes.append(os.path.getmtime(path))
            except OSError:
                mtimes.append(None)
        return tuple(mtimes)

    def poll(self) -> bool:
        current = self._snapshot()
        if current == self._mtimes:
            return False
        self._mtimes = current
        # A half-staged pair is not reloadable yet
        return all(m is not None for m in current)


def _on_result(entry: InspectionLogEntry) -> None:
    result = entry.result
    if result.error:
        return
    for det in result.detections:
        logging.debug(
            f"  {det.class_name or det.class_id}: score={det.score:.2f} "
            f"box=({det.x1:.0f}, {det.y1:.0f}, {det.x2:.0f}, {det.y2:.0f})"
        )


def run(cfg: Config, max_ticks: Optional[int] = None) -> int:
    """Wire the components, run inspection ticks, tear everything down. Returns ticks run."""
    dispatcher = EventDispatcher(name="inspection", max_pending=cfg.event_queue_size)
    source = FrameSource(cfg.camera, dispatcher=dispatcher)
    model = DetectionModel(cfg.detection)
    engine = DetectionEngine(model, workers=cfg.detection.workers)
    coordinator = InspectionCoordinator(engine, cfg.inspection, cfg.detection, dispatcher)

    source.subscribe_frames(coordinator.on_frame)
    source.subscribe_status(lambda msg: logging.info(f"Camera: {msg}"))
    source.subscribe_errors(lambda msg: logging.warning(f"Camera advisory: {msg}"))
    coordinator.subscribe_results(_on_result)

    watcher = ModelFileWatcher(cfg.detection.model_path, cfg.detection.names_path)
    interval = cfg.inspection.interval_ms / 1000.0
    ticks = 0
    last_watch = time.time()

    try:
        source.start()
        while max_ticks is None or ticks < max_ticks:
            started = time.time()
            outcome = coordinator.tick().result()
            ticks += 1
            # Load failures are already logged by the coordinator
            if outcome.status in (TickStatus.WAITING, TickStatus.NO_MODEL):
                logging.debug(outcome.message)

            if started - last_watch >= WATCH_INTERVAL_S:
                last_watch = started
                if watcher.poll() and model.is_loaded:
                    logging.info("Staged model files changed, reloading")
                    try:
                        model.reload(cfg.detection.model_path, cfg.detection.names_path)
                    except InspectionError as e:
                        logging.error(f"Model reload failed, keeping previous model: {e}")

            time.sleep(max(0.0, interval - (time.time() - started)))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    finally:
        coordinator.close()
        source.stop()
        engine.close()
        dispatcher.close()
        logging.info("Inspection service stopped")
    return ticks


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description='Component Inspection Service')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--item', type=str, default=None,
                        help='Component type label for inspection log entries')
    parser.add_argument('--max-ticks', type=int, default=None,
                        help='Stop after this many inspection ticks')
    args = parser.parse_args()

    config = load_config(args.config)

    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    setup_logging(config['log_path'], config['log_level'])

    cfg = Config.from_dict(config)
    if args.item:
        cfg.inspection.item_name = args.item
    cfg.detection.model_path = staged_path(cfg.inspection.model_dir, cfg.detection.model_path)
    cfg.detection.names_path = staged_path(cfg.inspection.model_dir, cfg.detection.names_path)

    logging.info(
        f"Starting Component Inspection Service (camera={cfg.camera.backend}, "
        f"item={cfg.inspection.item_name}, model={cfg.detection.model_path})"
    )
    run(cfg, max_ticks=args.max_ticks)


if __name__ == "__main__":
    main()
