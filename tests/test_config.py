"""
Smoke tests for configuration loading and validation.
"""

import logging
import os
import pytest

from main import ModelFileWatcher, load_config, staged_path, validate_config
from models.config import CameraConfig, Config, DetectionConfig
import ops


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_valid_config_passes(self, valid_config):
        is_valid, error = validate_config(valid_config)

        assert is_valid is True
        assert error is None

    def test_checked_in_defaults_pass(self):
        path = os.path.join(os.path.dirname(__file__), "..", "config", "default.yaml")
        is_valid, error = validate_config(load_config(path))

        assert is_valid is True, error

    @pytest.mark.parametrize("section", ["camera", "detection", "inspection", "log_level"])
    def test_missing_section(self, valid_config, section):
        del valid_config[section]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert section in error

    def test_unknown_camera_backend(self, valid_config):
        valid_config["camera"]["backend"] = "picamera2"

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "camera.backend" in error

    def test_threshold_out_of_range(self, valid_config):
        valid_config["detection"]["conf_threshold"] = 1.5

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "conf_threshold" in error

    def test_bad_input_size(self, valid_config):
        valid_config["detection"]["input_size"] = [640]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "input_size" in error

    def test_negative_device_id(self, valid_config):
        valid_config["camera"]["device_id"] = -1

        is_valid, _ = validate_config(valid_config)

        assert is_valid is False

    def test_invalid_log_level(self, valid_config):
        valid_config["log_level"] = "VERBOSE"

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "log_level" in error


class TestLoadConfig:
    def test_local_overrides_merge_over_defaults(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("detection:\n  conf_threshold: 0.6\n")

        config = load_config(str(temp_config_dir / "config.yaml"))

        assert config["detection"]["conf_threshold"] == 0.6
        assert config["detection"]["iou_threshold"] == 0.45
        assert config["camera"]["backend"] == "opencv"

    def test_explicit_file_applies_last(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("inspection:\n  item_name: Local\n")
        explicit = temp_config_dir / "line2.yaml"
        explicit.write_text("inspection:\n  item_name: Line2\n")

        config = load_config(str(explicit))

        assert config["inspection"]["item_name"] == "Line2"
        assert config["inspection"]["interval_ms"] == 500


class TestTypedConfig:
    def test_defaults(self):
        cfg = Config.from_dict({})

        assert cfg.camera.backend == "opencv"
        assert cfg.camera.retrieve_timeout_ms == 5000
        assert cfg.camera.stop_grace_period_s == 2.0
        assert cfg.camera.simulation.interval_ms == 33
        assert cfg.detection.input_size == [640, 640]
        assert cfg.detection.workers == 2
        assert cfg.inspection.item_name == "Unknown"
        assert cfg.event_queue_size == 64

    def test_round_trip_keeps_values(self, valid_config):
        cfg = Config.from_dict(valid_config)
        again = Config.from_dict(cfg.to_dict())

        assert again == cfg

    def test_optional_fields_omitted(self):
        assert "resolution" not in CameraConfig().to_dict()
        assert "providers" not in DetectionConfig().to_dict()


class TestStagedFiles:
    def test_bare_name_resolves_into_model_dir(self):
        assert staged_path("models", "model.onnx") == os.path.join("models", "model.onnx")

    def test_explicit_path_kept(self):
        assert staged_path("models", "/opt/m/model.onnx") == "/opt/m/model.onnx"

    def test_watcher_reports_change_once(self, model_files):
        model_path, names_path = model_files
        watcher = ModelFileWatcher(model_path, names_path)

        assert watcher.poll() is False
        stat = os.stat(model_path)
        os.utime(model_path, (stat.st_atime, stat.st_mtime + 10))

        assert watcher.poll() is True
        assert watcher.poll() is False

    def test_watcher_waits_for_complete_pair(self, tmp_path):
        model_path = tmp_path / "model.onnx"
        names_path = tmp_path / "names.yaml"
        watcher = ModelFileWatcher(str(model_path), str(names_path))

        model_path.write_bytes(b"onnx")
        assert watcher.poll() is False

        names_path.write_text("names: [a]\n")
        assert watcher.poll() is True


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    def test_ops_is_a_regular_package(self):
        assert ops.__file__ is not None
        assert os.path.basename(ops.__file__) == "__init__.py"

    def test_creates_log_dir_and_writes_records(self, tmp_path, restore_root_logger):
        log_path = tmp_path / "logs" / "inspection.log"

        ops.setup_logging(str(log_path), "debug")
        logging.debug("camera warmed up")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert restore_root_logger.level == logging.DEBUG
        assert "camera warmed up" in log_path.read_text()

    def test_unknown_level_falls_back_to_info(self, tmp_path, restore_root_logger):
        ops.setup_logging(str(tmp_path / "inspection.log"), "chatty")

        assert restore_root_logger.level == logging.INFO
