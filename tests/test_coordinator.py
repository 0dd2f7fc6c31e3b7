"""
Tests for the single-flight inspection coordinator.
"""

import logging
import threading
import time

import pytest

from inference.engine import DetectionEngine
from inference.model import DetectionModel
from models.config import DetectionConfig, InspectionConfig
from models.detection import Verdict
from models.status import CoordinatorState, TickStatus
from runtime.coordinator import InspectionCoordinator
from runtime.events import RESULT_READY, EventDispatcher

from conftest import FakeSession, box_output, make_frame, wait_for

NG_OUTPUT = box_output([(320, 240, 100, 50, 0.9, 0)])


class CountingSession(FakeSession):
    """Tracks how many run() calls overlap."""

    def __init__(self, output, hold=0.0):
        super().__init__(output)
        self.hold = hold
        self.active = 0
        self.peak = 0
        self.release = threading.Event()
        self._lock = threading.Lock()

    def run(self, output_names, feeds):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if self.hold:
                self.release.wait(self.hold)
            return super().run(output_names, feeds)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def build(model_files):
    created = []

    def _build(session, preload=True, dispatcher=None, **inspection):
        detection = DetectionConfig(model_path=model_files[0], names_path=model_files[1])
        model = DetectionModel(detection, session_factory=lambda path, providers: session)
        if preload:
            model.load()
        engine = DetectionEngine(model, workers=4)
        coordinator = InspectionCoordinator(
            engine, InspectionConfig(**inspection), detection, dispatcher
        )
        created.append((coordinator, engine))
        return coordinator

    yield _build
    for coordinator, engine in created:
        coordinator.close()
        engine.close()


class TestTick:
    def test_waiting_without_frames(self, build):
        coordinator = build(FakeSession(NG_OUTPUT))

        outcome = coordinator.tick().result(1.0)

        assert outcome.status is TickStatus.WAITING
        assert outcome.message == "Waiting for camera frames..."

    def test_analyzes_latest_frame(self, build):
        coordinator = build(FakeSession(NG_OUTPUT), item_name="Connector A")
        coordinator.on_frame(make_frame())

        outcome = coordinator.tick().result(2.0)

        assert outcome.status is TickStatus.ANALYZED
        assert outcome.verdict is Verdict.NG
        assert outcome.detection_count == 1
        entries = coordinator.log_entries()
        assert len(entries) == 1
        assert entries[0].item_name == "Connector A"
        assert entries[0].result.is_ng
        assert coordinator.state is CoordinatorState.IDLE

    def test_second_tick_skipped_while_analyzing(self, build):
        session = CountingSession(NG_OUTPUT, hold=5.0)
        coordinator = build(session)
        coordinator.on_frame(make_frame())

        first = coordinator.tick()
        assert wait_for(lambda: session.active == 1)
        second = coordinator.tick().result(1.0)

        assert second.status is TickStatus.SKIPPED
        session.release.set()
        assert first.result(2.0).status is TickStatus.ANALYZED
        assert len(coordinator.log_entries()) == 1

    def test_never_more_than_one_analysis(self, build):
        session = CountingSession(NG_OUTPUT, hold=0.005)
        coordinator = build(session)
        coordinator.on_frame(make_frame())
        futures = []

        def hammer():
            for _ in range(20):
                futures.append(coordinator.tick())
                time.sleep(0.001)

        threads = [threading.Thread(target=hammer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5.0)
        for f in futures:
            f.result(2.0)

        assert session.peak == 1
        assert session.calls >= 1

    def test_lazy_load_on_first_tick(self, build):
        session = FakeSession(NG_OUTPUT)
        coordinator = build(session, preload=False)
        coordinator.on_frame(make_frame())

        outcome = coordinator.tick().result(2.0)

        assert outcome.status is TickStatus.NO_MODEL
        assert outcome.error is None
        assert coordinator.tick().result(2.0).status is TickStatus.ANALYZED

    def test_lazy_load_failure_reported(self, model_files, tmp_path):
        detection = DetectionConfig(model_path=str(tmp_path / "missing.onnx"), names_path=model_files[1])
        engine = DetectionEngine(DetectionModel(detection))
        coordinator = InspectionCoordinator(engine, InspectionConfig(), detection)
        coordinator.on_frame(make_frame())
        try:
            outcome = coordinator.tick().result(2.0)
        finally:
            coordinator.close()
            engine.close()

        assert outcome.status is TickStatus.NO_MODEL
        assert "missing.onnx" in outcome.error
        assert coordinator.state is CoordinatorState.IDLE

    def test_repeated_load_failure_logged_once(self, model_files, tmp_path, caplog):
        detection = DetectionConfig(model_path=str(tmp_path / "missing.onnx"), names_path=model_files[1])
        engine = DetectionEngine(DetectionModel(detection))
        coordinator = InspectionCoordinator(engine, InspectionConfig(), detection)
        coordinator.on_frame(make_frame())
        try:
            with caplog.at_level(logging.DEBUG):
                outcomes = [coordinator.tick().result(2.0) for _ in range(3)]
        finally:
            coordinator.close()
            engine.close()

        assert all(o.status is TickStatus.NO_MODEL for o in outcomes)
        errors = [r for r in caplog.records if r.levelno >= logging.WARNING]
        assert len(errors) == 1
        assert "missing.onnx" in errors[0].getMessage()

    def test_close_cancels_in_flight(self, build):
        session = CountingSession(NG_OUTPUT, hold=5.0)
        coordinator = build(session)
        coordinator.on_frame(make_frame())

        future = coordinator.tick()
        assert wait_for(lambda: session.active == 1)
        coordinator.close()
        session.release.set()

        assert future.result(2.0).status is TickStatus.CANCELLED
        assert coordinator.tick().result(1.0).status is TickStatus.CANCELLED
        assert coordinator.log_entries() == []


class TestLog:
    def test_bounded(self, build):
        coordinator = build(FakeSession(NG_OUTPUT), log_capacity=3)
        coordinator.on_frame(make_frame())

        for _ in range(5):
            coordinator.tick().result(2.0)

        assert len(coordinator.log_entries()) == 3

    def test_clear(self, build):
        coordinator = build(FakeSession(NG_OUTPUT))
        coordinator.on_frame(make_frame())
        coordinator.tick().result(2.0)

        coordinator.clear_log()

        assert coordinator.log_entries() == []

    def test_result_published(self, build):
        dispatcher = EventDispatcher()
        received = []
        dispatcher.subscribe(RESULT_READY, received.append)
        coordinator = build(FakeSession(NG_OUTPUT), dispatcher=dispatcher)
        coordinator.on_frame(make_frame())

        coordinator.tick().result(2.0)

        assert wait_for(lambda: len(received) == 1)
        assert received[0].result.verdict is Verdict.NG
        assert received[0].to_dict()["verdict"] == "NG"
        dispatcher.close()
