"""Unit tests for the fan-out/fan-in orchestrator and the thread pool helper."""

import os
import threading
import time
from unittest.mock import Mock, patch

import pytest

from image_derivatives.core.catalog import build_catalog
from image_derivatives.core.engine import PillowImageEngine
from image_derivatives.core.exceptions import (
    ResizeError,
    StageError,
    TranscodeError,
    UploadError,
)
from image_derivatives.core.image_utils import split_object_key
from image_derivatives.core.models import PipelineConfig, SourceImage
from image_derivatives.core.observability import MetricsCollector
from image_derivatives.core.services import (
    DerivativesOrchestrator,
    PersistenceGateway,
    Transcoder,
)
from image_derivatives.processors import fan_out
from image_derivatives.testing.fakes import (
    FakeLogger,
    create_test_image,
    setup_test_s3_environment,
)

CATALOG = build_catalog(
    [
        {"name": "thumb", "width": 50, "height": 50},
        {"name": "web", "width": 80},
        {"name": "mdpi", "width": 120},
    ]
)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("image_derivatives.core.error_handling.time.sleep"):
        yield


@pytest.fixture
def source(tmp_path):
    local_path = tmp_path / "source.jpg"
    local_path.write_bytes(create_test_image(200, 150))
    return SourceImage(
        bucket="test-uploads",
        key="uploads/photo_001.jpg",
        parts=split_object_key("uploads/photo_001.jpg"),
        content_type="image/jpeg",
        local_path=str(local_path),
        work_dir=str(tmp_path),
        quality=0.6,
    )


class FailingEngine(PillowImageEngine):
    """Real engine that fails for the given output file names."""

    def __init__(self, failing):
        self.failing = set(failing)

    def resize(self, request):
        if os.path.basename(request.dst_path).split("_")[0] in self.failing:
            raise ResizeError(f"simulated failure for {request.dst_path}")
        return super().resize(request)


def make_orchestrator(fake_s3, engine=None, logger=None, metrics=None):
    logger = logger or FakeLogger()
    return DerivativesOrchestrator(
        catalog=CATALOG,
        transcoder=Transcoder(engine or PillowImageEngine(), logger),
        gateway=PersistenceGateway(fake_s3, logger, PipelineConfig()),
        logger=logger,
        metrics_collector=metrics,
    )


class TestFanOut:
    """Tests for the join-all thread pool helper."""

    def test_outcomes_in_input_order(self):
        def task(n):
            time.sleep(0.01 * (5 - n))
            return n * 10

        outcomes = fan_out(task, [1, 2, 3, 4])

        assert [o.result for o in outcomes] == [10, 20, 30, 40]
        assert all(o.success for o in outcomes)

    def test_failure_does_not_cancel_siblings(self):
        finished = []
        lock = threading.Lock()

        def task(n):
            if n == 0:
                raise ValueError("first fails fast")
            time.sleep(0.05)
            with lock:
                finished.append(n)
            return n

        outcomes = fan_out(task, [0, 1, 2, 3])

        assert sorted(finished) == [1, 2, 3]
        assert isinstance(outcomes[0].error, ValueError)
        assert [o.success for o in outcomes] == [False, True, True, True]

    def test_runs_concurrently(self):
        barrier = threading.Barrier(3, timeout=5)

        outcomes = fan_out(lambda n: barrier.wait(), [1, 2, 3])

        assert all(o.success for o in outcomes)

    def test_empty_items(self):
        assert fan_out(lambda n: n, []) == []


class TestDerivativesOrchestrator:
    """Tests for DerivativesOrchestrator."""

    def test_run_publishes_every_version(self, source):
        fake_s3 = setup_test_s3_environment()
        metrics = MetricsCollector()
        orchestrator = make_orchestrator(fake_s3, metrics=metrics)

        assets = orchestrator.run(source, 1.0, "test-cdn")

        assert [a.dest_key for a in assets] == [
            "uploads/thumb_001.jpg",
            "uploads/web_001.jpg",
            "uploads/mdpi_001.jpg",
        ]
        assert fake_s3.get_bucket("test-cdn").keys("uploads/") == sorted(a.dest_key for a in assets)
        assert metrics.get_summary("transcode")["successful_operations"] == 3
        assert metrics.get_summary("persist")["successful_operations"] == 3
        assert not any(os.path.exists(a.local_path) for a in assets)

    def test_transcode_failure_uploads_nothing(self, source, tmp_path):
        fake_s3 = setup_test_s3_environment()
        orchestrator = make_orchestrator(fake_s3, engine=FailingEngine({"web"}))

        with pytest.raises(StageError) as excinfo:
            orchestrator.run(source, 1.0, "test-cdn")

        assert excinfo.value.stage == "transcode"
        assert excinfo.value.versions == ["web"]
        assert isinstance(excinfo.value.errors[0], TranscodeError)
        assert fake_s3.put_calls == []
        assert sorted(os.listdir(tmp_path)) == ["source.jpg"]

    def test_transcode_failures_are_all_reported(self, source):
        fake_s3 = setup_test_s3_environment()
        orchestrator = make_orchestrator(fake_s3, engine=FailingEngine({"thumb", "mdpi"}))

        with pytest.raises(StageError) as excinfo:
            orchestrator.run(source, 1.0, "test-cdn")

        assert excinfo.value.versions == ["thumb", "mdpi"]

    def test_unexpected_task_error_is_tagged_with_version(self, source):
        fake_s3 = setup_test_s3_environment()
        transcoder = Mock()
        transcoder.transcode.side_effect = RuntimeError("bug")
        orchestrator = DerivativesOrchestrator(
            catalog=CATALOG,
            transcoder=transcoder,
            gateway=PersistenceGateway(fake_s3, FakeLogger()),
            logger=FakeLogger(),
        )

        with pytest.raises(StageError) as excinfo:
            orchestrator.run(source, 1.0, "test-cdn")

        assert excinfo.value.versions == ["thumb", "web", "mdpi"]
        assert all(isinstance(e, TranscodeError) for e in excinfo.value.errors)

    def test_upload_failure_after_all_uploads_resolved(self, source, tmp_path):
        fake_s3 = setup_test_s3_environment()
        fake_s3.fail_put("uploads/web_001.jpg", "AccessDenied")
        orchestrator = make_orchestrator(fake_s3)

        with pytest.raises(StageError) as excinfo:
            orchestrator.run(source, 1.0, "test-cdn")

        assert excinfo.value.stage == "persist"
        assert excinfo.value.versions == ["web"]
        assert isinstance(excinfo.value.errors[0], UploadError)
        assert fake_s3.get_bucket("test-cdn").keys() == ["uploads/mdpi_001.jpg", "uploads/thumb_001.jpg"]
        assert sorted(os.listdir(tmp_path)) == ["source.jpg"]

    def test_persist_never_starts_before_transcode_finished(self, source):
        fake_s3 = setup_test_s3_environment()
        events = []
        lock = threading.Lock()

        class RecordingTranscoder(Transcoder):
            def transcode(self, *args, **kwargs):
                asset = super().transcode(*args, **kwargs)
                with lock:
                    events.append("transcode")
                return asset

        class RecordingGateway(PersistenceGateway):
            def persist(self, *args, **kwargs):
                with lock:
                    events.append("persist")
                return super().persist(*args, **kwargs)

        logger = FakeLogger()
        orchestrator = DerivativesOrchestrator(
            catalog=CATALOG,
            transcoder=RecordingTranscoder(PillowImageEngine(), logger),
            gateway=RecordingGateway(fake_s3, logger),
            logger=logger,
        )

        orchestrator.run(source, 1.0, "test-cdn")

        assert events == ["transcode"] * 3 + ["persist"] * 3
