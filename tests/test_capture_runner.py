"""Tests for background runs and stale-result discarding."""

import threading

import pytest

from scannorm.services.capture_runner import CaptureRunner


class GatedPipeline:
    """Stand-in pipeline; payloads in ``gated`` block until released."""

    def __init__(self, gated=(b"first",)):
        self.gated = set(gated)
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = []

    def normalize_capture(self, payload):
        self.calls.append(payload)
        if payload in self.gated:
            self.started.set()
            self.release.wait(5)
        return payload + b"-done"


@pytest.fixture
def pipeline():
    fake = GatedPipeline()
    yield fake
    fake.release.set()


class TestCaptureRunner:
    def test_process(self, pipeline):
        with CaptureRunner(pipeline) as runner:
            outcome = runner.process("highCamera", b"photo")
        assert outcome.payload == b"photo-done"
        assert not outcome.superseded
        assert outcome.error is None
        assert outcome.generation == 1

    def test_newer_capture_supersedes(self, pipeline):
        published = []
        with CaptureRunner(pipeline, max_workers=2, on_result=published.append) as runner:
            first = runner.submit("highCamera", b"first")
            assert pipeline.started.wait(5)
            second = runner.submit("highCamera", b"second")
            assert second.result(5).payload == b"second-done"
            pipeline.release.set()
            stale = first.result(5)

        assert stale.superseded
        assert not stale.skipped
        assert [o.payload for o in published] == [b"second-done"]

    def test_queued_stale_run_is_skipped(self, pipeline):
        with CaptureRunner(pipeline, max_workers=1) as runner:
            blocker = runner.submit("camera", b"first")
            assert pipeline.started.wait(5)
            older = runner.submit("highCamera", b"a")
            newer = runner.submit("highCamera", b"b")
            pipeline.release.set()
            skipped = older.result(5)
            current = newer.result(5)
            blocker.result(5)

        assert skipped.skipped and skipped.superseded
        assert skipped.payload == b"a"
        assert current.payload == b"b-done"
        assert b"a" not in pipeline.calls

    def test_sources_are_independent(self, pipeline):
        with CaptureRunner(pipeline, max_workers=2) as runner:
            high = runner.submit("highCamera", b"first")
            assert pipeline.started.wait(5)
            low = runner.submit("camera", b"other")
            assert not low.result(5).superseded
            pipeline.release.set()
            assert not high.result(5).superseded

    def test_timeout_returns_original(self, pipeline):
        published = []
        runner = CaptureRunner(pipeline, on_result=published.append)
        outcome = runner.process("highCamera", b"first", timeout=0.05)
        pipeline.release.set()
        runner.shutdown(wait=True)

        assert outcome.payload == b"first"
        assert outcome.superseded
        assert "timed out" in outcome.error
        assert published == []

    def test_callback_error_recorded(self, pipeline):
        def explode(outcome):
            raise RuntimeError("sink closed")

        with CaptureRunner(pipeline, on_result=explode) as runner:
            outcome = runner.process("camera", b"x")
        assert outcome.payload == b"x-done"
        assert outcome.error == "sink closed"

    def test_cancel_only_matching_generation(self, pipeline):
        with CaptureRunner(pipeline) as runner:
            generation = runner.process("camera", b"x").generation
            runner.cancel("camera", generation - 1)
            assert runner.is_current("camera", generation)
            runner.cancel("camera", generation)
            assert not runner.is_current("camera", generation)

    def test_cancel_without_generation(self, pipeline):
        with CaptureRunner(pipeline) as runner:
            generation = runner.process("camera", b"x").generation
            runner.cancel("camera")
            assert not runner.is_current("camera", generation)

    def test_invalidation_waits_for_publish(self, pipeline):
        publishing = threading.Event()
        finish = threading.Event()
        published = []

        def slow_sink(outcome):
            publishing.set()
            finish.wait(5)
            published.append(outcome)

        with CaptureRunner(pipeline, on_result=slow_sink) as runner:
            future = runner.submit("highCamera", b"photo")
            assert publishing.wait(5)

            cancelled = threading.Event()

            def cancel():
                runner.cancel("highCamera")
                cancelled.set()

            worker = threading.Thread(target=cancel)
            worker.start()
            assert not cancelled.wait(0.2)
            finish.set()
            worker.join(5)
            outcome = future.result(5)

        assert cancelled.is_set()
        assert not outcome.superseded
        assert [o.payload for o in published] == [b"photo-done"]
        assert not runner.is_current("highCamera", outcome.generation)

    def test_callback_may_submit_again(self, pipeline):
        resubmitted = []

        with CaptureRunner(pipeline, max_workers=2) as runner:

            def resubmit(outcome):
                if outcome.payload == b"photo-done":
                    resubmitted.append(runner.submit("highCamera", b"retake"))

            runner.on_result = resubmit
            outcome = runner.process("highCamera", b"photo", timeout=5)
            retake = resubmitted[0].result(5)

        assert outcome.error is None
        assert retake.payload == b"retake-done"
        assert retake.generation == outcome.generation + 1
