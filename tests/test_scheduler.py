"""Unit tests for the inference scheduler and its decode worker."""
import threading
from concurrent.futures import Future

import pytest

from pose_pipeline.config import SchedulerConfig
from pose_pipeline.predictors.base import FutureExecution
from pose_pipeline.scheduling.scheduler import InferenceScheduler, SchedulerState, SchedulerStateError
from pose_pipeline.scheduling.worker import DecodeWorker

from conftest import FakeBackend, ManualHandle

WAIT = 5.0


@pytest.fixture
def foreground():
    backend = FakeBackend()
    scheduler = InferenceScheduler(backend, background=False)
    yield scheduler
    scheduler.shutdown()


class GatedDecode:
    """decode_fn that blocks until released; the first N calls can fail."""

    def __init__(self, fail_first=0):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.fail_first = fail_first
        self.calls = 0

    def __call__(self, outputs):
        self.calls += 1
        self.entered.set()
        assert self.release.wait(WAIT)
        if self.calls <= self.fail_first:
            raise RuntimeError("decode exploded")
        return [outputs["frame"]]


class TestForegroundScheduler:
    """Test the synchronous decode path."""

    def test_initial_state(self, foreground):
        """Test that a fresh scheduler is idle, ready and empty."""
        assert foreground.state is SchedulerState.IDLE
        assert foreground.is_ready()
        assert foreground.get_results() == ()
        assert foreground.get_last_result().cycle == 0

    def test_full_cycle(self, foreground):
        """Test start -> poll -> ready with results."""
        assert foreground.start("frame-1", timestamp=1.0)
        assert foreground.state is SchedulerState.AWAITING_DEVICE
        assert not foreground.is_ready()

        assert foreground.poll_or_complete()
        assert foreground.state is SchedulerState.IDLE
        assert foreground.is_ready()
        assert foreground.get_results() == ("frame-1",)

        result = foreground.get_last_result()
        assert result.cycle == 1
        assert result.timestamp == 1.0
        assert result.ok

    def test_start_outside_idle_raises(self, foreground):
        foreground.start("a")
        with pytest.raises(SchedulerStateError):
            foreground.start("b")

    def test_poll_waits_for_device(self):
        """Test that polling before the device finishes is a no-op."""
        handles = []

        def make_handle(outputs):
            handles.append(ManualHandle(outputs))
            return handles[-1]

        scheduler = InferenceScheduler(FakeBackend(handle_fn=make_handle), background=False)
        scheduler.start("frame")

        assert not scheduler.poll_or_complete()
        assert scheduler.state is SchedulerState.AWAITING_DEVICE
        assert not scheduler.is_ready()

        handles[0].done = True
        assert scheduler.poll_or_complete()
        assert scheduler.get_results() == ("frame",)
        scheduler.shutdown()

    def test_poll_when_idle_is_noop(self, foreground):
        assert not foreground.poll_or_complete()
        assert foreground.state is SchedulerState.IDLE

    def test_decode_fault_publishes_empty(self):
        """Test that a foreground decode error is contained."""
        def boom(outputs):
            raise RuntimeError("bad tensors")

        scheduler = InferenceScheduler(FakeBackend(decode_fn=boom), background=False)
        scheduler.start("frame")
        assert scheduler.poll_or_complete()

        assert scheduler.is_ready()
        assert scheduler.get_results() == ()
        assert isinstance(scheduler.get_last_result().error, RuntimeError)
        scheduler.shutdown()

    def test_device_fault_publishes_empty(self):
        """Test that an error retrieving device outputs is contained."""
        def failing_handle(outputs):
            handle = ManualHandle(outputs, error=IOError("device lost"))
            handle.done = True
            return handle

        scheduler = InferenceScheduler(FakeBackend(handle_fn=failing_handle), background=False)
        scheduler.start("frame")
        assert scheduler.poll_or_complete()
        assert scheduler.is_ready()
        assert not scheduler.get_last_result().ok
        assert scheduler.start("next")
        scheduler.shutdown()

    def test_preprocess_fault(self):
        """Test that a submission error returns False and leaves the scheduler ready."""
        scheduler = InferenceScheduler(FakeBackend(preprocess_error=ValueError("bad frame")), background=False)
        assert not scheduler.start("frame")
        assert scheduler.is_ready()
        assert scheduler.state is SchedulerState.IDLE
        scheduler.shutdown()

    def test_abort_when_idle_keeps_results(self, foreground):
        """Test that aborting with no cycle in flight keeps the last results."""
        foreground.start("frame", timestamp=2.0)
        foreground.poll_or_complete()

        foreground.abort_cycle(RuntimeError("late fault"))
        assert foreground.get_results() == ("frame",)
        assert foreground.get_last_result().ok
        assert foreground.get_last_result().timestamp == 2.0

    def test_abort_in_flight_cycle(self, foreground):
        """Test that aborting a pending cycle publishes it as empty and forces ready."""
        foreground.start("frame", timestamp=4.0)
        foreground.abort_cycle(RuntimeError("stuck"))

        assert foreground.is_ready()
        assert foreground.state is SchedulerState.IDLE
        result = foreground.get_last_result()
        assert result.results == ()
        assert result.timestamp == 4.0
        assert isinstance(result.error, RuntimeError)

    def test_future_execution(self):
        """Test a runner that completes through a Future."""
        futures = []

        def future_handle(outputs):
            futures.append((Future(), outputs))
            return FutureExecution(futures[-1][0])

        scheduler = InferenceScheduler(FakeBackend(handle_fn=future_handle), background=False)
        scheduler.start("frame")
        assert not scheduler.poll_or_complete()

        future, outputs = futures[0]
        future.set_result(outputs)
        assert scheduler.poll_or_complete()
        assert scheduler.get_results() == ("frame",)
        scheduler.shutdown()


class TestBackgroundScheduler:
    """Test decoding on the worker thread."""

    def test_decode_runs_off_caller_thread(self):
        """Test that poll returns while decode is still running."""
        gate = GatedDecode()
        scheduler = InferenceScheduler(FakeBackend(decode_fn=gate), background=True)
        try:
            scheduler.start("frame")
            assert scheduler.poll_or_complete()
            assert gate.entered.wait(WAIT)
            assert scheduler.state is SchedulerState.DECODING
            assert not scheduler.is_ready()

            gate.release.set()
            assert scheduler.wait_ready(WAIT)
            assert scheduler.get_results() == ("frame",)
        finally:
            gate.release.set()
            scheduler.shutdown()

    def test_previous_results_visible_during_decode(self):
        """Test that readers see the last published cycle while the next decodes."""
        gate = GatedDecode()
        gate.release.set()
        scheduler = InferenceScheduler(FakeBackend(decode_fn=gate), background=True)
        try:
            scheduler.start("first")
            scheduler.poll_or_complete()
            assert scheduler.wait_ready(WAIT)
            first = scheduler.get_results()

            gate.release.clear()
            gate.entered.clear()
            scheduler.start("second")
            scheduler.poll_or_complete()
            assert gate.entered.wait(WAIT)
            assert scheduler.get_results() is first

            gate.release.set()
            assert scheduler.wait_ready(WAIT)
            assert scheduler.get_results() == ("second",)
        finally:
            gate.release.set()
            scheduler.shutdown()

    def test_worker_fault_isolation(self):
        """Test that a decode exception forces ready and the next cycle succeeds."""
        gate = GatedDecode(fail_first=1)
        gate.release.set()
        scheduler = InferenceScheduler(FakeBackend(decode_fn=gate), background=True)
        try:
            scheduler.start("bad")
            scheduler.poll_or_complete()
            assert scheduler.wait_ready(WAIT)
            assert scheduler.get_results() == ()
            assert isinstance(scheduler.get_last_result().error, RuntimeError)

            assert scheduler.start("good")
            scheduler.poll_or_complete()
            assert scheduler.wait_ready(WAIT)
            assert scheduler.get_results() == ("good",)
        finally:
            scheduler.shutdown()

    def test_stale_cycle_is_not_published(self):
        """Test that an aborted cycle finishing late cannot overwrite a newer one."""
        gate = GatedDecode()
        scheduler = InferenceScheduler(FakeBackend(decode_fn=gate), background=True)
        try:
            scheduler.start("old")
            scheduler.poll_or_complete()
            assert gate.entered.wait(WAIT)

            scheduler.abort_cycle()
            assert scheduler.is_ready()
            assert scheduler.start("new")
            scheduler.poll_or_complete()

            gate.release.set()
            assert scheduler.wait_ready(WAIT)
            result = scheduler.get_last_result()
            assert result.cycle == 2
            assert result.results == ("new",)
        finally:
            gate.release.set()
            scheduler.shutdown()

    def test_shutdown_joins_worker(self):
        """Test that shutdown stops the thread and closes the backend."""
        backend = FakeBackend()
        scheduler = InferenceScheduler(backend, background=True)
        worker = scheduler._worker
        assert worker.is_alive()

        scheduler.shutdown()
        assert not worker.is_alive()
        assert backend.closed
        assert scheduler.is_ready()

        with pytest.raises(SchedulerStateError):
            scheduler.start("frame")
        scheduler.shutdown()

    def test_shutdown_waits_for_inflight_decode(self):
        """Test that shutdown returns only after the running decode finishes."""
        gate = GatedDecode()
        backend = FakeBackend()
        closed_when_decoded = []

        def decode(outputs):
            results = gate(outputs)
            closed_when_decoded.append(backend.closed)
            return results

        backend.decode_fn = decode
        scheduler = InferenceScheduler(backend, background=True)
        scheduler.start("frame")
        scheduler.poll_or_complete()
        assert gate.entered.wait(WAIT)

        stopper = threading.Thread(target=scheduler.shutdown)
        stopper.start()
        try:
            stopper.join(0.2)
            assert stopper.is_alive()
            assert not backend.closed
        finally:
            gate.release.set()
        stopper.join(WAIT)

        assert not stopper.is_alive()
        assert backend.closed
        assert closed_when_decoded == [False]
        assert not scheduler._worker.is_alive()

    def test_shutdown_timeout_leaves_backend_open(self):
        """Test that a decode outliving the join timeout keeps the backend open."""
        gate = GatedDecode()
        backend = FakeBackend(decode_fn=gate)
        scheduler = InferenceScheduler(backend, background=True, worker_join_timeout=0.05)
        try:
            scheduler.start("frame")
            scheduler.poll_or_complete()
            assert gate.entered.wait(WAIT)

            scheduler.shutdown()
            assert scheduler.closed
            assert not backend.closed
        finally:
            gate.release.set()
            assert scheduler._worker.stop(WAIT)

    def test_worker_fault_keeps_frame_timestamp(self):
        """Test that a failed background cycle carries its own frame timestamp."""
        gate = GatedDecode(fail_first=1)
        gate.release.set()
        scheduler = InferenceScheduler(FakeBackend(decode_fn=gate), background=True)
        try:
            scheduler.start("bad", timestamp=3.0)
            scheduler.poll_or_complete()
            assert scheduler.wait_ready(WAIT)
            result = scheduler.get_last_result()
            assert not result.ok
            assert result.timestamp == 3.0
        finally:
            scheduler.shutdown()

    def test_from_config(self):
        scheduler = InferenceScheduler.from_config(FakeBackend(), SchedulerConfig(background=False))
        assert not scheduler.background
        scheduler.shutdown()

    def test_context_manager(self):
        backend = FakeBackend()
        with InferenceScheduler(backend, background=True) as scheduler:
            scheduler.start("frame")
            scheduler.poll_or_complete()
            assert scheduler.wait_ready(WAIT)
        assert backend.closed


class TestDecodeWorker:
    """Test the worker loop directly."""

    def test_handler_errors_go_to_on_error(self):
        errors = []
        done = threading.Event()

        def handler(job):
            if job == "bad":
                raise KeyError(job)
            done.set()

        def on_error(job, error):
            errors.append((job, error))

        worker = DecodeWorker("test", handler, on_error)
        worker.start()
        worker.submit("bad")
        worker.submit("good")
        assert done.wait(WAIT)
        assert worker.stop(WAIT)

        assert len(errors) == 1
        assert errors[0][0] == "bad"
        assert isinstance(errors[0][1], KeyError)

    def test_submit_after_stop_raises(self):
        worker = DecodeWorker("test", lambda job: None, lambda job, e: None)
        worker.start()
        assert worker.stop(WAIT)
        with pytest.raises(RuntimeError):
            worker.submit("job")
