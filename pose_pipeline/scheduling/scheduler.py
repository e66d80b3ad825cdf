"""
Per-predictor inference scheduler.

Drives one PredictorBackend through Idle -> Submitted -> AwaitingDevice ->
Decoding -> Idle. In background mode decoding runs on a DecodeWorker and
results are published by swapping in a new immutable InferenceResult.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

import numpy as np

from ..config import SchedulerConfig
from ..predictors.base import ExecutionHandle, PredictorBackend
from .worker import DecodeWorker

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    AWAITING_DEVICE = "awaiting_device"
    DECODING = "decoding"


class SchedulerStateError(RuntimeError):
    """Raised when start() is called outside Idle or after shutdown."""


@dataclass(frozen=True)
class InferenceResult:
    """
    Results of one completed cycle.

    Attributes:
        cycle: Sequence number of the cycle (0 before any cycle completes)
        timestamp: Frame timestamp passed to start()
        results: Decoded results, empty if the cycle failed
        error: Exception that ended the cycle, if any
    """

    cycle: int
    timestamp: Optional[float]
    results: Tuple[Any, ...]
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class _DecodeJob:
    cycle: int
    timestamp: Optional[float]
    outputs: Mapping[str, np.ndarray]


_EMPTY_RESULT = InferenceResult(cycle=0, timestamp=None, results=())


class InferenceScheduler:
    """
    Lifecycle and synchronization for one predictor.

    All public methods are meant to be called from a single orchestration
    thread; the background worker only ever calls the publish path.
    """

    def __init__(
        self,
        backend: PredictorBackend,
        background: bool = True,
        worker_join_timeout: Optional[float] = None,
    ):
        self.backend = backend
        self.background = background
        self.worker_join_timeout = worker_join_timeout

        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._ready.set()
        self._state = SchedulerState.IDLE
        self._cycle = 0
        self._timestamp: Optional[float] = None
        self._handle: Optional[ExecutionHandle] = None
        self._published = _EMPTY_RESULT
        self._closed = False

        self._worker: Optional[DecodeWorker] = None
        if background:
            self._worker = DecodeWorker(self.name, self._decode, self._on_worker_error)
            self._worker.start()

    @classmethod
    def from_config(cls, backend: PredictorBackend, config: Optional[SchedulerConfig] = None) -> "InferenceScheduler":
        config = config or SchedulerConfig()
        return cls(backend, background=config.background, worker_join_timeout=config.worker_join_timeout)

    @property
    def name(self) -> str:
        return self.backend.name()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def start(self, frame: Any, timestamp: Optional[float] = None) -> bool:
        """
        Begin a new cycle on a frame. Never blocks on the device.

        Returns:
            True if the frame was submitted, False if preprocessing or
            submission failed (the cycle is then published as empty)

        Raises:
            SchedulerStateError: If not Idle or already shut down
        """
        with self._lock:
            if self._closed:
                raise SchedulerStateError(f"Predictor '{self.name}' has been shut down")
            if self._state is not SchedulerState.IDLE:
                raise SchedulerStateError(
                    f"Predictor '{self.name}' cannot start from state {self._state.value}"
                )
            self._cycle += 1
            cycle = self._cycle
            self._timestamp = timestamp
            self._state = SchedulerState.SUBMITTED
            self._ready.clear()

        try:
            inputs = self.backend.preprocess(frame)
            handle = self.backend.execute(inputs)
        except Exception as e:
            logger.exception(f"[{self.name}] submission failed for cycle {cycle}")
            self._fail(cycle, timestamp, e)
            return False

        with self._lock:
            if self._cycle == cycle and self._state is SchedulerState.SUBMITTED:
                self._handle = handle
                self._state = SchedulerState.AWAITING_DEVICE
        return True

    def poll_or_complete(self) -> bool:
        """
        Check the device once and hand finished outputs to decoding.

        No-op outside Submitted/AwaitingDevice.

        Returns:
            True if the cycle left the device wait on this call
        """
        with self._lock:
            if self._closed or self._state not in (SchedulerState.SUBMITTED, SchedulerState.AWAITING_DEVICE):
                return False
            handle = self._handle
            cycle = self._cycle
            timestamp = self._timestamp
        if handle is None:
            return False

        try:
            if not handle.is_done():
                return False
            outputs = handle.outputs()
        except Exception as e:
            logger.exception(f"[{self.name}] device execution failed for cycle {cycle}")
            self._fail(cycle, timestamp, e)
            return True

        with self._lock:
            self._handle = None
            self._state = SchedulerState.DECODING

        job = _DecodeJob(cycle, timestamp, outputs)
        if self._worker is not None:
            self._worker.submit(job)
        else:
            try:
                self._decode(job)
            except Exception as e:
                logger.exception(f"[{self.name}] decode failed for cycle {cycle}")
                self._fail(cycle, timestamp, e)
        return True

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)

    def get_results(self) -> Tuple[Any, ...]:
        """Results of the most recently published cycle; never blocks."""
        return self._published.results

    def get_last_result(self) -> InferenceResult:
        return self._published

    def abort_cycle(self, error: Optional[BaseException] = None):
        """
        Drop the in-flight cycle, publish it as empty and force ready.

        No-op when Idle; the last published results stay in place.
        """
        with self._lock:
            if self._state is SchedulerState.IDLE:
                return
            cycle = self._cycle
            timestamp = self._timestamp
        self._fail(cycle, timestamp, error)

    def shutdown(self):
        """Stop the worker, release the backend. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if self._worker is not None and not self._worker.stop(self.worker_join_timeout):
            logger.warning(
                f"[{self.name}] decode still running after {self.worker_join_timeout}s; "
                "leaving the backend open"
            )
            return

        with self._lock:
            self._handle = None
            self._state = SchedulerState.IDLE
        self._ready.set()

        self.backend.close()
        logger.info(f"[{self.name}] predictor shut down")

    def _decode(self, job: _DecodeJob):
        results = tuple(self.backend.decode(job.outputs))
        self._publish(InferenceResult(job.cycle, job.timestamp, results))

    def _on_worker_error(self, job: _DecodeJob, error: Exception):
        self._fail(job.cycle, job.timestamp, error)

    def _fail(self, cycle: int, timestamp: Optional[float], error: Optional[BaseException]):
        self._publish(InferenceResult(cycle, timestamp, (), error))

    def _publish(self, result: InferenceResult):
        with self._lock:
            if result.cycle != self._cycle:
                logger.debug(f"[{self.name}] dropping stale result for cycle {result.cycle}")
                return
            self._published = result
            self._handle = None
            self._state = SchedulerState.IDLE
            self._ready.set()
