"""
Capability interface shared by every predictor variant.

A backend knows how to prepare a frame, hand it to the accelerator, and turn
the finished output tensors into results. The scheduler owns the lifecycle.
"""
from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Any, Mapping, Sequence

import numpy as np


class ExecutionHandle(ABC):
    """Device-completion signal for one submitted inference."""

    @abstractmethod
    def is_done(self) -> bool: ...

    @abstractmethod
    def outputs(self) -> Mapping[str, np.ndarray]: ...


class CompletedExecution(ExecutionHandle):
    """Handle for runners that finish synchronously."""

    def __init__(self, outputs: Mapping[str, np.ndarray]):
        self._outputs = outputs

    def is_done(self) -> bool:
        return True

    def outputs(self) -> Mapping[str, np.ndarray]:
        return self._outputs


class FutureExecution(ExecutionHandle):
    """Handle wrapping a concurrent.futures.Future from an async runner."""

    def __init__(self, future: Future):
        self._future = future

    def is_done(self) -> bool:
        return self._future.done()

    def outputs(self) -> Mapping[str, np.ndarray]:
        # Re-raises whatever the runner raised
        return self._future.result(timeout=0)


class PredictorBackend(ABC):
    """
    Model adapter interface.

    Implementations supply preprocessing, execution and decoding for one
    model; the scheduler drives them through the same state machine.
    """

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def preprocess(self, frame: Any) -> Any: ...

    @abstractmethod
    def execute(self, inputs: Any) -> ExecutionHandle: ...

    @abstractmethod
    def decode(self, outputs: Mapping[str, np.ndarray]) -> Sequence[Any]: ...

    def close(self) -> None:
        """Release model resources. Default: nothing to release."""
