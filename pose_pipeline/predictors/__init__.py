from .base import CompletedExecution, ExecutionHandle, FutureExecution, PredictorBackend
from .posenet import PosenetBackend, default_preprocess, sigmoid

__all__ = [
    "CompletedExecution",
    "ExecutionHandle",
    "FutureExecution",
    "PredictorBackend",
    "PosenetBackend",
    "default_preprocess",
    "sigmoid",
]
