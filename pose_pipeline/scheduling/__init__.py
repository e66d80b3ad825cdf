from .controller import PredictorController
from .scheduler import InferenceResult, InferenceScheduler, SchedulerState, SchedulerStateError
from .worker import DecodeWorker

__all__ = [
    "DecodeWorker",
    "InferenceResult",
    "InferenceScheduler",
    "PredictorController",
    "SchedulerState",
    "SchedulerStateError",
]
