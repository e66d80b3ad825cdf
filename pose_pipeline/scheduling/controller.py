"""
Frame-loop driver for several predictors.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from .scheduler import InferenceScheduler

logger = logging.getLogger(__name__)


class PredictorController:
    """
    Starts, polls and collects a set of independently scheduled predictors.

    Predictors are driven in registration order and shut down in reverse.
    """

    def __init__(self):
        self._schedulers: Dict[str, InferenceScheduler] = {}
        self._enabled: Dict[str, bool] = {}
        self._last_frame_time: Optional[float] = None

    def __contains__(self, name: str) -> bool:
        return name in self._schedulers

    @property
    def names(self) -> List[str]:
        return list(self._schedulers)

    def register(self, scheduler: InferenceScheduler, enabled: bool = True) -> str:
        name = scheduler.name
        if name in self._schedulers:
            raise ValueError(f"Predictor '{name}' is already registered")
        self._schedulers[name] = scheduler
        self._enabled[name] = enabled
        logger.info(f"Registered predictor '{name}' (enabled={enabled})")
        return name

    def get(self, name: str) -> InferenceScheduler:
        if name not in self._schedulers:
            raise ValueError(f"Predictor '{name}' not registered. Available: {self.names}")
        return self._schedulers[name]

    def set_enabled(self, name: str, enabled: bool):
        self.get(name)
        self._enabled[name] = enabled
        logger.info(f"Predictor '{name}' {'enabled' if enabled else 'disabled'}")

    def is_enabled(self, name: str) -> bool:
        return self._enabled.get(name, False)

    def _active(self) -> List[Tuple[str, InferenceScheduler]]:
        return [(n, s) for n, s in self._schedulers.items() if self._enabled[n] and not s.closed]

    def tick(self, frame: Any, frame_time: float) -> List[str]:
        """
        Drive every enabled predictor once.

        A predictor is started when it is ready and the frame time differs
        from the previous tick's; every predictor with a cycle in flight is
        then polled.

        Returns:
            Names of the predictors started on this tick
        """
        new_frame = frame_time != self._last_frame_time
        self._last_frame_time = frame_time

        started = []
        for name, scheduler in self._active():
            try:
                if new_frame and scheduler.is_ready():
                    if scheduler.start(frame, frame_time):
                        started.append(name)
                scheduler.poll_or_complete()
            except Exception as e:
                logger.exception(f"Predictor '{name}' failed during tick")
                scheduler.abort_cycle(e)
        return started

    def any_ready(self) -> bool:
        return any(s.is_ready() for _, s in self._active())

    def all_ready(self) -> bool:
        return all(s.is_ready() for _, s in self._active())

    def results(self) -> Dict[str, Tuple[Any, ...]]:
        return {name: s.get_results() for name, s in self._active()}

    def shutdown(self):
        for name in reversed(list(self._schedulers)):
            try:
                self._schedulers[name].shutdown()
            except Exception:
                logger.exception(f"Error shutting down predictor '{name}'")
        logger.info("All predictors shut down")
