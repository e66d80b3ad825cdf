"""
Dedicated decode worker thread.

Jobs are handed over through a queue; a sentinel plus a stop event end the
loop. Exceptions raised by the handler are caught here and reported through
on_error so a failing job never kills the thread.
"""
import logging
import queue
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class DecodeWorker:
    def __init__(
        self,
        name: str,
        handler: Callable[[Any], None],
        on_error: Callable[[Any, Exception], None],
    ):
        self.name = name
        self._handler = handler
        self._on_error = on_error
        self._jobs: "queue.Queue[Any]" = queue.Queue()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name=f"{self.name}-decode", daemon=True)
        self._thread.start()
        logger.info(f"Decode worker '{self.name}' started")

    def submit(self, job: Any):
        if self._stop_event.is_set():
            raise RuntimeError(f"Decode worker '{self.name}' is stopped")
        self._jobs.put(job)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Ask the worker to exit and wait for it.

        Returns:
            True if the thread has terminated (or never started)
        """
        self._stop_event.set()
        self._jobs.put(_STOP)
        if self._thread is None:
            return True

        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning(f"Decode worker '{self.name}' did not stop within {timeout}s")
            return False
        logger.info(f"Decode worker '{self.name}' stopped")
        return True

    def _loop(self):
        while not self._stop_event.is_set():
            job = self._jobs.get()
            if job is _STOP or self._stop_event.is_set():
                break
            try:
                self._handler(job)
            except Exception as e:
                logger.exception(f"Decode worker '{self.name}' failed on job")
                self._on_error(job, e)
