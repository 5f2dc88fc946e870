import logging
import threading
import time
from typing import Callable, Optional


class PeriodicTask:
    """Runs `func` every `interval` seconds on a daemon thread until stopped.

    Exceptions raised by `func` are logged and the timer keeps running.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], None], run_immediately: bool = False):
        self.name = name
        self.interval = interval
        self.func = func
        self.run_immediately = run_immediately
        self.logger = logging.getLogger(__name__)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self):
        next_tick = time.monotonic()
        if not self.run_immediately:
            next_tick += self.interval
            if self._stop_event.wait(self.interval):
                return

        while not self._stop_event.is_set():
            try:
                self.func()
            except Exception as e:
                self.logger.error(f"Timer {self.name} failed: {e}")

            # Compensated sleep
            next_tick += self.interval
            sleep_time = next_tick - time.monotonic()
            if sleep_time <= 0:
                next_tick = time.monotonic()
                sleep_time = 0
            if self._stop_event.wait(sleep_time):
                break

    def start(self):
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=f"clipbatch-{self.name}", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 1.0):
        self._stop_event.set()
        if self._thread:
            if self._thread is not threading.current_thread():
                self._thread.join(timeout=timeout)
            self._thread = None
