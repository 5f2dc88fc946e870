import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional
from clipbatch.domain.errors import FileAccessError, StabilityTimeoutError


class StabilityGate:
    """Waits until a file has stopped growing.

    Polls the size every `poll_interval` seconds. After a baseline reading it
    needs `stable_readings` consecutive identical sizes; a file copied over a
    slow transport is therefore never picked up mid-copy.
    """

    def __init__(
        self,
        poll_interval: float = 1.0,
        stable_readings: int = 3,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.poll_interval = poll_interval
        self.stable_readings = stable_readings
        self.timeout = timeout
        self._clock = clock
        self.logger = logging.getLogger(__name__)

    def _size_of(self, path: Path) -> int:
        try:
            stat = path.stat()
        except FileNotFoundError:
            raise FileAccessError(path, "file disappeared while waiting for it to settle")
        except OSError as e:
            raise FileAccessError(path, str(e))
        if not path.is_file():
            raise FileAccessError(path, "not a regular file")
        return stat.st_size

    def await_stable(
        self,
        path: Path,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Blocks until `path` is stable and returns its final size."""
        budget = self.timeout if timeout is None else timeout
        deadline = self._clock() + budget
        last_size = self._size_of(path)
        identical = 0

        while identical < self.stable_readings:
            if self._clock() >= deadline:
                raise StabilityTimeoutError(path, budget)
            if cancel_event is not None:
                if cancel_event.wait(self.poll_interval):
                    raise StabilityTimeoutError(path, budget, reason="wait cancelled")
            else:
                time.sleep(self.poll_interval)

            size = self._size_of(path)
            if size == last_size:
                identical += 1
            else:
                self.logger.debug(f"STABILITY: {path.name} grew {last_size} -> {size}")
                last_size = size
                identical = 0

        return last_size
