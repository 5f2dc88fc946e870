import itertools
import threading
import pytest
from unittest.mock import patch
from clipbatch.domain.errors import FileAccessError, StabilityTimeoutError
from clipbatch.infrastructure.stability import StabilityGate


class TickClock:
    """Advances one second per call."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        value = self.now
        self.now += 1.0
        return value


def test_stable_file_returns_size(tmp_path):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"x" * 100)

    gate = StabilityGate(poll_interval=0.001, stable_readings=3, timeout=5)

    assert gate.await_stable(clip) == 100


def test_growth_resets_the_stable_count(tmp_path):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"x")
    gate = StabilityGate(poll_interval=0, stable_readings=3, timeout=60, clock=TickClock())

    with patch.object(gate, "_size_of", side_effect=[10, 20, 30, 30, 30, 30]) as sizes:
        assert gate.await_stable(clip) == 30

    # Baseline + two growth readings + three identical readings
    assert sizes.call_count == 6


def test_ever_growing_file_times_out(tmp_path):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"x")
    gate = StabilityGate(poll_interval=0, stable_readings=3, timeout=5, clock=TickClock())

    with patch.object(gate, "_size_of", side_effect=itertools.count(1)):
        with pytest.raises(StabilityTimeoutError) as exc_info:
            gate.await_stable(clip)

    assert exc_info.value.timeout == 5
    assert "still growing" in str(exc_info.value)


def test_cancelled_wait_raises(tmp_path):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"x")
    cancel = threading.Event()
    cancel.set()

    gate = StabilityGate(poll_interval=10, stable_readings=3, timeout=60)

    with pytest.raises(StabilityTimeoutError, match="wait cancelled"):
        gate.await_stable(clip, cancel_event=cancel)


def test_missing_file_raises_file_access_error(tmp_path):
    gate = StabilityGate(poll_interval=0, stable_readings=1, timeout=5)

    with pytest.raises(FileAccessError, match="disappeared"):
        gate.await_stable(tmp_path / "gone.mp4")


def test_directory_is_not_a_file(tmp_path):
    gate = StabilityGate(poll_interval=0, stable_readings=1, timeout=5)

    with pytest.raises(FileAccessError, match="not a regular file"):
        gate.await_stable(tmp_path)
