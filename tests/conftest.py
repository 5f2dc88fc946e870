import time
import pytest
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from clipbatch.config.models import AppConfig
from clipbatch.domain.errors import ProbeError
from clipbatch.domain.models import MediaInfo
from clipbatch.infrastructure.event_bus import EventBus
from clipbatch.infrastructure.ffmpeg import FFmpegAdapter, tmp_path_for

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns an AppConfig with fast stability checks and timers that never fire on their own."""
    return AppConfig(
        watch={
            "poll_interval_s": 0.01,
            "stable_readings": 1,
            "stability_timeout_s": 2.0,
            "identity_mode": "stat",
            "intake_workers": 2,
        },
        queue={
            "drain_interval_s": 3600,
            "gc_interval_s": 3600,
            "retry_budget": 3,
        },
        merge={
            "check_interval_s": 3600,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "clipbatch.yaml"

    content = {
        'general': {
            'staging_dir_name': 'archive',
            'debug': True,
        },
        'watch': {
            'extensions': ['mp4', 'MOV'],
            'identity_mode': 'path',
        },
        'transcode': {
            'target_duration_s': 15,
            'crf': 28,
            'preset': 'veryfast',
        },
        'merge': {
            'batch_size': 3,
            'outputs_per_group': 2,
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def watch_root(tmp_path):
    """Creates the watched root directory."""
    root = tmp_path / "watch"
    root.mkdir()
    return root

@pytest.fixture
def make_group(watch_root):
    """Factory creating `S1---<name>` with normalized outputs and raw clips."""
    def _make(name: str, ordinals=(), raw: List[str] = (), tag: str = "S1---") -> Path:
        group = watch_root / f"{tag}{name}"
        group.mkdir()
        for ordinal in ordinals:
            (group / f"{name}---{ordinal}.mp4").write_bytes(b"normalized")
        for raw_name in raw:
            (group / raw_name).write_bytes(b"raw clip content " * 64)
        return group
    return _make

# ============================================================================
# Fake media tools (no real ffmpeg/ffprobe required)
# ============================================================================

class FakeProbe:
    """ffprobe stand-in answering from a name → duration table.

    Files missing from the table raise ProbeError, like an unreadable clip.
    """

    def __init__(self, durations: Optional[Dict[str, float]] = None, has_audio: bool = True):
        self.durations: Dict[str, float] = dict(durations or {})
        self.has_audio = has_audio
        self.calls: List[Path] = []

    def get_media_info(self, file_path: Path) -> MediaInfo:
        self.calls.append(file_path)
        if file_path.name not in self.durations:
            raise ProbeError(file_path, "duration unavailable")
        return MediaInfo(duration=self.durations[file_path.name], has_audio=self.has_audio)

    def get_duration(self, file_path: Path) -> float:
        return self.get_media_info(file_path).duration


class FakeFFmpeg(FFmpegAdapter):
    """Real command building; `run` writes the .tmp output instead of spawning ffmpeg.

    The written file reports `total_duration` to the paired FakeProbe, so
    verification sees exactly what a correct encode would produce.
    """

    def __init__(self, event_bus, probe: FakeProbe, fail_with: Optional[Exception] = None):
        super().__init__(event_bus=event_bus)
        self.probe = probe
        self.fail_with = fail_with
        self.runs: List[dict] = []

    def run(self, cmd, source_path, output_path, total_duration, stage, shutdown_event=None, progress_callback=None):
        self.runs.append({
            "cmd": cmd,
            "source": source_path,
            "output": output_path,
            "total_duration": total_duration,
            "stage": stage,
        })
        if self.fail_with is not None:
            raise self.fail_with
        tmp_path = tmp_path_for(output_path)
        tmp_path.write_bytes(b"encoded")
        self.probe.durations[tmp_path.name] = total_duration


@pytest.fixture
def fake_probe():
    return FakeProbe()

@pytest.fixture
def fake_ffmpeg(event_bus, fake_probe):
    return FakeFFmpeg(event_bus, fake_probe)

# ============================================================================
# Helpers
# ============================================================================

def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Polls `predicate` until it is truthy or the timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
