import subprocess
import re
import logging
import time
import threading
import queue
from pathlib import Path
from typing import Callable, List, Optional
from clipbatch.config.models import EncodeProfile
from clipbatch.domain.errors import EncodeError
from clipbatch.domain.events import TranscodeProgress
from clipbatch.infrastructure.event_bus import EventBus

# atempo accepts a bounded ratio per filter stage
ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0

# Regex to parse 'time=00:00:00.00' from ffmpeg output
TIME_RE = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")


def atempo_chain(speed: float) -> List[float]:
    """Splits a tempo ratio into stages that each fit atempo's range.

    2.5 → [2.0, 1.25]; 0.3 → [0.5, 0.6]; 1.1 → [1.1]
    """
    if speed <= 0:
        raise ValueError(f"speed must be positive, got {speed}")
    stages: List[float] = []
    remaining = speed
    while remaining > ATEMPO_MAX:
        stages.append(ATEMPO_MAX)
        remaining /= ATEMPO_MAX
    while remaining < ATEMPO_MIN:
        stages.append(ATEMPO_MIN)
        remaining /= ATEMPO_MIN
    stages.append(remaining)
    return stages


def _fmt(value: float) -> str:
    return f"{value:.6f}".rstrip("0").rstrip(".")


def tmp_path_for(output_path: Path) -> Path:
    """ffmpeg writes here first; renamed to the final name after verification."""
    return output_path.with_suffix('.tmp')


def _quote_concat_path(path: Path) -> str:
    # concat demuxer syntax: single quotes, embedded quote as '\''
    return "'" + str(path.resolve()).replace("'", "'\\''") + "'"


class FFmpegAdapter:
    """Wrapper around ffmpeg for retiming, trimming and concatenating clips."""

    def __init__(self, event_bus: EventBus, debug: bool = False):
        self.event_bus = event_bus
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def _encode_args(self, profile: EncodeProfile) -> List[str]:
        return [
            "-c:v", profile.video_codec,
            "-preset", profile.preset,
            "-crf", str(profile.crf),
            "-c:a", profile.audio_codec,
            "-b:a", profile.audio_bitrate,
        ]

    def build_speed_command(
        self,
        input_path: Path,
        output_path: Path,
        speed: float,
        target_duration: float,
        profile: EncodeProfile,
        has_audio: bool = True,
    ) -> List[str]:
        """Retimes the clip by `speed` (video PTS scaled by 1/speed, audio tempo by speed)."""
        cmd = [
            "ffmpeg",
            "-y",  # Overwrite output files
            "-i", str(input_path),
            "-filter:v", f"setpts={_fmt(1 / speed)}*PTS",
        ]
        if has_audio:
            tempo = ",".join(f"atempo={_fmt(stage)}" for stage in atempo_chain(speed))
            cmd.extend(["-filter:a", tempo])
        cmd.extend(["-t", _fmt(target_duration)])
        cmd.extend(self._encode_args(profile))
        # Force container since .tmp extension doesn't indicate format
        cmd.extend(["-f", profile.container, str(tmp_path_for(output_path))])
        return cmd

    def build_trim_command(
        self,
        input_path: Path,
        output_path: Path,
        target_duration: float,
        profile: EncodeProfile,
    ) -> List[str]:
        """Keeps the first `target_duration` seconds; re-encodes since the cut may miss a keyframe."""
        cmd = [
            "ffmpeg",
            "-y",
            "-i", str(input_path),
            "-t", _fmt(target_duration),
        ]
        cmd.extend(self._encode_args(profile))
        cmd.extend(["-f", profile.container, str(tmp_path_for(output_path))])
        return cmd

    def build_concat_command(self, list_path: Path, output_path: Path, container: str = "mp4") -> List[str]:
        return [
            "ffmpeg",
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(list_path),
            "-c", "copy",
            "-f", container,
            str(tmp_path_for(output_path)),
        ]

    def write_concat_list(self, files: List[Path], list_path: Path) -> Path:
        list_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [f"file {_quote_concat_path(f)}" for f in files]
        list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return list_path

    def run(
        self,
        cmd: List[str],
        source_path: Path,
        output_path: Path,
        total_duration: float,
        stage: str,
        shutdown_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[float], None]] = None,
    ) -> None:
        """Executes ffmpeg, streaming progress; raises EncodeError on failure.

        On failure or interruption the partial .tmp output is removed.
        """
        filename = source_path.name
        tmp_path = tmp_path_for(output_path)
        start_time = time.monotonic()

        if self.debug:
            self.logger.info(f"FFMPEG_START: {filename} stage={stage} target={total_duration:.1f}s")
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                bufsize=1
            )
        except OSError as e:
            raise EncodeError(source_path, None, f"could not be started: {e}")

        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()
        tail: List[str] = []

        def _reader():
            if not process.stdout:
                output_queue.put(None)
                return
            for line in process.stdout:
                output_queue.put(line)
            output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        while True:
            if shutdown_event and shutdown_event.is_set():
                self.logger.info(f"FFMPEG_INTERRUPTED: {filename} (shutdown signal)")
                process.terminate()
                try:
                    process.wait(timeout=3)
                except subprocess.TimeoutExpired:
                    process.kill()
                    process.wait()
                self._discard(tmp_path)
                raise EncodeError(source_path, None, "interrupted by shutdown")

            try:
                line = output_queue.get(timeout=0.1)
            except queue.Empty:
                if process.poll() is not None:
                    break
                continue

            if line is None:
                break

            tail.append(line.strip())
            if len(tail) > 5:
                tail.pop(0)

            match = TIME_RE.search(line)
            if match and total_duration > 0:
                h, m, s = map(float, match.groups())
                current_seconds = h * 3600 + m * 60 + s
                progress_percent = min(100.0, (current_seconds / total_duration) * 100.0)
                if progress_callback:
                    progress_callback(progress_percent)
                self.event_bus.publish(TranscodeProgress(path=source_path, stage=stage, progress_percent=progress_percent))

        process.wait()
        elapsed = time.monotonic() - start_time

        if process.returncode != 0:
            self._discard(tmp_path)
            self.logger.info(f"FFMPEG_END: {filename} stage={stage} status=failed code={process.returncode} elapsed={elapsed:.2f}s")
            detail = next((t for t in reversed(tail) if t), "")
            raise EncodeError(source_path, process.returncode, detail)

        if self.debug:
            self.logger.info(f"FFMPEG_END: {filename} stage={stage} status=completed elapsed={elapsed:.2f}s")

    def _discard(self, tmp_path: Path) -> None:
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError as e:
            self.logger.warning(f"Failed to remove partial output {tmp_path}: {e}")
