import subprocess
import json
from pathlib import Path
from typing import Any, Dict, Iterable
from clipbatch.domain.errors import ProbeError
from clipbatch.domain.models import MediaInfo

class FFprobeAdapter:
    """Wrapper around ffprobe to read clip duration and stream layout."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    @staticmethod
    def _seconds(value: Any) -> float:
        """Parses '20.5' or clock-style 'MM:SS' / 'HH:MM:SS.fff' values; 0.0 when unusable."""
        if value is None:
            return 0.0
        text = str(value).strip()
        if not text:
            return 0.0
        fields = text.split(":")
        if len(fields) > 3:
            return 0.0
        try:
            numbers = [float(f) for f in fields]
        except ValueError:
            return 0.0
        seconds = 0.0
        for number in numbers:
            seconds = seconds * 60 + number
        return seconds

    @classmethod
    def _first_duration(cls, sections: Iterable[Dict[str, Any]]) -> float:
        # Each section offers its own duration first, then a DURATION tag (Matroska)
        for section in sections:
            tags = section.get("tags", {}) or {}
            for value in (section.get("duration"), tags.get("DURATION") or tags.get("duration")):
                seconds = cls._seconds(value)
                if seconds > 0:
                    return seconds
        return 0.0

    def _run(self, file_path: Path) -> Dict[str, Any]:
        cmd = [
            "ffprobe",
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise ProbeError(file_path, f"ffprobe timed out after {self.timeout:.0f}s")
        except OSError as e:
            raise ProbeError(file_path, f"cannot run ffprobe: {e}")

        if result.returncode != 0:
            raise ProbeError(file_path, (result.stderr or "").strip() or f"exit code {result.returncode}")

        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(file_path, f"unreadable ffprobe output: {e}")

    def get_media_info(self, file_path: Path) -> MediaInfo:
        """Executes ffprobe and returns duration plus audio presence."""
        data = self._run(file_path)
        streams = data.get("streams", []) or []
        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ProbeError(file_path, "no video stream")
        has_audio = any(s.get("codec_type") == "audio" for s in streams)

        duration = self._first_duration([data.get("format", {}) or {}, video_stream])
        if duration <= 0:
            raise ProbeError(file_path, "duration unavailable")

        return MediaInfo(duration=duration, has_audio=has_audio)

    def get_duration(self, file_path: Path) -> float:
        return self.get_media_info(file_path).duration
