"""Normalizes a raw clip to the target duration.

Policy by measured duration d (target T, window W):

    |d - T| < exact tolerance   → nothing to do, source untouched
    d < T - W                   → too short to stretch, source untouched
    T - W <= d <= T + W         → retime by speed = d / T
    d > T + W                   → keep the first T seconds

ffmpeg writes `<stem>---<N>.tmp`; the engine verifies the duration, renames
it to `<stem>---<N>.mp4` and only then deletes the source.
"""
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional, Set
from clipbatch.config.models import TranscodeConfig
from clipbatch.domain.errors import ProbeError, VerifyError
from clipbatch.domain.models import Severity, TranscodeAction, TranscodeOutcome
from clipbatch.domain.naming import PENDING_TAG, group_stem, next_ordinal, output_name
from clipbatch.infrastructure.ffmpeg import FFmpegAdapter, tmp_path_for
from clipbatch.infrastructure.ffprobe import FFprobeAdapter
from clipbatch.infrastructure.logging import emit_log


class TranscodeEngine:

    def __init__(
        self,
        config: TranscodeConfig,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        event_bus=None,
        pending_tag: str = PENDING_TAG,
    ):
        self.config = config
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.event_bus = event_bus
        self.pending_tag = pending_tag
        self.logger = logging.getLogger(__name__)
        self._reserve_lock = threading.Lock()
        self._reserved: Set[Path] = set()

    @property
    def target(self) -> float:
        return self.config.target_duration_s

    def _log(self, message: str, severity: Severity = Severity.INFO) -> None:
        emit_log(self.event_bus, self.logger, message, severity)

    def plan(self, duration: float) -> TranscodeAction:
        target = self.target
        if abs(duration - target) < self.config.exact_tolerance_s:
            return TranscodeAction.NONE
        if duration < target - self.config.speed_window_s:
            return TranscodeAction.REJECT
        if duration <= target + self.config.speed_window_s:
            return TranscodeAction.SPEED
        return TranscodeAction.TRIM

    def speed_for(self, duration: float) -> float:
        return duration / self.target

    def probe_duration(self, path: Path) -> float:
        return self.ffprobe_adapter.get_duration(path)

    def reserve_output_path(self, group_dir: Path) -> Path:
        """Next free `<stem>---<N>.mp4` in the group (max existing ordinal + 1).

        Paths handed out but not yet written count as taken.
        """
        with self._reserve_lock:
            try:
                names = os.listdir(group_dir)
            except OSError as e:
                raise VerifyError(group_dir, f"cannot list group directory: {e}")
            names.extend(p.name for p in self._reserved if p.parent == group_dir)
            stem = group_stem(group_dir.name, self.pending_tag)
            output_path = group_dir / output_name(stem, next_ordinal(names))
            self._reserved.add(output_path)
            return output_path

    def _release(self, output_path: Path) -> None:
        with self._reserve_lock:
            self._reserved.discard(output_path)

    def verify(self, candidate: Path, label: Optional[Path] = None) -> float:
        """Checks that the written file exists and is within tolerance of the target."""
        label = label or candidate
        if not candidate.exists():
            raise VerifyError(label, "output file missing")
        try:
            duration = self.ffprobe_adapter.get_duration(candidate)
        except ProbeError as e:
            raise VerifyError(label, f"cannot probe output: {e.reason}")
        if abs(duration - self.target) > self.config.verify_tolerance_s:
            raise VerifyError(label, f"duration {duration:.2f}s outside {self.target:.2f}±{self.config.verify_tolerance_s:.2f}s")
        return duration

    def normalize(
        self,
        source: Path,
        shutdown_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[float], None]] = None,
    ) -> TranscodeOutcome:
        """Runs the duration policy on one raw clip.

        Raises ProbeError, EncodeError or VerifyError; the caller decides
        whether to retry. The source is deleted only after verification.
        """
        info = self.ffprobe_adapter.get_media_info(source)
        duration = info.duration
        self._log(f"Duration of {source.name}: {duration:.2f}s")

        action = self.plan(duration)
        if action == TranscodeAction.NONE:
            self._log(f"{source.name} is already {self.target:.0f}s, nothing to do")
            return TranscodeOutcome.ALREADY_NORMALIZED
        if action == TranscodeAction.REJECT:
            self._log(
                f"{source.name} is shorter than {self.target - self.config.speed_window_s:.0f}s and cannot be normalized",
                Severity.WARNING,
            )
            return TranscodeOutcome.UNPROCESSABLE

        output_path = self.reserve_output_path(source.parent)
        tmp_path = tmp_path_for(output_path)
        profile = self.config.profile
        try:
            if action == TranscodeAction.SPEED:
                speed = self.speed_for(duration)
                self._log(f"Retiming {source.name}: speed {speed:.3f}")
                cmd = self.ffmpeg_adapter.build_speed_command(
                    source, output_path, speed, self.target, profile, has_audio=info.has_audio
                )
            else:
                self._log(f"Trimming {source.name} to the first {self.target:.0f}s")
                cmd = self.ffmpeg_adapter.build_trim_command(source, output_path, self.target, profile)

            self.ffmpeg_adapter.run(
                cmd,
                source,
                output_path,
                total_duration=self.target,
                stage=action.value,
                shutdown_event=shutdown_event,
                progress_callback=progress_callback,
            )
            out_duration = self.verify(tmp_path, label=output_path)
            try:
                os.replace(tmp_path, output_path)
            except OSError as e:
                raise VerifyError(output_path, f"cannot finalize output: {e}")
        except Exception:
            self._discard(tmp_path)
            raise
        finally:
            self._release(output_path)

        try:
            source.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            # Output is valid; a retry would only produce a duplicate
            self._log(f"Normalized {source.name} but could not delete it: {e}", Severity.ERROR)

        self._log(
            f"Normalized {output_path.name} ({duration:.2f}s → {out_duration:.2f}s)",
            Severity.SUCCESS,
        )
        return TranscodeOutcome.NORMALIZED

    def _discard(self, path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            self.logger.warning(f"Failed to remove partial output {path}: {e}")
