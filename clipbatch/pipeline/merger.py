"""Batch trigger and merge-and-archive for normalized outputs.

A group is ready once it holds `outputs_per_group` normalized outputs. A
merge is due when at least `batch_size` groups exist and at least
`batch_size` of them are ready. The merge takes the first `batch_size` ready
groups by name, the highest `outputs_per_group` ordinals of each, and
concatenates them with stream copy. Groups are only emptied and re-tagged
after the archive has been written and verified; until then nothing in the
groups is touched.
"""
import logging
import os
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field
from clipbatch.config.models import MergeConfig, TranscodeConfig
from clipbatch.domain.errors import CleanupError, MergeCountMismatchError, ProbeError, VerifyError
from clipbatch.domain.events import MergeCompleted
from clipbatch.domain.models import MergeResult, Severity, SourceGroup
from clipbatch.domain.naming import consumed_name
from clipbatch.infrastructure.ffmpeg import FFmpegAdapter, tmp_path_for
from clipbatch.infrastructure.ffprobe import FFprobeAdapter
from clipbatch.infrastructure.file_scanner import FileScanner
from clipbatch.infrastructure.housekeeping import CONCAT_LIST_PREFIX
from clipbatch.infrastructure.logging import emit_log


class BatchState(BaseModel):
    groups: List[SourceGroup] = Field(default_factory=list)
    ready: List[SourceGroup] = Field(default_factory=list)
    batch_size: int = 5

    @property
    def due(self) -> bool:
        return len(self.groups) >= self.batch_size and len(self.ready) >= self.batch_size


class BatchCondition:
    """Derives merge readiness purely from the directory listing."""

    def __init__(self, config: MergeConfig, file_scanner: FileScanner):
        self.config = config
        self.file_scanner = file_scanner

    def is_ready(self, group: SourceGroup) -> bool:
        return group.output_count >= self.config.outputs_per_group

    def evaluate(self, root: Path) -> BatchState:
        groups = self.file_scanner.source_groups(root)
        return BatchState(
            groups=groups,
            ready=[g for g in groups if self.is_ready(g)],
            batch_size=self.config.batch_size,
        )


class Merger:

    def __init__(
        self,
        config: MergeConfig,
        transcode_config: TranscodeConfig,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        event_bus=None,
    ):
        self.config = config
        self.transcode_config = transcode_config
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def _log(self, message: str, severity: Severity = Severity.INFO) -> None:
        emit_log(self.event_bus, self.logger, message, severity)

    @property
    def expected_count(self) -> int:
        return self.config.batch_size * self.config.outputs_per_group

    def select(self, ready: List[SourceGroup]) -> Tuple[List[SourceGroup], List[Path]]:
        """First `batch_size` ready groups; from each its highest ordinals, concatenated ascending."""
        groups = ready[:self.config.batch_size]
        files: List[Path] = []
        for group in groups:
            newest = sorted(group.outputs, key=lambda o: o.ordinal, reverse=True)[:self.config.outputs_per_group]
            files.extend(o.path for o in sorted(newest, key=lambda o: o.ordinal))
        if len(groups) != self.config.batch_size or len(files) != self.expected_count:
            raise MergeCountMismatchError(self.expected_count, len(files))
        return groups, files

    def archive_path(self, staging_dir: Path) -> Path:
        stamp = int(time.time() * 1000)
        candidate = staging_dir / f"{self.config.archive_prefix}{stamp}.mp4"
        while candidate.exists() or tmp_path_for(candidate).exists():
            stamp += 1
            candidate = staging_dir / f"{self.config.archive_prefix}{stamp}.mp4"
        return candidate

    def verify_archive(self, candidate: Path, label: Path, clip_count: int) -> float:
        expected = clip_count * self.transcode_config.target_duration_s
        tolerance = clip_count * self.transcode_config.verify_tolerance_s
        if not candidate.exists():
            raise VerifyError(label, "archive missing")
        try:
            duration = self.ffprobe_adapter.get_duration(candidate)
        except ProbeError as e:
            raise VerifyError(label, f"cannot probe archive: {e.reason}")
        if abs(duration - expected) > tolerance:
            raise VerifyError(label, f"archive is {duration:.2f}s, expected {expected:.2f}s")
        return duration

    def merge(
        self,
        ready: List[SourceGroup],
        staging_dir: Path,
        temp_dir: Path,
        shutdown_event: Optional[threading.Event] = None,
        progress_callback=None,
    ) -> MergeResult:
        """Concatenates the selection into one archive, then resets the groups.

        Raises MergeCountMismatchError, EncodeError or VerifyError before any
        group is touched. Cleanup failures after a verified archive are logged.
        """
        groups, files = self.select(ready)
        staging_dir.mkdir(parents=True, exist_ok=True)
        archive = self.archive_path(staging_dir)
        tmp_archive = tmp_path_for(archive)
        list_path = temp_dir / f"{CONCAT_LIST_PREFIX}{int(time.time() * 1000)}.txt"

        self._log(f"Merging {len(files)} clips from {len(groups)} groups into {archive.name}")
        try:
            self.ffmpeg_adapter.write_concat_list(files, list_path)
            cmd = self.ffmpeg_adapter.build_concat_command(
                list_path, archive, container=self.transcode_config.profile.container
            )
            self.ffmpeg_adapter.run(
                cmd,
                list_path,
                archive,
                total_duration=len(files) * self.transcode_config.target_duration_s,
                stage="merge",
                shutdown_event=shutdown_event,
                progress_callback=progress_callback,
            )
            duration = self.verify_archive(tmp_archive, archive, len(files))
            try:
                os.replace(tmp_archive, archive)
            except OSError as e:
                raise VerifyError(archive, f"cannot finalize archive: {e}")
        except Exception:
            self._discard(tmp_archive)
            raise
        finally:
            self._discard(list_path)

        for group in groups:
            try:
                self.reset_group(group.path)
            except CleanupError as e:
                self._log(str(e), Severity.ERROR)

        self._log(f"Merged {archive.name} ({duration:.0f}s, {len(files)} clips)", Severity.SUCCESS)
        if self.event_bus is not None:
            self.event_bus.publish(MergeCompleted(archive_path=archive, groups=[g.path for g in groups], clip_count=len(files)))
        return MergeResult(archive_path=archive, groups=[g.path for g in groups], files=files, duration=duration)

    def reset_group(self, group_dir: Path) -> Path:
        """Deletes every file in the group and flips its tag to consumed.

        A group whose consumed name is already taken is left untouched.
        """
        target = group_dir.with_name(consumed_name(group_dir.name, self.config.pending_tag, self.config.consumed_tag))
        if target.exists():
            raise CleanupError(group_dir, f"{target.name} already exists")
        try:
            entries = list(group_dir.iterdir())
        except OSError as e:
            raise CleanupError(group_dir, f"cannot list: {e}")
        for entry in entries:
            try:
                if entry.is_file() or entry.is_symlink():
                    entry.unlink()
            except OSError as e:
                raise CleanupError(entry, f"cannot delete: {e}")

        try:
            group_dir.rename(target)
        except OSError as e:
            raise CleanupError(group_dir, f"cannot rename to {target.name}: {e}")
        self._log(f"Emptied and renamed group: {target.name}")
        return target

    def _discard(self, path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            self.logger.warning(f"Failed to remove {path}: {e}")
