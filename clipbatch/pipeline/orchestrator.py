"""Pipeline orchestrator for the watch → normalize → merge lifecycle.

Owns the directory watcher, the processing queue and the periodic timers, and
exposes the two commands of the core: `start(directory)` and `stop()`.

Threads involved:
- watchdog observer thread: only forwards raw add/change/unlink events
- intake pool: stability wait + identity key + enqueue, one pending per path
- drain timer: claims the queue head and submits it to the transcode pool
- merge timer: re-evaluates the batch condition from the directory listing
- gc timer: expires recently-completed identity keys
- transcode pool: runs TranscodeEngine.normalize, sized by max_in_flight

Draining and merging share `_work_lock`, so a merge never starts while an
entry is being claimed and no entry is claimed while a merge runs. Every
state change is published as a StatusChanged event.
"""

import concurrent.futures
import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Set, Union
from clipbatch.config.models import AppConfig
from clipbatch.domain.errors import (
    ClipBatchError,
    FileAccessError,
    NotFoundError,
    StabilityTimeoutError,
)
from clipbatch.domain.events import EntryQueued, StatusChanged, TranscodeProgress
from clipbatch.domain.models import (
    CommandResult,
    MergeResult,
    PipelineStatus,
    ProcessingStats,
    QueueEntry,
    Severity,
    TranscodeOutcome,
)
from clipbatch.domain.naming import is_raw_clip
from clipbatch.infrastructure.event_bus import EventBus
from clipbatch.infrastructure.ffmpeg import FFmpegAdapter
from clipbatch.infrastructure.ffprobe import FFprobeAdapter
from clipbatch.infrastructure.file_scanner import FileScanner
from clipbatch.infrastructure.housekeeping import HousekeepingService
from clipbatch.infrastructure.identity import IdentityKeyer
from clipbatch.infrastructure.logging import emit_log
from clipbatch.infrastructure.stability import StabilityGate
from clipbatch.infrastructure.timers import PeriodicTask
from clipbatch.infrastructure.watcher import EVENT_SCAN, EVENT_UNLINK, DirectoryWatcher
from clipbatch.pipeline.merger import BatchCondition, BatchState, Merger
from clipbatch.pipeline.queue import ProcessingQueue
from clipbatch.pipeline.transcode import TranscodeEngine

WatcherFactory = Callable[[Path, Callable[[str, Path], None]], DirectoryWatcher]


class Pipeline:
    """Autonomous watch/normalize/merge pipeline over one watched root.

    Args:
        config: AppConfig with general, watch, queue, transcode and merge sections.
        event_bus: EventBus receiving LogEmitted, StatusChanged and progress events.
        ffprobe_adapter: FFprobeAdapter for duration probing and verification.
        ffmpeg_adapter: FFmpegAdapter for retime, trim and concat runs.
        file_scanner: FileScanner for groups and outputs (built from config if omitted).
        housekeeping: HousekeepingService for `.tmp` and concat list cleanup.
        watcher_factory: Callable(root, callback) returning an object with start()/stop().
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        file_scanner: Optional[FileScanner] = None,
        housekeeping: Optional[HousekeepingService] = None,
        watcher_factory: WatcherFactory = DirectoryWatcher,
        stability_gate: Optional[StabilityGate] = None,
        identity_keyer: Optional[IdentityKeyer] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.file_scanner = file_scanner or FileScanner(
            extensions=config.watch.extensions,
            pending_tag=config.merge.pending_tag,
        )
        self.housekeeping = housekeeping or HousekeepingService()
        self.watcher_factory = watcher_factory
        self.stability_gate = stability_gate or StabilityGate(
            poll_interval=config.watch.poll_interval_s,
            stable_readings=config.watch.stable_readings,
            timeout=config.watch.stability_timeout_s,
        )
        self.identity_keyer = identity_keyer or IdentityKeyer(config.watch.identity_mode)
        self.logger = logging.getLogger(__name__)

        self.queue = ProcessingQueue(
            retry_budget=config.queue.retry_budget,
            recent_window=config.queue.recent_window_s,
        )
        self.engine = TranscodeEngine(
            config.transcode,
            ffprobe_adapter,
            ffmpeg_adapter,
            event_bus=event_bus,
            pending_tag=config.merge.pending_tag,
        )
        self.batch_condition = BatchCondition(config.merge, self.file_scanner)
        self.merger = Merger(
            config.merge,
            config.transcode,
            ffprobe_adapter,
            ffmpeg_adapter,
            event_bus=event_bus,
        )

        # Run state
        self._root: Optional[Path] = None
        self._staging_dir: Optional[Path] = None
        self._temp_dir: Optional[Path] = None
        self._monitoring = False
        self._lifecycle_lock = threading.RLock()
        self._shutdown_event = threading.Event()
        self._work_lock = threading.Lock()
        self._watcher = None
        self._timers: List[PeriodicTask] = []
        self._intake_pool: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._transcode_pool: Optional[concurrent.futures.ThreadPoolExecutor] = None

        # Intake dedup (paths with a stability wait already scheduled)
        self._pending_intake: Set[Path] = set()
        self._intake_lock = threading.Lock()

        # Status (cached group counts, refreshed on completion and merge checks)
        self._status_lock = threading.Lock()
        self._source_group_count = 0
        self._ready_group_count = 0
        self._activity = "idle"
        self._progress: Optional[float] = None

        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.event_bus.subscribe(TranscodeProgress, self._on_transcode_progress)

    def _log(self, message: str, severity: Severity = Severity.INFO) -> None:
        emit_log(self.event_bus, self.logger, message, severity)

    # ------------------------------------------------------------------ status

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    @property
    def root(self) -> Optional[Path]:
        return self._root

    def get_status(self) -> PipelineStatus:
        with self._status_lock:
            return PipelineStatus(
                monitoring=self._monitoring,
                source_group_count=self._source_group_count,
                ready_group_count=self._ready_group_count,
                current_activity=self._activity,
                progress_percent=self._progress,
                queue_depth=self.queue.depth,
            )

    def get_stats(self) -> ProcessingStats:
        """Queue counters plus the cached number of accepting groups."""
        with self._status_lock:
            groups = self._source_group_count
        return ProcessingStats(
            in_flight=self.queue.in_flight_count,
            recently_completed=self.queue.recent_count,
            queued=self.queue.depth,
            source_groups=groups,
        )

    def _publish_status(self) -> None:
        self.event_bus.publish(StatusChanged(status=self.get_status()))

    def _set_activity(self, activity: str, progress: Optional[float] = None) -> None:
        with self._status_lock:
            self._activity = activity
            self._progress = progress
        self._publish_status()

    def _apply_counts(self, state: BatchState) -> None:
        with self._status_lock:
            self._source_group_count = len(state.groups)
            self._ready_group_count = len(state.ready)

    def _refresh_counts(self, root: Path) -> BatchState:
        state = self.batch_condition.evaluate(root)
        self._apply_counts(state)
        return state

    def _on_transcode_progress(self, event: TranscodeProgress):
        with self._status_lock:
            self._activity = f"{event.stage} {event.path.name}"
            self._progress = round(event.progress_percent, 1)
        self._publish_status()

    # ---------------------------------------------------------------- commands

    def start(self, directory: Union[str, Path]) -> CommandResult:
        """Begins monitoring `directory`; a running session is stopped first."""
        with self._lifecycle_lock:
            if self._monitoring:
                self.stop()

            root = Path(directory).expanduser()
            if not root.is_dir():
                err = NotFoundError(root)
                self._log(str(err), Severity.ERROR)
                return CommandResult(ok=False, message=str(err))
            root = root.resolve()

            staging_dir = root / self.config.general.staging_dir_name
            temp_dir = root / self.config.general.temp_dir_name
            try:
                staging_dir.mkdir(parents=True, exist_ok=True)
                temp_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                self._log(f"Cannot create working directories in {root}: {e}", Severity.ERROR)
                return CommandResult(ok=False, message=str(e))

            removed = self._housekeep(root, staging_dir, temp_dir)
            if removed:
                self._log(f"Removed {removed} leftover file(s) from a previous run")

            self._root = root
            self._staging_dir = staging_dir
            self._temp_dir = temp_dir
            self._shutdown_event = threading.Event()
            self._intake_pool = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.config.watch.intake_workers,
                thread_name_prefix="clipbatch-intake",
            )
            self._transcode_pool = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.config.queue.max_in_flight,
                thread_name_prefix="clipbatch-transcode",
            )
            self._monitoring = True

            try:
                self._watcher = self.watcher_factory(root, self._handle_file_event)
                self._watcher.start()
            except Exception as e:
                self._log(f"Cannot watch {root}: {e}", Severity.ERROR)
                self._teardown()
                return CommandResult(ok=False, message=str(e))

            self._refresh_counts(root)
            if self.config.watch.initial_scan:
                found = 0
                for clip in self.file_scanner.scan(root):
                    found += 1
                    self._handle_file_event(EVENT_SCAN, clip)
                self._log(f"Initial scan complete: {found} unprocessed clip(s) found")

            self._timers = [
                PeriodicTask("drain", self.config.queue.drain_interval_s, self._drain_once),
                PeriodicTask("merge-check", self.config.merge.check_interval_s, self._check_merge_condition),
                PeriodicTask("gc", self.config.queue.gc_interval_s, self._collect_garbage),
            ]
            for timer in self._timers:
                timer.start()

            self._log(f"Monitoring started: {root}", Severity.SUCCESS)
            self._publish_status()
            return CommandResult(ok=True, message=f"Monitoring {root}")

    def stop(self) -> CommandResult:
        """Stops watching, interrupts the running transcode and clears all queue state."""
        with self._lifecycle_lock:
            if not self._monitoring:
                return CommandResult(ok=True, message="Not monitoring")
            root, staging_dir, temp_dir = self._root, self._staging_dir, self._temp_dir
            self._teardown()
            if root is not None:
                self._housekeep(root, staging_dir, temp_dir)
            self._log("Monitoring stopped", Severity.WARNING)
            self._publish_status()
            return CommandResult(ok=True, message="Stopped")

    def _housekeep(self, root: Path, staging_dir: Optional[Path], temp_dir: Optional[Path]) -> int:
        removed = self.housekeeping.cleanup_partial_outputs(root, self.config.merge.pending_tag)
        if staging_dir is not None:
            removed += self.housekeeping.cleanup_partial_archives(staging_dir, self.config.merge.archive_prefix)
        if temp_dir is not None:
            removed += self.housekeeping.cleanup_concat_lists(temp_dir)
        return removed

    def _teardown(self) -> None:
        self._monitoring = False
        self._shutdown_event.set()

        if self._watcher is not None:
            try:
                self._watcher.stop()
            except Exception as e:
                self.logger.error(f"Watcher stop failed: {e}")
            self._watcher = None

        for timer in self._timers:
            timer.stop()
        self._timers = []

        # Intake waits observe the shutdown event; ffmpeg is terminated by it
        if self._intake_pool is not None:
            self._intake_pool.shutdown(wait=True, cancel_futures=True)
            self._intake_pool = None
        if self._transcode_pool is not None:
            self._transcode_pool.shutdown(wait=True, cancel_futures=True)
            self._transcode_pool = None

        with self._intake_lock:
            self._pending_intake.clear()
        self.queue.clear()
        with self._status_lock:
            self._activity = "idle"
            self._progress = None

    # ------------------------------------------------------------------ intake

    def _accepts(self, path: Path) -> bool:
        root = self._root
        if root is None:
            return False
        return is_raw_clip(path, root, self.config.watch.extensions, self.config.merge.pending_tag)

    def _handle_file_event(self, event_type: str, path: Union[str, Path]) -> None:
        """Entry point for watcher notifications and the start-up scan."""
        path = Path(path)
        if not self._monitoring or not self._accepts(path):
            return

        if event_type == EVENT_UNLINK:
            if self.queue.purge_path(path):
                self.logger.debug(f"INTAKE: forgot removed file {path.name}")
                self._publish_status()
            return

        with self._intake_lock:
            if path in self._pending_intake:
                return
            self._pending_intake.add(path)

        pool = self._intake_pool
        try:
            if pool is None:
                raise RuntimeError("intake pool is not running")
            pool.submit(self._intake, path, event_type)
        except RuntimeError:
            with self._intake_lock:
                self._pending_intake.discard(path)

    def _intake(self, path: Path, event_type: str) -> None:
        try:
            self.stability_gate.await_stable(path, cancel_event=self._shutdown_event)
            if self._shutdown_event.is_set():
                return
            key = self.identity_keyer.key_of(path)
            result = self.queue.enqueue(path, key, event_type)
            if not result.accepted:
                self.logger.debug(f"INTAKE: {path.name} skipped ({result.value})")
                return
            depth = self.queue.depth
            self._log(f"Queued {path.name} ({event_type}, {depth} in queue)")
            self.event_bus.publish(EntryQueued(
                path=path,
                identity_key=key,
                event_type=event_type,
                queue_depth=depth,
            ))
            self._publish_status()
        except StabilityTimeoutError as e:
            if self._shutdown_event.is_set():
                self.logger.debug(f"INTAKE: {e}")
            else:
                self._log(str(e), Severity.WARNING)
        except FileAccessError as e:
            self._log(str(e), Severity.WARNING)
        except Exception as e:
            self._log(f"Intake failed for {path.name}: {e}", Severity.ERROR)
        finally:
            with self._intake_lock:
                self._pending_intake.discard(path)

    def pending_intake_count(self) -> int:
        with self._intake_lock:
            return len(self._pending_intake)

    # ------------------------------------------------------------------- drain

    def _drain_once(self) -> None:
        """Claims ready head entries and hands them to the transcode pool."""
        if not self._monitoring:
            return
        if not self._work_lock.acquire(blocking=False):
            return
        try:
            pool = self._transcode_pool
            if pool is None:
                return
            claimed = self.queue.claim_ready(self.config.queue.max_in_flight)
            for entry in claimed:
                try:
                    pool.submit(self._process_entry, entry)
                except RuntimeError:
                    self.queue.fail(entry.path, entry.identity_key)
            if claimed:
                self._publish_status()
        finally:
            self._work_lock.release()

    def _process_entry(self, entry: QueueEntry) -> None:
        path = entry.path
        key = entry.identity_key
        budget = self.config.queue.retry_budget
        self._set_activity(f"processing {path.name}", 0.0)
        try:
            if not path.exists():
                self.queue.purge_path(path)
                self._log(f"{path.name} disappeared before processing", Severity.WARNING)
                return

            outcome = self.engine.normalize(path, shutdown_event=self._shutdown_event)
            self.queue.complete(path, key)
            if outcome == TranscodeOutcome.UNPROCESSABLE:
                self.logger.debug(f"DRAIN: {path.name} left in place (unprocessable)")
        except Exception as e:
            if self._shutdown_event.is_set():
                self.logger.info(f"DRAIN: {path.name} interrupted by stop: {e}")
                return
            dropped = self.queue.fail(path, key)
            if dropped is not None:
                self._log(f"Giving up on {path.name} after {dropped} attempts: {e}", Severity.ERROR)
            else:
                attempts = self.queue.retry_count(path)
                level = Severity.WARNING if isinstance(e, ClipBatchError) else Severity.ERROR
                self._log(f"Failed to process {path.name} ({attempts}/{budget}): {e}", level)
        finally:
            root = self._root
            if root is not None and self._monitoring:
                self._refresh_counts(root)
            self._set_activity("idle")

    # ------------------------------------------------------------------- merge

    def _check_merge_condition(self) -> None:
        if not self._monitoring or self._root is None:
            return
        self.merge_if_due()

    def merge_if_due(self, directory: Optional[Union[str, Path]] = None) -> Optional[MergeResult]:
        """Evaluates the batch condition once and merges when it holds.

        Without `directory` the watched root is used. Returns None when the
        queue still holds work, the condition does not hold, or the merge
        failed (the failure is logged and the next check re-evaluates).
        """
        if directory is not None:
            root = Path(directory).expanduser().resolve()
            staging_dir = root / self.config.general.staging_dir_name
            temp_dir = root / self.config.general.temp_dir_name
        else:
            root, staging_dir, temp_dir = self._root, self._staging_dir, self._temp_dir
        if root is None or staging_dir is None or temp_dir is None:
            return None
        if not root.is_dir():
            self._log(str(NotFoundError(root)), Severity.ERROR)
            return None

        if not self._work_lock.acquire(blocking=False):
            return None
        try:
            state = self._refresh_counts(root)
            if self.queue.depth > 0 or self.pending_intake_count() > 0:
                self.logger.debug(f"MERGE: deferred, {self.queue.depth} queued")
                self._publish_status()
                return None

            if not state.due:
                self._publish_status()
                return None

            temp_dir.mkdir(parents=True, exist_ok=True)
            self._set_activity("merging")
            try:
                return self.merger.merge(
                    state.ready,
                    staging_dir,
                    temp_dir,
                    shutdown_event=self._shutdown_event,
                )
            except Exception as e:
                self._log(f"Merge failed: {e}", Severity.ERROR)
                return None
            finally:
                self._refresh_counts(root)
                self._set_activity("idle")
        finally:
            self._work_lock.release()

    # ---------------------------------------------------------------------- gc

    def _collect_garbage(self) -> None:
        expired = self.queue.collect_garbage()
        if expired:
            self.logger.debug(f"GC: expired {expired} recently-completed key(s)")
