"""Ordered, deduplicated work queue with retry budget and suppression window.

Three views share one lock:

- pending: path → QueueEntry, insertion ordered (FIFO draining)
- in-flight: identity key → path, at most one entry per key
- recently completed: identity key → RecentRecord, suppresses residual
  notifications for a file that was just processed

Entry lifecycle: queued → processing → completed | queued (retry) | dropped.
A failed entry keeps its position, so it is retried before newer arrivals.
"""
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional
from clipbatch.domain.models import EnqueueResult, EntryState, QueueEntry, RecentRecord


class ProcessingQueue:

    def __init__(
        self,
        retry_budget: int = 3,
        recent_window: float = 1800.0,
        clock: Callable[[], float] = time.time,
    ):
        self.retry_budget = retry_budget
        self.recent_window = recent_window
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Path, QueueEntry] = {}
        self._in_flight: Dict[str, Path] = {}
        self._recent: Dict[str, RecentRecord] = {}

    def enqueue(self, path: Path, key: str, event_type: str) -> EnqueueResult:
        with self._lock:
            if key in self._recent:
                return EnqueueResult.RECENTLY_COMPLETED
            if key in self._in_flight:
                return EnqueueResult.IN_FLIGHT

            existing = self._entries.get(path)
            if existing is not None:
                if existing.state == EntryState.PROCESSING:
                    return EnqueueResult.PROCESSING
                # Refresh in place: dict assignment keeps the original position
                self._entries[path] = QueueEntry(
                    path=path,
                    identity_key=key,
                    event_type=event_type,
                    added_at=self._clock(),
                )
                return EnqueueResult.REFRESHED

            self._entries[path] = QueueEntry(
                path=path,
                identity_key=key,
                event_type=event_type,
                added_at=self._clock(),
            )
            return EnqueueResult.QUEUED

    def claim_ready(self, limit: int = 1) -> List[QueueEntry]:
        """Marks up to `limit - in_flight` entries as processing and returns copies.

        With limit 1 only the head is ever inspected.
        """
        claimed: List[QueueEntry] = []
        with self._lock:
            slots = limit - len(self._in_flight)
            if slots <= 0:
                return claimed
            for index, entry in enumerate(self._entries.values()):
                if index >= limit or len(claimed) >= slots:
                    break
                if entry.state == EntryState.PROCESSING:
                    continue
                if entry.identity_key in self._in_flight:
                    continue
                entry.state = EntryState.PROCESSING
                self._in_flight[entry.identity_key] = entry.path
                claimed.append(entry.model_copy())
        return claimed

    def complete(self, path: Path, key: str) -> None:
        with self._lock:
            entry = self._entries.get(path)
            if entry is not None and entry.identity_key == key:
                del self._entries[path]
            self._in_flight.pop(key, None)
            self._recent[key] = RecentRecord(path=path, completed_at=self._clock())

    def fail(self, path: Path, key: str) -> Optional[int]:
        """Records a failed attempt.

        Returns the attempt count when the entry was dropped (budget
        exhausted), None when it stays queued for another attempt or was
        already purged.
        """
        with self._lock:
            self._in_flight.pop(key, None)
            entry = self._entries.get(path)
            if entry is None or entry.identity_key != key:
                return None
            entry.retry_count += 1
            entry.state = EntryState.QUEUED
            if entry.retry_count >= self.retry_budget:
                del self._entries[path]
                return entry.retry_count
            return None

    def retry_count(self, path: Path) -> int:
        with self._lock:
            entry = self._entries.get(path)
            return entry.retry_count if entry else 0

    def purge_path(self, path: Path) -> bool:
        """Forgets every trace of a path whose file is gone."""
        with self._lock:
            removed = self._entries.pop(path, None) is not None
            for key in [k for k, p in self._in_flight.items() if p == path]:
                del self._in_flight[key]
                removed = True
            for key in [k for k, r in self._recent.items() if r.path == path]:
                del self._recent[key]
                removed = True
            return removed

    def collect_garbage(self, now: Optional[float] = None) -> int:
        cutoff = (self._clock() if now is None else now) - self.recent_window
        with self._lock:
            expired = [k for k, r in self._recent.items() if r.completed_at < cutoff]
            for key in expired:
                del self._recent[key]
            return len(expired)

    def is_recent(self, key: str) -> bool:
        with self._lock:
            return key in self._recent

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._in_flight.clear()
            self._recent.clear()

    def snapshot(self) -> List[QueueEntry]:
        with self._lock:
            return [e.model_copy() for e in self._entries.values()]

    @property
    def depth(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def recent_count(self) -> int:
        with self._lock:
            return len(self._recent)

    def __len__(self) -> int:
        return self.depth
