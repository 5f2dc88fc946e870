"""Domain events for the watch/normalize/merge pipeline.

Events flow through the EventBus, decoupling the pipeline from whatever
presents them (terminal reporter, an embedding application, tests).

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import List
from pydantic import BaseModel
from .models import PipelineStatus, Severity


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class LogEmitted(Event):
    """A user-facing, severity-tagged log line."""

    message: str
    severity: Severity = Severity.INFO


class StatusChanged(Event):
    """Emitted after every state-affecting operation with a fresh snapshot."""

    status: PipelineStatus


class EntryQueued(Event):
    """Emitted when a raw clip is accepted into the processing queue."""

    path: Path
    identity_key: str
    event_type: str
    queue_depth: int


class TranscodeProgress(Event):
    """Emitted periodically as ffmpeg reports progress."""

    path: Path
    stage: str
    progress_percent: float


class MergeCompleted(Event):
    """Emitted after an archive was written and its groups were reset."""

    archive_path: Path
    groups: List[Path]
    clip_count: int
