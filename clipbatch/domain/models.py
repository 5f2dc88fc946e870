from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field

class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    DEBUG = "debug"

class IdentityMode(str, Enum):
    PATH = "path"
    STAT = "stat"
    CONTENT = "content"  # Hashes the whole file, opt-in only

class EntryState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"

class EnqueueResult(str, Enum):
    QUEUED = "queued"
    REFRESHED = "refreshed"
    RECENTLY_COMPLETED = "recently_completed"
    IN_FLIGHT = "in_flight"
    PROCESSING = "processing"

    @property
    def accepted(self) -> bool:
        return self in (EnqueueResult.QUEUED, EnqueueResult.REFRESHED)

class TranscodeAction(str, Enum):
    NONE = "none"        # Already at target duration
    REJECT = "reject"    # Too short to stretch
    SPEED = "speed"      # Retime to target
    TRIM = "trim"        # Cut to the first target seconds

class TranscodeOutcome(str, Enum):
    NORMALIZED = "normalized"
    ALREADY_NORMALIZED = "already_normalized"
    UNPROCESSABLE = "unprocessable"

class MediaInfo(BaseModel):
    duration: float
    has_audio: bool = True

class QueueEntry(BaseModel):
    path: Path
    identity_key: str
    event_type: str
    added_at: float
    state: EntryState = EntryState.QUEUED
    retry_count: int = 0

class RecentRecord(BaseModel):
    path: Path
    completed_at: float

class NormalizedOutput(BaseModel):
    path: Path
    ordinal: int

class SourceGroup(BaseModel):
    path: Path
    name: str
    stem: str
    raw_clips: List[Path] = Field(default_factory=list)
    outputs: List[NormalizedOutput] = Field(default_factory=list)

    @property
    def output_count(self) -> int:
        return len(self.outputs)

class PipelineStatus(BaseModel):
    monitoring: bool = False
    source_group_count: int = 0
    ready_group_count: int = 0
    current_activity: str = "idle"
    progress_percent: Optional[float] = None
    queue_depth: int = 0

class ProcessingStats(BaseModel):
    in_flight: int = 0
    recently_completed: int = 0
    queued: int = 0
    source_groups: int = 0

class MergeResult(BaseModel):
    archive_path: Path
    groups: List[Path]
    files: List[Path]
    duration: float = 0.0

class CommandResult(BaseModel):
    ok: bool
    message: str = ""
