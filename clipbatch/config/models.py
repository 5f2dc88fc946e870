from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from clipbatch.domain.models import IdentityMode
from clipbatch.domain.naming import VIDEO_EXTENSIONS, PENDING_TAG, CONSUMED_TAG

class GeneralConfig(BaseModel):
    staging_dir_name: str = "merged"
    temp_dir_name: str = "temp"
    log_path: Optional[str] = None
    debug: bool = False

class WatchConfig(BaseModel):
    """Watcher and intake settings (stability gate, identity keys)."""
    extensions: List[str] = Field(default_factory=lambda: list(VIDEO_EXTENSIONS))
    poll_interval_s: float = Field(default=1.0, gt=0)
    stable_readings: int = Field(default=3, ge=1)
    stability_timeout_s: float = Field(default=30.0, gt=0)
    identity_mode: IdentityMode = IdentityMode.STAT
    intake_workers: int = Field(default=4, ge=1, le=32)
    initial_scan: bool = True

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        if not normalized:
            raise ValueError("extensions must not be empty")
        return normalized

class QueueConfig(BaseModel):
    drain_interval_s: float = Field(default=2.0, gt=0)
    retry_budget: int = Field(default=3, ge=1)
    recent_window_s: float = Field(default=1800.0, ge=0)
    gc_interval_s: float = Field(default=60.0, gt=0)
    max_in_flight: int = Field(default=1, ge=1, le=8)

class EncodeProfile(BaseModel):
    """Fixed codec profile shared by every normalized output.

    Identical profiles are what make stream-copy concatenation safe.
    """
    video_codec: str = "libx264"
    preset: str = "fast"
    crf: int = Field(default=23, ge=0, le=51)
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    container: str = "mp4"

class TranscodeConfig(BaseModel):
    target_duration_s: float = Field(default=20.0, gt=0)
    exact_tolerance_s: float = Field(default=0.1, ge=0)
    speed_window_s: float = Field(default=4.0, ge=0)
    verify_tolerance_s: float = Field(default=1.0, gt=0)
    probe_timeout_s: float = Field(default=30.0, gt=0)
    profile: EncodeProfile = Field(default_factory=EncodeProfile)

    @model_validator(mode="after")
    def validate_window(self):
        if self.speed_window_s >= self.target_duration_s:
            raise ValueError("speed_window_s must be smaller than target_duration_s")
        return self

class MergeConfig(BaseModel):
    check_interval_s: float = Field(default=10.0, gt=0)
    outputs_per_group: int = Field(default=4, ge=1)
    batch_size: int = Field(default=5, ge=1)
    pending_tag: str = PENDING_TAG
    consumed_tag: str = CONSUMED_TAG
    archive_prefix: str = PENDING_TAG

    @model_validator(mode="after")
    def validate_tags(self):
        if not self.pending_tag or not self.consumed_tag:
            raise ValueError("group tags must not be empty")
        if self.pending_tag == self.consumed_tag:
            raise ValueError("pending_tag and consumed_tag must differ")
        if self.consumed_tag.startswith(self.pending_tag):
            raise ValueError("consumed_tag must not start with pending_tag")
        return self

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    watch_dir: Optional[str] = None
