from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    WAITING = "WAITING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.RUNNING, JobStatus.PAUSED)


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class VideoSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    codec: str = "libx264"
    crf: Optional[int] = Field(default=None, ge=0, le=63)
    bitrate: Optional[str] = None
    preset: str = "medium"
    profile: Optional[str] = None
    level: Optional[str] = None
    pixel_format: str = "yuv420p"
    max_width: Optional[int] = Field(default=None, gt=0)
    max_height: Optional[int] = Field(default=None, gt=0)
    fps: Optional[float] = Field(default=None, gt=0)
    two_pass: bool = False


class AudioSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    codec: str = "aac"
    bitrate: str = "128k"
    sample_rate: Optional[int] = Field(default=None, gt=0)
    channels: Optional[int] = Field(default=None, gt=0)


class Preset(BaseModel):
    """Read-only template of encoder parameters."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    video: Optional[VideoSettings] = None
    audio: Optional[AudioSettings] = None
    remove_video: bool = False
    remove_audio: bool = False

    @property
    def keeps_video(self) -> bool:
        return self.video is not None and not self.remove_video

    @property
    def keeps_audio(self) -> bool:
        return self.audio is not None and not self.remove_audio


class PresetOverrides(BaseModel):
    """Partial preset; every field set here wins over the base preset."""

    name: Optional[str] = None
    video: Optional[Dict[str, Any]] = None
    audio: Optional[Dict[str, Any]] = None
    remove_video: Optional[bool] = None
    remove_audio: Optional[bool] = None


class JobConfig(BaseModel):
    input_path: Path
    output_path: Path
    preset: Preset
    target_size: Optional[int] = None  # bytes
    overrides: Optional[PresetOverrides] = None


class StreamInfo(BaseModel):
    index: int = 0
    codec_type: str
    codec_name: str = "unknown"
    width: Optional[int] = None
    height: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None


class ProbeResult(BaseModel):
    duration_seconds: float = 0.0
    streams: List[StreamInfo] = Field(default_factory=list)

    @property
    def has_video(self) -> bool:
        return any(s.codec_type == "video" for s in self.streams)

    @property
    def has_audio(self) -> bool:
        return any(s.codec_type == "audio" for s in self.streams)

    @property
    def video_stream(self) -> Optional[StreamInfo]:
        return next((s for s in self.streams if s.codec_type == "video"), None)


class Job(BaseModel):
    id: str
    config: JobConfig
    preset: Preset  # effective preset (overrides applied)
    status: JobStatus = JobStatus.WAITING
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    input_size_bytes: int = 0
    output_size_bytes: Optional[int] = None
    duration_seconds: Optional[float] = None
    duration_estimated: bool = False
    planned_video_kbps: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def input_path(self) -> Path:
        return self.config.input_path

    @property
    def output_path(self) -> Path:
        return self.config.output_path

    @property
    def target_size_mode(self) -> bool:
        return self.config.target_size is not None and self.preset.keeps_video


class HistoryEntry(BaseModel):
    input_path: Path
    output_path: Path
    preset: str
    original_size: int
    compressed_size: int
    compression_ratio: float
    duration_ms: int
    success: bool
    error: Optional[str] = None
