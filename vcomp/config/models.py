from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from vcomp.domain.models import Preset

MAX_PARALLEL_LIMIT = 8


class GeneralConfig(BaseModel):
    """Engine settings. Read-only from the JobManager's point of view."""

    max_parallel_jobs: int = Field(default=2, ge=1, le=MAX_PARALLEL_LIMIT)
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    default_preset: str = "github-pr"
    output_naming_pattern: str = "{name}_compressed.{ext}"
    default_output_dir: Optional[str] = None
    history_path: Optional[str] = None
    history_max_items: int = Field(default=100, ge=1)
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("output_naming_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        if "{name}" not in v:
            raise ValueError("output_naming_pattern must contain {name}")
        return v


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    presets: List[Preset] = Field(default_factory=list)

    @field_validator("presets")
    @classmethod
    def validate_unique_ids(cls, v: List[Preset]) -> List[Preset]:
        seen = set()
        for preset in v:
            if preset.id in seen:
                raise ValueError(f"Duplicate preset id: {preset.id}")
            seen.add(preset.id)
        return v
