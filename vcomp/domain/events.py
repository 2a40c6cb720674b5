"""Domain events for the compression job engine.

Events describe state changes of jobs and flow through the EventBus, which
decouples the JobManager from the terminal UI and any other listener.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field
from .models import JobStatus


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    pass


class JobEvent(Event):
    """Base class for events related to a specific job."""

    job_id: str


class JobSubmitted(JobEvent):
    """Emitted after a job has been created in the WAITING state."""

    input_path: str
    output_path: str
    preset_id: str


class JobStarted(JobEvent):
    """Emitted when the encoder process for a job has been spawned."""

    pass


class JobPaused(JobEvent):
    pass


class JobResumed(JobEvent):
    pass


class JobProgressUpdated(JobEvent):
    """Emitted for every progress record parsed from the encoder output."""

    file_id: str
    status: JobStatus
    progress: float = Field(ge=0.0, le=100.0)
    speed: Optional[str] = None
    fps: Optional[str] = None
    bitrate: Optional[str] = None
    size: Optional[str] = None
    time: Optional[str] = None
    eta: Optional[str] = None


class JobCompleted(JobEvent):
    """Emitted exactly once per job when it reaches a terminal state."""

    success: bool
    error: Optional[str] = None


class LogEmitted(Event):
    """User-facing log line mirrored from the engine logger."""

    level: Literal["info", "warn", "error"]
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
