from pathlib import Path
from vcomp.domain.events import (
    JobCompleted,
    JobPaused,
    JobProgressUpdated,
    JobResumed,
    JobStarted,
    JobSubmitted,
    LogEmitted,
)
from vcomp.domain.models import JobStatus
from vcomp.infrastructure.event_bus import EventBus
from vcomp.ui.state import UIState


class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(JobSubmitted, self.on_job_submitted)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobPaused, self.on_job_paused)
        self.bus.subscribe(JobResumed, self.on_job_resumed)
        self.bus.subscribe(JobProgressUpdated, self.on_job_progress)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(LogEmitted, self.on_log)

    def on_job_submitted(self, event: JobSubmitted):
        self.state.add_job(event.job_id, Path(event.input_path).name, event.preset_id)

    def on_job_started(self, event: JobStarted):
        self.state.set_status(event.job_id, JobStatus.RUNNING)

    def on_job_paused(self, event: JobPaused):
        self.state.set_status(event.job_id, JobStatus.PAUSED)

    def on_job_resumed(self, event: JobResumed):
        self.state.set_status(event.job_id, JobStatus.RUNNING)

    def on_job_progress(self, event: JobProgressUpdated):
        self.state.update_progress(
            event.job_id,
            event.progress,
            speed=event.speed,
            fps=event.fps,
            size=event.size,
            eta=event.eta,
        )

    def on_job_completed(self, event: JobCompleted):
        self.state.finish_job(event.job_id, event.success, event.error)

    def on_log(self, event: LogEmitted):
        self.state.add_log(f"{event.timestamp.strftime('%H:%M:%S')} {event.level.upper():5} {event.message}")
