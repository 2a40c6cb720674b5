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
from vcomp.ui.manager import UIManager
from vcomp.ui.state import UIState


def test_ui_manager_follows_job_events():
    bus = EventBus()
    state = UIState()
    UIManager(bus, state)

    bus.publish(JobSubmitted(job_id="a", input_path="/videos/a.mov", output_path="/out/a.mp4", preset_id="github-pr"))
    view = state.job_views()[0]
    assert view.name == "a.mov"
    assert view.status == JobStatus.WAITING

    bus.publish(JobStarted(job_id="a"))
    assert view.status == JobStatus.RUNNING

    bus.publish(JobProgressUpdated(
        job_id="a", file_id="/videos/a.mov", status=JobStatus.RUNNING, progress=25.0, speed="1.2x", eta="0:30",
    ))
    assert view.progress == 25.0
    assert view.eta == "0:30"

    bus.publish(JobPaused(job_id="a"))
    assert view.status == JobStatus.PAUSED
    bus.publish(JobResumed(job_id="a"))
    assert view.status == JobStatus.RUNNING

    bus.publish(JobCompleted(job_id="a", success=False, error="ffmpeg exited with code 1"))
    assert view.status == JobStatus.FAILED
    assert state.failed_count == 1


def test_ui_manager_formats_logs():
    bus = EventBus()
    state = UIState()
    UIManager(bus, state)

    bus.publish(LogEmitted(level="warn", message="Duration unknown"))
    line = state.recent_logs[0]
    assert "WARN" in line
    assert line.endswith("Duration unknown")
