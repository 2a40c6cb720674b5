from vcomp.domain.errors import CANCELLED_MESSAGE, SHUTDOWN_MESSAGE
from vcomp.domain.models import JobStatus
from vcomp.ui.state import UIState


def test_ui_state_initialization():
    state = UIState()
    assert state.completed_count == 0
    assert state.failed_count == 0
    assert state.cancelled_count == 0
    assert state.total_count == 0
    assert state.job_views() == []


def test_ui_state_tracks_job_lifecycle():
    state = UIState()
    state.add_job("a", "a.mp4", "github-pr")
    state.add_job("a", "a.mp4", "github-pr")
    assert state.total_count == 1

    state.set_status("a", JobStatus.RUNNING)
    state.update_progress("a", 42.0, speed="2.0x", eta="0:10")
    view = state.job_views()[0]
    assert view.status == JobStatus.RUNNING
    assert view.progress == 42.0
    assert view.speed == "2.0x"

    state.update_progress("a", 50.0)
    assert state.job_views()[0].speed == "2.0x"

    state.finish_job("a", success=True)
    view = state.job_views()[0]
    assert view.status == JobStatus.COMPLETED
    assert view.progress == 100.0
    assert view.eta is None
    assert state.completed_count == 1
    assert state.done_count == 1


def test_ui_state_counts_failures_and_cancellations():
    state = UIState()
    for job_id in "abc":
        state.add_job(job_id, f"{job_id}.mp4", "github-pr")

    state.finish_job("a", success=False, error="ffmpeg exited with code 1")
    state.finish_job("b", success=False, error=CANCELLED_MESSAGE)
    state.finish_job("c", success=False, error=SHUTDOWN_MESSAGE)

    assert state.failed_count == 1
    assert state.cancelled_count == 2
    assert [v.status for v in state.job_views()] == [JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.CANCELLED]


def test_ui_state_unknown_job_is_ignored():
    state = UIState()
    state.set_status("ghost", JobStatus.RUNNING)
    state.update_progress("ghost", 10.0)
    state.finish_job("ghost", success=True)
    assert state.completed_count == 0


def test_ui_state_recent_logs_limit():
    state = UIState(log_max_items=3)
    for i in range(10):
        state.add_log(f"line {i}")
    assert list(state.recent_logs) == ["line 9", "line 8", "line 7"]
