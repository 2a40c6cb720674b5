import threading
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional
from vcomp.domain.errors import CANCELLED_MESSAGE, SHUTDOWN_MESSAGE
from vcomp.domain.models import JobStatus


class JobView:
    """Display-side copy of a job, fed only from events."""

    def __init__(self, job_id: str, name: str, preset_id: str):
        self.job_id = job_id
        self.name = name
        self.preset_id = preset_id
        self.status = JobStatus.WAITING
        self.progress = 0.0
        self.speed: Optional[str] = None
        self.fps: Optional[str] = None
        self.size: Optional[str] = None
        self.eta: Optional[str] = None
        self.error: Optional[str] = None


class UIState:
    """Thread-safe state manager for the terminal dashboard."""

    def __init__(self, log_max_items: int = 5):
        self._lock = threading.RLock()

        self.completed_count = 0
        self.failed_count = 0
        self.cancelled_count = 0

        self.jobs: Dict[str, JobView] = {}
        self.order: List[str] = []
        self.recent_logs: Deque[str] = deque(maxlen=log_max_items)

        self.max_parallel_jobs = 0
        self.start_time: datetime = datetime.now()
        self.finished = False

    def add_job(self, job_id: str, name: str, preset_id: str):
        with self._lock:
            if job_id not in self.jobs:
                self.jobs[job_id] = JobView(job_id, name, preset_id)
                self.order.append(job_id)

    def set_status(self, job_id: str, status: JobStatus):
        with self._lock:
            view = self.jobs.get(job_id)
            if view is not None:
                view.status = status

    def update_progress(self, job_id: str, progress: float, speed=None, fps=None, size=None, eta=None):
        with self._lock:
            view = self.jobs.get(job_id)
            if view is None:
                return
            view.progress = progress
            view.speed = speed or view.speed
            view.fps = fps or view.fps
            view.size = size or view.size
            view.eta = eta

    def finish_job(self, job_id: str, success: bool, error: Optional[str] = None):
        with self._lock:
            view = self.jobs.get(job_id)
            if view is None:
                return
            if success:
                view.status = JobStatus.COMPLETED
                view.progress = 100.0
                self.completed_count += 1
            elif error in (CANCELLED_MESSAGE, SHUTDOWN_MESSAGE):
                view.status = JobStatus.CANCELLED
                self.cancelled_count += 1
            else:
                view.status = JobStatus.FAILED
                self.failed_count += 1
            view.error = error
            view.eta = None

    def add_log(self, line: str):
        with self._lock:
            self.recent_logs.appendleft(line)

    def job_views(self) -> List[JobView]:
        with self._lock:
            return [self.jobs[job_id] for job_id in self.order]

    @property
    def total_count(self) -> int:
        with self._lock:
            return len(self.jobs)

    @property
    def done_count(self) -> int:
        with self._lock:
            return self.completed_count + self.failed_count + self.cancelled_count
