"""Canonical store of Job records and their state machine."""

import uuid
from typing import Dict, FrozenSet, List, Optional
from vcomp.domain.errors import InvalidStateTransition, JobNotFound
from vcomp.domain.models import Job, JobConfig, JobStatus, Preset

ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    # WAITING -> FAILED covers encoders that cannot be spawned at admission.
    JobStatus.WAITING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.PAUSED, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.PAUSED: frozenset({JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: JobStatus, requested: JobStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


class JobRegistry:
    """Owns Job records. Not thread-safe on its own; the JobManager lock guards it."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def create(self, config: JobConfig, preset: Preset, **fields) -> Job:
        job_id = uuid.uuid4().hex
        while job_id in self._jobs:
            job_id = uuid.uuid4().hex
        job = Job(id=job_id, config=config, preset=preset, **fields)
        self._jobs[job_id] = job
        return job

    def require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def transition(self, job_id: str, requested: JobStatus) -> Job:
        """Moves a job to `requested` or raises InvalidStateTransition leaving it untouched."""
        job = self.require(job_id)
        if not can_transition(job.status, requested):
            raise InvalidStateTransition(job_id, job.status, requested)
        job.status = requested
        return job

    def update(self, job_id: str, **fields) -> Job:
        """Updates outcome fields of a live job. Terminal jobs are frozen."""
        job = self.require(job_id)
        if job.status.is_terminal:
            raise InvalidStateTransition(job_id, job.status, job.status)
        for name, value in fields.items():
            setattr(job, name, value)
        return job

    def snapshot(self, job_id: str) -> Job:
        return self.require(job_id).model_copy(deep=True)

    def snapshots(self) -> List[Job]:
        return [job.model_copy(deep=True) for job in self._jobs.values()]

    def live_jobs(self) -> List[Job]:
        return [job for job in self._jobs.values() if not job.status.is_terminal]

    def find_by_output(self, output_path) -> Optional[Job]:
        for job in self.live_jobs():
            if job.output_path == output_path:
                return job
        return None

    def remove_terminal(self) -> int:
        terminal = [job_id for job_id, job in self._jobs.items() if job.status.is_terminal]
        for job_id in terminal:
            del self._jobs[job_id]
        return len(terminal)
