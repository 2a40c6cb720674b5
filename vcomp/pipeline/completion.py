import logging
from typing import Callable
from vcomp.domain.events import Event, JobCompleted, LogEmitted
from vcomp.domain.models import HistoryEntry, Job, JobStatus
from vcomp.infrastructure.history_store import HistorySink


def build_history_entry(job: Job) -> HistoryEntry:
    """Outcome record of a finished job; failures carry zero size and ratio."""
    success = job.status == JobStatus.COMPLETED
    if success:
        compressed = job.output_size_bytes or 0
        ratio = compressed / job.input_size_bytes if job.input_size_bytes > 0 else 1.0
    else:
        compressed = 0
        ratio = 0.0

    duration_ms = 0
    if job.started_at and job.finished_at:
        duration_ms = max(0, int((job.finished_at - job.started_at).total_seconds() * 1000))

    return HistoryEntry(
        input_path=job.input_path,
        output_path=job.output_path,
        preset=job.preset.id,
        original_size=job.input_size_bytes,
        compressed_size=compressed,
        compression_ratio=ratio,
        duration_ms=duration_ms,
        success=success,
        error=job.error,
    )


class CompletionHandler:
    """Finalizes terminal jobs: history entry, completion event, next admission pass."""

    def __init__(self, history: HistorySink, emit: Callable[[Event], None], on_finalized: Callable[[], None]):
        self.history = history
        self.emit = emit
        self.on_finalized = on_finalized
        self.logger = logging.getLogger(__name__)

    def handle(self, job: Job):
        # Jobs cancelled before reaching the encoder leave no history behind.
        if job.started_at is not None or job.status == JobStatus.FAILED:
            self._record(job)
        self.emit(JobCompleted(
            job_id=job.id,
            success=job.status == JobStatus.COMPLETED,
            error=job.error,
        ))
        self.on_finalized()

    def _record(self, job: Job):
        entry = build_history_entry(job)
        try:
            self.history.add_item(entry)
        except Exception as exc:
            self.logger.exception(f"Failed to write history entry for {job.input_path.name}")
            self.emit(LogEmitted(level="error", message=f"History not saved for {job.input_path.name}: {exc}"))
