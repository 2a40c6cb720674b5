"""Job manager: the single owner of registry, waiting queue and running set.

Lifecycle of a job: submit → WAITING (queued FIFO) → admission spawns the
encoder → RUNNING ⇄ PAUSED → COMPLETED / FAILED / CANCELLED. Terminal
transitions go through the CompletionHandler, which records history, emits
JobCompleted and runs the next admission pass.

All coordination state is mutated under one re-entrant lock. Events produced
while holding it are queued and published, in order, after it is released,
so listeners may call back into the manager.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol
from vcomp.config.presets import merge_preset
from vcomp.config.rate_control import format_size_human
from vcomp.domain.errors import (
    BinaryNotFound,
    CANCELLED_MESSAGE,
    CompressorError,
    ConfigValidationError,
    InputNotFound,
    InvalidStateTransition,
    ManagerClosed,
    ProcessExitNonZero,
    SHUTDOWN_MESSAGE,
    SpawnError,
)
from vcomp.domain.events import (
    Event,
    JobPaused,
    JobProgressUpdated,
    JobResumed,
    JobStarted,
    JobSubmitted,
    LogEmitted,
)
from vcomp.domain.models import Job, JobConfig, JobStatus, Preset, ProbeResult
from vcomp.infrastructure.event_bus import EventBus
from vcomp.infrastructure.ffmpeg import EncodeStage, FFmpegAdapter, cleanup_passlogs
from vcomp.infrastructure.history_store import HistorySink
from vcomp.infrastructure.process_control import ProcessControl, default_process_control
from vcomp.pipeline.bitrate_planner import plan_for_preset
from vcomp.pipeline.completion import CompletionHandler
from vcomp.pipeline.progress import (
    FALLBACK_DURATION_SECONDS,
    ProgressFields,
    estimate_eta,
    format_duration,
    progress_percent,
)
from vcomp.pipeline.registry import JobRegistry
from vcomp.pipeline.scheduler import Scheduler
from vcomp.pipeline.supervisor import ProcessOutcome, ProcessSupervisor

_LOG_LEVELS = {"info": logging.INFO, "warn": logging.WARNING, "error": logging.ERROR}


class SettingsProvider(Protocol):
    max_parallel_jobs: int
    ffmpeg_path: Optional[str]


class MediaProber(Protocol):
    def probe(self, file_path: Path) -> ProbeResult: ...


class JobManager:
    """Bounded-concurrency compression queue around an external encoder.

    Args:
        settings: read-only provider of `max_parallel_jobs` and `ffmpeg_path`.
        event_bus: EventBus receiving job and log events.
        history: sink receiving one HistoryEntry per finished job.
        prober: media probe used for durations; None disables probing.
        ffmpeg_adapter: builds and spawns encoder commands.
        process_control: suspend/continue/kill capability.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        event_bus: EventBus,
        history: HistorySink,
        prober: Optional[MediaProber] = None,
        ffmpeg_adapter: Optional[FFmpegAdapter] = None,
        process_control: Optional[ProcessControl] = None,
    ):
        self.settings = settings
        self.event_bus = event_bus
        self.prober = prober
        self.ffmpeg = ffmpeg_adapter or FFmpegAdapter(settings.ffmpeg_path)
        self.logger = logging.getLogger(__name__)

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._publish_lock = threading.RLock()
        self._outbox: List[Event] = []
        self._admitting = False
        self._closed = False

        self.registry = JobRegistry()
        self.scheduler = Scheduler(lambda: self.settings.max_parallel_jobs)
        self.supervisor = ProcessSupervisor(
            ffmpeg=self.ffmpeg,
            control=process_control or default_process_control(),
            on_progress=self._handle_progress,
            on_exit=self._handle_exit,
            lock=self._lock,
        )
        self.completion = CompletionHandler(history, emit=self._outbox.append, on_finalized=self._admit)

    # --- Lifecycle ---

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    @property
    def closed(self) -> bool:
        return self._closed

    def shutdown(self, join_timeout: Optional[float] = 5.0):
        """Kills every active encoder and cancels everything still queued."""
        with self._transaction():
            if self._closed:
                return
            self._closed = True
            live = self.registry.live_jobs()
            killed = self.supervisor.terminate_all()
            self.scheduler.clear()
            for job in live:
                self._finish(job, JobStatus.CANCELLED, error=SHUTDOWN_MESSAGE)
            if live:
                self._log("warn", f"Shutdown: cancelled {len(live)} unfinished job(s), killed {killed} encoder(s)")
        self.supervisor.join(join_timeout)

    # --- Public operations ---

    def submit(self, config: JobConfig) -> str:
        """Validates and queues a job; returns its id."""
        if self._closed:
            raise ManagerClosed()

        input_path = Path(config.input_path)
        if not input_path.is_file():
            raise InputNotFound(input_path)

        preset = merge_preset(config.preset, config.overrides)
        self._validate(config, preset)

        probe = self._probe(input_path)
        if probe is not None and probe.streams and not (probe.has_video or probe.has_audio):
            raise ConfigValidationError(f"No video or audio streams found in {input_path.name}")
        duration = probe.duration_seconds if probe is not None and probe.duration_seconds > 0 else None

        planned_kbps = None
        if config.target_size is not None:
            planned_kbps = plan_for_preset(config.target_size, duration, preset)

        output_path = Path(config.output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with self._transaction():
            if self._closed:
                raise ManagerClosed()
            unique_output = self._unique_output(output_path)
            job = self.registry.create(
                config.model_copy(update={"input_path": input_path, "output_path": unique_output}),
                preset,
                input_size_bytes=input_path.stat().st_size,
                duration_seconds=duration or FALLBACK_DURATION_SECONDS,
                duration_estimated=duration is None,
                planned_video_kbps=planned_kbps,
            )
            self.scheduler.enqueue(job.id)
            self._outbox.append(JobSubmitted(
                job_id=job.id,
                input_path=str(input_path),
                output_path=str(unique_output),
                preset_id=preset.id,
            ))
            if unique_output != output_path:
                self._log("info", f"Output exists, writing to {unique_output.name} instead")
            if job.duration_estimated:
                self._log(
                    "warn",
                    f"Duration of {input_path.name} unknown; progress assumes {FALLBACK_DURATION_SECONDS:.0f}s and may be inaccurate",
                )
            if planned_kbps is not None:
                self._log("info", f"Target size {config.target_size} bytes: planned video bitrate {planned_kbps}k")
            self._admit()
        return job.id

    def cancel(self, job_id: str):
        with self._transaction():
            job = self.registry.require(job_id)
            if job.status.is_terminal:
                raise InvalidStateTransition(job_id, job.status, JobStatus.CANCELLED)
            if job.status.is_active:
                self.supervisor.terminate(job_id)
                self.scheduler.release(job_id)
            else:
                self.scheduler.remove_waiting(job_id)
            self._log("info", f"Job cancelled: {job.input_path.name}")
            self._finish(job, JobStatus.CANCELLED, error=CANCELLED_MESSAGE)

    def pause(self, job_id: str):
        with self._transaction():
            job = self.registry.require(job_id)
            if job.status != JobStatus.RUNNING:
                raise InvalidStateTransition(job_id, job.status, JobStatus.PAUSED)
            self.supervisor.suspend(job_id)
            self.registry.transition(job_id, JobStatus.PAUSED)
            self._outbox.append(JobPaused(job_id=job_id))
            self._log("info", f"Job paused: {job.input_path.name}")

    def resume(self, job_id: str):
        with self._transaction():
            job = self.registry.require(job_id)
            if job.status != JobStatus.PAUSED:
                raise InvalidStateTransition(job_id, job.status, JobStatus.RUNNING)
            self.supervisor.resume(job_id)
            self.registry.transition(job_id, JobStatus.RUNNING)
            self._outbox.append(JobResumed(job_id=job_id))
            self._log("info", f"Job resumed: {job.input_path.name}")

    def clear_completed(self) -> int:
        with self._lock:
            return self.registry.remove_terminal()

    def get(self, job_id: str) -> Job:
        with self._lock:
            return self.registry.snapshot(job_id)

    def list_jobs(self) -> List[Job]:
        with self._lock:
            return self.registry.snapshots()

    def waiting_job_ids(self) -> List[str]:
        with self._lock:
            return self.scheduler.waiting()

    def running_count(self) -> int:
        with self._lock:
            return self.scheduler.running_count

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until no job is waiting, running or paused."""
        with self._idle:
            return self._idle.wait_for(lambda: not self.registry.live_jobs(), timeout)

    # --- Submission helpers ---

    def _validate(self, config: JobConfig, preset: Preset):
        if not preset.keeps_video and not preset.keeps_audio:
            raise ConfigValidationError(f"Preset '{preset.id}' removes every stream")
        if config.target_size is not None:
            if config.target_size <= 0:
                raise ConfigValidationError(f"Target size must be > 0 (got {config.target_size})")
            if not preset.keeps_video:
                raise ConfigValidationError("Target size requires a preset that keeps the video stream")
        elif preset.keeps_video and preset.video.two_pass:
            raise ConfigValidationError(f"Preset '{preset.id}' is two-pass and needs a target size")

    def _probe(self, input_path: Path) -> Optional[ProbeResult]:
        if self.prober is None:
            return None
        try:
            return self.prober.probe(input_path)
        except CompressorError as exc:
            self.logger.warning(f"Probe failed for {input_path}: {exc}")
            return None

    def _unique_output(self, output_path: Path) -> Path:
        candidate = output_path
        counter = 1
        while candidate.exists() or self.registry.find_by_output(candidate) is not None:
            candidate = output_path.with_name(f"{output_path.stem}_{counter}{output_path.suffix}")
            counter += 1
        return candidate

    # --- Coordination ---

    @contextmanager
    def _transaction(self):
        try:
            with self._lock:
                yield
        finally:
            self._flush_events()

    def _flush_events(self):
        with self._publish_lock:
            with self._lock:
                events, self._outbox[:] = list(self._outbox), []
            for event in events:
                self.event_bus.publish(event)

    def _log(self, level: str, message: str):
        self.logger.log(_LOG_LEVELS[level], message)
        self._outbox.append(LogEmitted(level=level, message=message))

    def _admit(self):
        """Starts waiting jobs in arrival order while slots are free."""
        with self._lock:
            if self._admitting or self._closed:
                return
            self._admitting = True
            try:
                while True:
                    job_id = self.scheduler.admit_next()
                    if job_id is None:
                        break
                    self._start(job_id)
            finally:
                self._admitting = False

    def _start(self, job_id: str):
        job = self.registry.require(job_id)
        try:
            stages = self.ffmpeg.plan_stages(job)
            self.supervisor.launch(job_id, stages)
        except (BinaryNotFound, SpawnError) as exc:
            self.scheduler.release(job_id)
            self._log("error", f"Job failed to start: {job.input_path.name} - {exc}")
            self._finish(job, JobStatus.FAILED, error=str(exc))
            return

        self.registry.transition(job_id, JobStatus.RUNNING)
        job.started_at = datetime.now()
        self._outbox.append(JobStarted(job_id=job_id))
        self._log("info", f"Job started: {job.input_path.name} ({job.preset.id}, {len(stages)} pass(es))")

    def _finish(self, job: Job, status: JobStatus, error: Optional[str] = None, **fields):
        """Applies outcome fields, enters the terminal state and hands off to the CompletionHandler."""
        self.registry.update(job.id, error=error, finished_at=datetime.now(), **fields)
        self.registry.transition(job.id, status)
        self.completion.handle(job)
        self._idle.notify_all()

    def _handle_progress(self, job_id: str, stage: EncodeStage, fields: ProgressFields):
        with self._transaction():
            if job_id not in self.registry:
                return
            job = self.registry.require(job_id)
            if not job.status.is_active:
                return
            if fields.elapsed_seconds is not None:
                stage_percent = progress_percent(fields.elapsed_seconds, job.duration_seconds or FALLBACK_DURATION_SECONDS)
                job.progress = max(job.progress, min(100.0, stage.overall_progress(stage_percent)))

            eta = None
            if job.started_at is not None:
                remaining = estimate_eta((datetime.now() - job.started_at).total_seconds(), job.progress)
                eta = format_duration(remaining) if remaining is not None else None

            self._outbox.append(JobProgressUpdated(
                job_id=job_id,
                file_id=str(job.input_path),
                status=job.status,
                progress=job.progress,
                speed=fields.speed,
                fps=fields.fps,
                bitrate=fields.bitrate,
                size=fields.size,
                time=fields.time,
                eta=eta,
            ))

    def _handle_exit(self, job_id: str, outcome: ProcessOutcome):
        with self._transaction():
            if job_id not in self.registry:
                return
            job = self.registry.require(job_id)
            if job.status.is_terminal:
                return
            self.supervisor.release(job_id)
            self.scheduler.release(job_id)

            if outcome.success:
                output_size = job.output_path.stat().st_size if job.output_path.exists() else 0
                if job.target_size_mode:
                    cleanup_passlogs(job)
                self._finish(job, JobStatus.COMPLETED, progress=100.0, output_size_bytes=output_size)
                ratio = output_size / job.input_size_bytes if job.input_size_bytes else 1.0
                self._log("info", f"Job completed: {job.input_path.name} -> {format_size_human(output_size)} ({ratio:.1%})")
            else:
                if outcome.error is not None:
                    error = outcome.error
                else:
                    error = str(ProcessExitNonZero(outcome.returncode, outcome.diagnostic_tail))
                self._finish(job, JobStatus.FAILED, error=error)
                self._log("error", f"Job failed: {job.input_path.name} - {error}")

