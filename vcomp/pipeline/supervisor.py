"""Process supervision for running jobs.

Each admitted job gets one encoder process at a time (two for a two-pass
encode, one after the other) and one watcher thread. The watcher is the only
code that blocks on the encoder: it reads the diagnostic stream, feeds the
ProgressParser and reports the exit. Signals (kill, suspend, continue) come
from the JobManager through the slot map.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union
from vcomp.domain.errors import CompressorError, SpawnError
from vcomp.infrastructure.ffmpeg import EncodeStage, FFmpegAdapter
from vcomp.infrastructure.process_control import ProcessControl
from vcomp.pipeline.progress import ProgressFields, ProgressParser


@dataclass(frozen=True)
class NoProcess:
    pass


NO_PROCESS = NoProcess()


@dataclass
class OwnedProcess:
    process: subprocess.Popen
    stage: EncodeStage
    stage_index: int
    suspended: bool = False


ProcessSlot = Union[NoProcess, OwnedProcess]


@dataclass(frozen=True)
class ProcessOutcome:
    returncode: Optional[int]
    diagnostic_tail: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.returncode == 0


ProgressCallback = Callable[[str, EncodeStage, ProgressFields], None]
ExitCallback = Callable[[str, ProcessOutcome], None]


class ProcessSupervisor:
    """Owns encoder process handles while their jobs are RUNNING or PAUSED.

    `lock` is the JobManager's coordination lock, so slot changes and job
    state changes are serialized together. Callbacks are invoked without it.
    """

    def __init__(
        self,
        ffmpeg: FFmpegAdapter,
        control: ProcessControl,
        on_progress: ProgressCallback,
        on_exit: ExitCallback,
        lock: Optional[threading.RLock] = None,
    ):
        self.ffmpeg = ffmpeg
        self.control = control
        self._on_progress = on_progress
        self._on_exit = on_exit
        self._lock = lock or threading.RLock()
        self._slots: Dict[str, OwnedProcess] = {}
        self._threads: Dict[str, threading.Thread] = {}
        self.logger = logging.getLogger(__name__)

    def slot(self, job_id: str) -> ProcessSlot:
        with self._lock:
            return self._slots.get(job_id, NO_PROCESS)

    def launch(self, job_id: str, stages: List[EncodeStage]):
        """Spawns the first stage and starts watching it.

        Raises BinaryNotFound/SpawnError if the encoder cannot be started;
        nothing is owned in that case.
        """
        if not stages:
            raise ValueError("At least one encode stage is required")
        process = self.ffmpeg.spawn(stages[0].args)
        with self._lock:
            self._slots[job_id] = OwnedProcess(process=process, stage=stages[0], stage_index=0)
            thread = threading.Thread(
                target=self._watch,
                args=(job_id, stages),
                name=f"vcomp-job-{job_id[:8]}",
                daemon=True,
            )
            self._threads[job_id] = thread
        try:
            thread.start()
        except RuntimeError as exc:
            with self._lock:
                self._slots.pop(job_id, None)
                self._threads.pop(job_id, None)
                self.control.kill(process)
            raise SpawnError(f"Could not watch encoder for job {job_id}: {exc}") from exc

    def terminate(self, job_id: str) -> bool:
        """Kills the job's process and releases it. Returns False if nothing was owned."""
        with self._lock:
            slot = self._slots.pop(job_id, None)
            if slot is None:
                return False
            self.control.kill(slot.process)
        self.logger.info(f"FFMPEG_KILLED: job={job_id} pid={getattr(slot.process, 'pid', '?')}")
        return True

    def suspend(self, job_id: str):
        with self._lock:
            slot = self._require(job_id)
            self.control.suspend(slot.process)
            slot.suspended = True

    def resume(self, job_id: str):
        with self._lock:
            slot = self._require(job_id)
            self.control.resume(slot.process)
            slot.suspended = False

    def release(self, job_id: str):
        with self._lock:
            self._slots.pop(job_id, None)

    def terminate_all(self) -> int:
        with self._lock:
            job_ids = list(self._slots)
        return sum(1 for job_id in job_ids if self.terminate(job_id))

    def join(self, timeout: Optional[float] = None):
        with self._lock:
            threads = list(self._threads.values())
        for thread in threads:
            if thread is not threading.current_thread():
                thread.join(timeout)

    def _require(self, job_id: str) -> OwnedProcess:
        slot = self._slots.get(job_id)
        if slot is None:
            raise CompressorError(f"No encoder process owned for job {job_id}")
        return slot

    def _owns(self, job_id: str, slot: OwnedProcess) -> bool:
        return self._slots.get(job_id) is slot

    def _read_stage(self, job_id: str, slot: OwnedProcess, parser: ProgressParser) -> int:
        process = slot.process
        try:
            if process.stderr is not None:
                for chunk in process.stderr:
                    fields = parser.feed(chunk)
                    if fields is not None:
                        self._on_progress(job_id, slot.stage, fields)
                fields = parser.flush()
                if fields is not None:
                    self._on_progress(job_id, slot.stage, fields)
            return process.wait()
        finally:
            if process.stderr is not None:
                process.stderr.close()

    def _next_stage(self, job_id: str, previous: OwnedProcess, stages: List[EncodeStage]) -> Optional[OwnedProcess]:
        """Swaps in the next stage's process; None if the job was cancelled meanwhile."""
        with self._lock:
            if not self._owns(job_id, previous):
                return None
            index = previous.stage_index + 1
            process = self.ffmpeg.spawn(stages[index].args)
            slot = OwnedProcess(process=process, stage=stages[index], stage_index=index)
            if previous.suspended:
                self.control.suspend(process)
                slot.suspended = True
            self._slots[job_id] = slot
            return slot

    def _watch(self, job_id: str, stages: List[EncodeStage]):
        with self._lock:
            slot = self._slots.get(job_id)
        if slot is None:
            return

        try:
            while True:
                parser = ProgressParser()
                code = self._read_stage(job_id, slot, parser)
                self.logger.debug(f"FFMPEG_EXIT: job={job_id} stage={slot.stage.label} code={code}")
                if code != 0 or slot.stage_index == len(stages) - 1:
                    outcome = ProcessOutcome(returncode=code, diagnostic_tail=parser.tail())
                    break
                try:
                    next_slot = self._next_stage(job_id, slot, stages)
                except CompressorError as exc:
                    outcome = ProcessOutcome(returncode=None, error=str(exc))
                    break
                if next_slot is None:
                    return
                slot = next_slot
        except Exception as exc:
            self.logger.exception(f"Supervision of job {job_id} failed")
            outcome = ProcessOutcome(returncode=None, error=f"Encoder process error: {exc}")
            with self._lock:
                if self._owns(job_id, slot):
                    self.control.kill(slot.process)
        finally:
            with self._lock:
                if self._threads.get(job_id) is threading.current_thread():
                    del self._threads[job_id]

        with self._lock:
            if not self._owns(job_id, slot):
                return
        self._on_exit(job_id, outcome)
