"""Error taxonomy for the job engine.

Submission-time problems are raised to the caller. Runtime problems (encoder
crashes, nonzero exit codes) never escape the engine: they end the job in the
FAILED state and the error text travels in the completion event.
"""

from typing import Optional


class CompressorError(Exception):
    """Base class for all vcomp errors."""


class ConfigValidationError(CompressorError, ValueError):
    pass


class InputNotFound(CompressorError, FileNotFoundError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Input file does not exist: {path}")


class BinaryNotFound(CompressorError):
    def __init__(self, binary: str):
        self.binary = binary
        super().__init__(f"Encoder binary not found: {binary}")


class SpawnError(CompressorError):
    pass


class ProcessExitNonZero(CompressorError):
    def __init__(self, code: int, diagnostic_tail: str = ""):
        self.code = code
        self.diagnostic_tail = diagnostic_tail
        message = f"ffmpeg exited with code {code}"
        if diagnostic_tail:
            message = f"{message}. Error: {diagnostic_tail}"
        super().__init__(message)


class InvalidStateTransition(CompressorError):
    def __init__(self, job_id: str, current, requested):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        current_name = getattr(current, "value", current)
        requested_name = getattr(requested, "value", requested)
        super().__init__(f"Job {job_id}: cannot go from {current_name} to {requested_name}")


class JobNotFound(CompressorError, KeyError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(job_id)

    def __str__(self) -> str:
        return f"Job not found: {self.job_id}"


class SuspendUnsupported(CompressorError):
    def __init__(self, platform: Optional[str] = None):
        self.platform = platform
        suffix = f" on {platform}" if platform else ""
        super().__init__(f"Pausing processes is not supported{suffix}")


class ProbeError(CompressorError):
    pass


class ManagerClosed(CompressorError):
    def __init__(self):
        super().__init__("Job manager has been shut down")


# Error texts of jobs that were stopped on purpose rather than failing.
CANCELLED_MESSAGE = "Job cancelled"
SHUTDOWN_MESSAGE = "Shut down"
