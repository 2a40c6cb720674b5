"""Suspend/continue capability for encoder processes.

Pausing relies on SIGSTOP/SIGCONT, which only exist on POSIX systems. Callers
go through a ProcessControl and get SuspendUnsupported elsewhere instead of an
AttributeError from the signal module.
"""

import signal
import subprocess
import sys
from vcomp.domain.errors import SuspendUnsupported


class ProcessControl:
    """Capability interface for suspending and continuing a running process."""

    def suspend(self, process: subprocess.Popen):
        raise SuspendUnsupported(sys.platform)

    def resume(self, process: subprocess.Popen):
        raise SuspendUnsupported(sys.platform)

    def kill(self, process: subprocess.Popen):
        """Forceful termination; the encoder gets no chance to finalize its output."""
        if process.poll() is None:
            process.kill()


class UnsupportedProcessControl(ProcessControl):
    pass


class PosixProcessControl(ProcessControl):
    def suspend(self, process: subprocess.Popen):
        process.send_signal(signal.SIGSTOP)

    def resume(self, process: subprocess.Popen):
        process.send_signal(signal.SIGCONT)


def default_process_control() -> ProcessControl:
    if hasattr(signal, "SIGSTOP") and hasattr(signal, "SIGCONT"):
        return PosixProcessControl()
    return UnsupportedProcessControl()
