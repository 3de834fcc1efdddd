"""
Managed execution of external diagnostic tools (traceroute, mtr)

The child is always reaped: on timeout it is killed at once, since the
caller's deadline has already passed, and on any other exit path it is
killed if still running. Each child runs in its own process group.
"""

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


class ProcessState(Enum):
    """How a managed process ended"""

    COMPLETED = "completed"
    TIMEOUT = "timeout"
    FAILED = "failed"


@dataclass
class ProcessResult:
    """Captured output of one managed process"""

    returncode: int
    stdout: str
    stderr: str
    state: ProcessState
    execution_time: float
    command: List[str]
    error_message: Optional[str] = None


class ManagedProcess:
    """
    Context manager around one child process.

    Spawn failures (missing binary, permission denied) propagate out of
    ``__enter__`` as OSError so callers can classify them.
    """

    def __init__(self, command: List[str], timeout: Optional[float] = None):
        self.command = command
        self.timeout = timeout
        self.process: Optional[subprocess.Popen] = None
        self.start_time: Optional[float] = None

    def __enter__(self) -> "ManagedProcess":
        self.start_time = time.monotonic()
        self.process = subprocess.Popen(
            self.command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=True,
        )
        logger.debug(f"Started process {self.process.pid}: {' '.join(self.command)}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.process is not None and self.process.poll() is None:
            logger.warning(f"Killing process {self.process.pid} left running")
            self._kill()

    def _kill(self):
        # The child leads its own session; kill the group so helpers holding
        # the output pipes go too
        try:
            os.killpg(self.process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        return self.process.communicate()

    def wait_for_completion(self) -> ProcessResult:
        """Wait up to `timeout` seconds and collect the output."""
        if self.process is None:
            raise RuntimeError("Process not started - use within context manager")

        try:
            stdout, stderr = self.process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {self.process.pid} timed out after {self.timeout}s, killing")
            stdout, stderr = self._kill()
            return ProcessResult(
                returncode=self.process.returncode,
                stdout=stdout or "",
                stderr=stderr or "",
                state=ProcessState.TIMEOUT,
                execution_time=time.monotonic() - self.start_time,
                command=self.command,
                error_message=f"Process timeout after {self.timeout}s",
            )

        return ProcessResult(
            returncode=self.process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            state=ProcessState.COMPLETED if self.process.returncode == 0 else ProcessState.FAILED,
            execution_time=time.monotonic() - self.start_time,
            command=self.command,
        )


def run_with_resource_management(command: List[str],
                                 timeout: Optional[float] = None) -> ProcessResult:
    """subprocess.run() equivalent that always reaps the child."""
    with ManagedProcess(command, timeout=timeout) as managed:
        return managed.wait_for_completion()
