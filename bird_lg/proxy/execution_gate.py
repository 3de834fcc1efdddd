"""
Execution gate for the proxy agent

Everything the proxy runs on behalf of a caller passes through here:

- control-interface commands, one at a time per link, in arrival order
- traceroute jobs, at most K at once across the whole process

Callers block on the gate (lock wait, slot wait) for no longer than their
request deadline allows.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Optional, Set, Tuple

from bird_lg.models import TracerouteJob
from bird_lg.proxy.control_link import ControlLink
from bird_lg.proxy.traceroute import (TracerouteConfig, detect, format_output,
                                      parse_target_args)
from bird_lg.utils.config import ProxyConfig
from bird_lg.utils.error_handling import (ExecutionError, ExecutionErrorKind,
                                          LinkError, LinkErrorKind)
from bird_lg.utils.logging import LoggingTimer, audit_log
from bird_lg.utils.subprocess_manager import ManagedProcess, ProcessState
from bird_lg.utils.timeout_config import Deadline

logger = logging.getLogger(__name__)


class FifoLock:
    """
    Ticket lock: waiters are admitted strictly in the order they arrived.

    A waiter that gives up leaves its ticket behind as abandoned; release()
    skips over abandoned tickets so later waiters are not stranded.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0
        self._abandoned: Set[int] = set()

    def acquire(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            end = None if timeout is None else time.monotonic() + timeout

            while ticket != self._serving:
                if end is None:
                    self._cond.wait()
                    continue
                remaining = end - time.monotonic()
                if remaining <= 0:
                    self._abandoned.add(ticket)
                    return False
                self._cond.wait(remaining)
            return True

    def release(self):
        with self._cond:
            self._serving += 1
            while self._serving in self._abandoned:
                self._abandoned.discard(self._serving)
                self._serving += 1
            self._cond.notify_all()

    @property
    def waiting(self) -> int:
        """Callers queued behind the current holder"""
        with self._cond:
            pending = self._next_ticket - self._serving - len(self._abandoned)
            return max(0, pending - 1)

    @contextmanager
    def hold(self, timeout: Optional[float] = None):
        if not self.acquire(timeout):
            raise LinkError(LinkErrorKind.TIMEOUT,
                            "Timed out waiting for the control session")
        try:
            yield
        finally:
            self.release()


class ExecutionGate:
    """Serializes control-link access and caps concurrent traceroutes"""

    def __init__(self, config: ProxyConfig,
                 traceroute: Optional[TracerouteConfig] = None,
                 autodetect: bool = True):
        """
        Args:
            config: Proxy configuration snapshot
            traceroute: Traceroute invocation to use; autodetected when omitted
            autodetect: Probe for a traceroute tool when none is given
        """
        self.config = config
        self.links: Dict[str, ControlLink] = {}
        self._locks: Dict[str, FifoLock] = {}

        self._add_link("bird", config.bird_socket)
        if config.bird6_socket:
            self._add_link("bird6", config.bird6_socket)

        self._slots = threading.BoundedSemaphore(config.traceroute_max_concurrent)

        if traceroute is None and autodetect:
            traceroute = detect(config.traceroute_bin, config.traceroute_flags)
        self.traceroute = traceroute

    def _add_link(self, name: str, socket_path: str):
        self.links[name] = ControlLink(
            socket_path,
            name=name,
            restrict_cmds=self.config.bird_restrict_cmds,
            restrict_session=self.config.bird_restrict_session,
            timeout=self.config.command_timeout,
            max_line_size=self.config.max_line_size,
        )
        self._locks[name] = FifoLock()

    def link_for(self, backend: str = "bird") -> Tuple[str, ControlLink]:
        """Resolve a link name; bird6 shares the bird link when not configured."""
        if backend not in self.links:
            backend = "bird"
        return backend, self.links[backend]

    def run_command(self, command: str, backend: str = "bird",
                    deadline: Optional[Deadline] = None,
                    caller: Optional[str] = None) -> str:
        """
        Run one control-interface command with exclusive access to its link.

        Raises:
            LinkError: FORBIDDEN without queueing, TIMEOUT when the lock or the
                reply does not arrive in time, CLOSED/PROTOCOL_DESYNC on I/O failure
        """
        name, link = self.link_for(backend)

        try:
            command = link.check_command(command)
        except LinkError as e:
            audit_log("bird command", caller=caller, resource=command, result=e.kind.value)
            raise

        if deadline is None:
            deadline = Deadline(self.config.command_timeout)

        try:
            with self._locks[name].hold(deadline.remaining()):
                with LoggingTimer(logger, f"{name} command '{command}'", logging.DEBUG):
                    output = link.send(command, deadline=deadline)
        except LinkError as e:
            logger.warning(f"[{name}] command '{command}' failed: {e.message}")
            audit_log("bird command", caller=caller, resource=command, result=e.kind.value)
            raise

        audit_log("bird command", caller=caller, resource=command)
        return output

    def run_traceroute(self, query: str, deadline: Optional[Deadline] = None,
                       caller: Optional[str] = None, raw: Optional[bool] = None,
                       backend: str = "traceroute") -> str:
        """
        Run one traceroute while holding a concurrency slot.

        Raises:
            ValidationError: unparsable query or option-looking arguments
            ExecutionError: UNSUPPORTED, SLOT_TIMEOUT, SPAWN_FAILED,
                PROCESS_TIMEOUT or PROCESS_FAILED
        """
        if self.traceroute is None:
            raise ExecutionError(ExecutionErrorKind.UNSUPPORTED,
                                 "Traceroute not supported on this node")

        args = parse_target_args(query)
        job = TracerouteJob(
            target=" ".join(args),
            backend=backend,
            flags=list(self.traceroute.flags),
            raw=self.config.traceroute_raw if raw is None else raw,
        )
        if deadline is None:
            deadline = Deadline(self.config.traceroute_timeout)

        remaining = deadline.remaining()
        if remaining is None:
            acquired = self._slots.acquire()
        else:
            acquired = self._slots.acquire(timeout=remaining)
        if not acquired:
            audit_log("traceroute", caller=caller, resource=job.target, result="slot_timeout")
            raise ExecutionError(ExecutionErrorKind.SLOT_TIMEOUT,
                                 "Too many traceroutes in progress, try again later")

        try:
            output = self._execute(job, args, deadline)
        except ExecutionError as e:
            audit_log("traceroute", caller=caller, resource=job.target, result=e.kind.value)
            raise
        finally:
            self._slots.release()

        audit_log("traceroute", caller=caller, resource=job.target)
        return format_output(output, job.raw)

    def _execute(self, job: TracerouteJob, args, deadline: Deadline) -> str:
        command = job.command_line(self.traceroute.binary, args)
        try:
            with ManagedProcess(command, timeout=deadline.remaining()) as process:
                result = process.wait_for_completion()
        except OSError as e:
            raise ExecutionError(ExecutionErrorKind.SPAWN_FAILED,
                                 "Error executing traceroute",
                                 technical_details=str(e))

        if result.state == ProcessState.TIMEOUT:
            raise ExecutionError(ExecutionErrorKind.PROCESS_TIMEOUT,
                                 f"Traceroute did not finish within {deadline.timeout}s")
        if result.state != ProcessState.COMPLETED:
            raise ExecutionError(ExecutionErrorKind.PROCESS_FAILED,
                                 f"Traceroute exited with status {result.returncode}",
                                 technical_details=result.stderr.strip() or None)

        logger.debug(f"Traceroute to {job.target} took {result.execution_time:.3f}s")
        return result.stdout

    def close(self):
        for link in self.links.values():
            link.close()
