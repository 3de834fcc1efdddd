"""
Traceroute tool selection and output handling

The proxy does not know in advance which traceroute implementation the host
carries (Debian traceroute, BSD traceroute, mtr, busybox), so it probes a list
of candidate invocations against the loopback address at startup and keeps
the first one that exits cleanly.
"""

import logging
import re
import shlex
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from bird_lg.utils.error_handling import ValidationError
from bird_lg.utils.subprocess_manager import ProcessState, run_with_resource_management

logger = logging.getLogger(__name__)

PROBE_TARGET = "127.0.0.1"
PROBE_TIMEOUT = 10.0

CUSTOM_FLAG_SETS: List[List[str]] = [
    ["-q1", "-N32", "-w1"],
    ["-q1", "-w1"],
    [],
]

STANDARD_TOOLS: List[Tuple[str, List[str]]] = [
    ("mtr", ["-w", "-c1", "-Z1", "-G1", "-b"]),
    ("traceroute", ["-q1", "-N32", "-w1"]),   # Debian
    ("traceroute", ["-q1", "-w1"]),           # FreeBSD
    ("traceroute", []),
]

_SILENT_HOP = re.compile(r"^\s*(\d*)\s*\*\n", re.MULTILINE)


@dataclass
class TracerouteConfig:
    """A working traceroute invocation"""
    binary: str
    flags: List[str] = field(default_factory=list)

    def command_line(self, args: Sequence[str]) -> List[str]:
        return [self.binary] + list(self.flags) + list(args)

    def __str__(self):
        return " ".join(self.command_line([]))


def probe(binary: str, flags: Sequence[str]) -> bool:
    """Run one candidate against the loopback address; True when it exits 0."""
    command = [binary] + list(flags) + [PROBE_TARGET]
    try:
        result = run_with_resource_management(command, timeout=PROBE_TIMEOUT)
    except OSError as e:
        logger.info(f"Traceroute autodetect fail, continuing: {' '.join(command)} ({e})")
        return False

    if result.state == ProcessState.COMPLETED:
        logger.info(f"Traceroute autodetect success: {' '.join(command)}")
        return True

    logger.info(
        f"Traceroute autodetect fail, continuing: {' '.join(command)} "
        f"({result.error_message or f'exit status {result.returncode}'})"
    )
    return False


def detect(binary: Optional[str] = None,
           flags: Optional[Sequence[str]] = None,
           prober: Callable[[str, Sequence[str]], bool] = probe) -> Optional[TracerouteConfig]:
    """
    Pick the traceroute invocation to use.

    A configured binary together with explicit flags is trusted as-is. A
    configured binary alone is probed with a few common flag sets. Otherwise
    the standard tools are tried in order. Returns None when nothing works.
    """
    if binary and flags:
        return TracerouteConfig(binary, list(flags))

    if binary:
        for candidate in CUSTOM_FLAG_SETS:
            if prober(binary, candidate):
                return TracerouteConfig(binary, list(candidate))

    for tool, candidate in STANDARD_TOOLS:
        if prober(tool, candidate):
            return TracerouteConfig(tool, list(candidate))

    logger.warning("Traceroute autodetect failed! Traceroute will be disabled")
    return None


def parse_target_args(query: str) -> List[str]:
    """
    Split a traceroute query into arguments.

    Only targets are accepted from callers; anything that looks like an
    option is refused so flags stay under operator control.
    """
    try:
        args = shlex.split(query.strip())
    except ValueError as e:
        raise ValidationError(f"Failed to parse args: {e}", "q")

    if not args:
        raise ValidationError("Query parameter 'q' is required", "q")

    for arg in args:
        if arg.startswith("-"):
            raise ValidationError(
                f"Option arguments are not accepted: {arg}", "q",
                "Pass only a hostname or IP address"
            )
    return args


def format_output(output: str, raw: bool = False) -> str:
    """Drop hops that never answered and note how many there were."""
    if raw:
        return output

    processed, skipped = _SILENT_HOP.subn("", output)
    processed = processed.strip()
    if skipped:
        processed += f"\n\n{skipped} hops not responding."
    return processed
