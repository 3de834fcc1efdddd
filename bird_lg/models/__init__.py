"""
Looking Glass Data Models

Core data structures shared by the proxy and frontend tiers. None of these
are persisted; they live for the duration of one request, except Backend,
which is built from configuration at startup and never changes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from bird_lg.utils.error_handling import AggregationErrorKind
from bird_lg.utils.timeout_config import Deadline


@dataclass(frozen=True)
class Backend:
    """
    One proxy agent in front of one router.

    Identity is the fully-qualified hostname; the display name is what
    operators type in URLs and see in results.
    """
    hostname: str
    display_name: str
    proxy_port: int = 8000

    @property
    def base_url(self) -> str:
        host = self.hostname
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"  # bare IPv6 literal
        return f"http://{host}:{self.proxy_port}"

    def to_dict(self) -> dict:
        return {
            'hostname': self.hostname,
            'display_name': self.display_name,
            'base_url': self.base_url,
        }


@dataclass
class CommandRequest:
    """A single inbound API call, consumed once."""
    servers: str
    command: str
    caller: Optional[str] = None
    kind: Optional[str] = None
    deadline: Optional[Deadline] = None


@dataclass
class TracerouteJob:
    """One traceroute invocation on a proxy; holds a concurrency slot while running."""
    target: str
    backend: str
    flags: List[str] = field(default_factory=list)
    raw: bool = False

    def command_line(self, binary: str, args: List[str]) -> List[str]:
        return [binary] + list(self.flags) + list(args)


class OutcomeStatus(Enum):
    """Settled state of one backend in a fan-out"""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class BackendOutcome:
    """Result of one per-backend operation inside a fan-out."""
    server: str
    display_name: str
    status: OutcomeStatus
    body: Optional[str] = None
    error: Optional[str] = None
    duration: float = 0.0
    error_kind: Optional[AggregationErrorKind] = None

    @classmethod
    def success(cls, server: str, display_name: str, body: str,
                duration: float = 0.0) -> 'BackendOutcome':
        return cls(server, display_name, OutcomeStatus.SUCCESS, body=body, duration=duration)

    @classmethod
    def timeout(cls, server: str, display_name: str,
                duration: float = 0.0) -> 'BackendOutcome':
        return cls(server, display_name, OutcomeStatus.TIMEOUT,
                   error="no response before deadline", duration=duration)

    @classmethod
    def failure(cls, server: str, display_name: str, detail: str, duration: float = 0.0,
                kind: Optional[AggregationErrorKind] = None) -> 'BackendOutcome':
        return cls(server, display_name, OutcomeStatus.ERROR, error=detail, duration=duration,
                   error_kind=kind)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def to_dict(self) -> dict:
        return {
            'server': self.server,
            'display_name': self.display_name,
            'status': self.status.value,
            'result': self.body,
            'error': self.error,
            'error_kind': self.error_kind.value if self.error_kind else None,
            'duration': round(self.duration, 3),
        }


@dataclass
class AggregatedResult:
    """
    Ordered per-backend outcomes of a fan-out.

    Entries follow the resolved server order, never completion order.
    """
    entries: List[BackendOutcome] = field(default_factory=list)
    command: Optional[str] = None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def servers(self) -> List[str]:
        return [e.server for e in self.entries]

    @property
    def successful(self) -> List[BackendOutcome]:
        return [e for e in self.entries if e.ok]

    @property
    def partial(self) -> bool:
        return any(not e.ok for e in self.entries)

    @property
    def failure_kind(self) -> Optional[AggregationErrorKind]:
        return AggregationErrorKind.PARTIAL_FAILURE if self.partial else None

    def get(self, server: str) -> Optional[BackendOutcome]:
        for entry in self.entries:
            if server in (entry.server, entry.display_name):
                return entry
        return None

    def to_dict(self) -> dict:
        return {
            'servers': self.servers,
            'command': self.command,
            'partial': self.partial,
            'results': [e.to_dict() for e in self.entries],
        }


@dataclass
class RouteRecord:
    """One route parsed out of `show route ... all` output."""
    prefix: str
    as_path: List[int] = field(default_factory=list)
    next_hop: Optional[str] = None
    via: Optional[str] = None
    protocol: Optional[str] = None
    preferred: bool = False
    source: Optional[str] = None

    @property
    def origin_as(self) -> Optional[int]:
        return self.as_path[-1] if self.as_path else None


class NodeKind(Enum):
    """What a bgpmap node stands for"""
    TARGET = "target"
    SERVER = "server"
    ASN = "asn"


@dataclass
class PathGraphNode:
    """A bgpmap vertex; ASN nodes are deduplicated by ASN."""
    key: str
    kind: NodeKind
    label: Optional[str] = None
    asn: Optional[int] = None
    preferred: bool = False
    resolved: bool = False

    def to_dict(self) -> dict:
        return {
            'id': self.key,
            'kind': self.kind.value,
            'label': self.label or self.key,
            'asn': self.asn,
            'preferred': self.preferred,
            'resolved': self.resolved,
        }


@dataclass
class PathGraphEdge:
    """One hop of an AS path; merged across servers and prefixes."""
    src: str
    dst: str
    prefixes: Set[str] = field(default_factory=set)
    labels: List[str] = field(default_factory=list)
    preferred: bool = False

    @property
    def key(self):
        return (self.src, self.dst)

    def to_dict(self) -> dict:
        return {
            'src': self.src,
            'dst': self.dst,
            'prefixes': sorted(self.prefixes),
            'labels': list(self.labels),
            'preferred': self.preferred,
        }


@dataclass
class SummaryRow:
    """One protocol row of `show protocols`."""
    name: str
    proto: str
    table: str
    state: str
    since: str
    info: str
    mapped_state: str = "secondary"

    def to_dict(self) -> Dict[str, str]:
        return {
            'name': self.name,
            'proto': self.proto,
            'table': self.table,
            'state': self.state,
            'mapped_state': self.mapped_state,
            'since': self.since,
            'info': self.info,
        }
