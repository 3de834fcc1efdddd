"""
Server registry for the frontend

Configured server specs are either plain names (`gw1`, `gw1.example.net`,
`192.0.2.1`) or carry an explicit display name (`Frankfurt<gw1>`). Short
names get the configured domain appended; names that already contain a dot
or are IP literals are used as-is.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from bird_lg.models import Backend
from bird_lg.utils.config import FrontendConfig
from bird_lg.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)

PATTERN_SEPARATORS = re.compile(r"[+,]")


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value.strip("[]"))
        return True
    except ValueError:
        return False


def parse_server_spec(spec: str, domain: str = "", proxy_port: int = 8000) -> Backend:
    """Turn one configured server entry into a Backend."""
    spec = spec.strip()
    if not spec:
        raise ConfigurationError("Empty server entry in configuration")

    if "<" in spec:
        display, _, actual = spec.partition("<")
        if not actual.endswith(">") or not display.strip() or len(actual) < 2:
            raise ConfigurationError(
                f"Malformed server entry: {spec}",
                guidance="Use Display<hostname>, e.g. Frankfurt<gw1>",
            )
        display, hostname = display.strip(), actual[:-1].strip()
    else:
        display = hostname = spec

    if domain:
        suffix = f".{domain}"
        if "." not in hostname and not _is_ip(hostname):
            hostname = hostname + suffix
        elif hostname.endswith(suffix) and display == hostname:
            display = hostname[:-len(suffix)]

    return Backend(hostname=hostname, display_name=display, proxy_port=proxy_port)


@dataclass(frozen=True)
class Resolution:
    """One entry of a resolved server pattern; backend is None when unknown"""
    name: str
    backend: Optional[Backend] = None

    @property
    def known(self) -> bool:
        return self.backend is not None


class ServerRegistry:
    """Immutable lookup table of configured backends"""

    def __init__(self, backends: Sequence[Backend], domain: str = "",
                 all_servers_token: str = "all"):
        self.backends: List[Backend] = list(backends)
        self.domain = domain
        self.all_servers_token = all_servers_token

        self._by_display: Dict[str, Backend] = {}
        self._by_hostname: Dict[str, Backend] = {}
        for backend in self.backends:
            if backend.display_name in self._by_display:
                raise ConfigurationError(f"Duplicate server display name: {backend.display_name}")
            self._by_display[backend.display_name] = backend
            self._by_hostname[backend.hostname] = backend

    @classmethod
    def from_config(cls, config: FrontendConfig) -> "ServerRegistry":
        backends = [parse_server_spec(spec, config.domain, config.proxy_port)
                    for spec in config.servers]
        for backend in backends:
            logger.debug(f"Server {backend.display_name} -> {backend.hostname}")
        return cls(backends, config.domain, config.all_servers_token)

    def lookup(self, name: str) -> Optional[Backend]:
        """Match a display name, then a full hostname, then a short name plus domain."""
        backend = self._by_display.get(name) or self._by_hostname.get(name)
        if backend is None and self.domain:
            backend = self._by_hostname.get(f"{name}.{self.domain}")
        return backend

    def resolve(self, pattern: str) -> List[Resolution]:
        """
        Expand a server pattern in request order.

        `all` (or the configured token) selects every server in configured
        order. Repeated names are queried once; unknown names are kept in
        place so they can be reported.
        """
        pattern = (pattern or "").strip()
        if pattern == self.all_servers_token:
            return [Resolution(b.display_name, b) for b in self.backends]

        resolved = []
        seen = set()
        for name in PATTERN_SEPARATORS.split(pattern):
            name = name.strip()
            if not name:
                continue
            backend = self.lookup(name)
            key = backend.hostname if backend else name
            if key in seen:
                continue
            seen.add(key)
            resolved.append(Resolution(name, backend))
        return resolved

    def display_name(self, hostname: str) -> str:
        backend = self._by_hostname.get(hostname)
        return backend.display_name if backend else hostname

    def all_display_names(self) -> List[str]:
        return [b.display_name for b in self.backends]

    def __len__(self):
        return len(self.backends)

    def __iter__(self):
        return iter(self.backends)
