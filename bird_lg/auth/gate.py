"""
Admission check shared by the proxy and the frontend

Two independent checks, both of which must pass:

1. the caller address is inside the configured allow-list (empty = anyone)
2. the request carries the shared bearer token (only when auth is enabled)

Evaluation is pure; the gate holds no per-request state.
"""

import hmac
import ipaddress
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Union

from bird_lg.utils.config import AuthConfig
from bird_lg.utils.error_handling import AuthError, AuthErrorKind, ConfigurationError

logger = logging.getLogger(__name__)

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]
IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class AuthDecision:
    """Outcome of one admission check"""
    allowed: bool
    reason: Optional[AuthErrorKind] = None

    @classmethod
    def allow(cls) -> "AuthDecision":
        return cls(True)

    @classmethod
    def deny(cls, reason: AuthErrorKind) -> "AuthDecision":
        return cls(False, reason)

    def __bool__(self):
        return self.allowed


def parse_networks(entries: Sequence[str]) -> List[IPNetwork]:
    """Parse allow-list entries; bare addresses become host networks."""
    networks = []
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            raise ConfigurationError(
                f"Invalid IP address or network in allow-list: {entry}",
                guidance="Use addresses like 192.0.2.1 or networks like 2001:db8::/32",
            )
    return networks


def parse_caller(caller: Optional[str]) -> Optional[IPAddress]:
    """
    Extract the address from a caller string.

    Accepts `1.2.3.4`, `1.2.3.4:5678`, `::1`, `[::1]` and `[::1]:5678`.
    Returns None for anything else.
    """
    if not caller:
        return None
    caller = caller.strip()

    if caller.startswith("["):
        host, sep, _ = caller[1:].partition("]")
        if not sep:
            return None
        caller = host
    elif caller.count(":") == 1:
        caller = caller.split(":", 1)[0]

    # Strip an IPv6 zone id
    caller = caller.split("%", 1)[0]
    try:
        return ipaddress.ip_address(caller)
    except ValueError:
        return None


def address_in(address: Optional[IPAddress], networks: Sequence[IPNetwork]) -> bool:
    """Membership test that also matches IPv4-mapped IPv6 addresses."""
    if address is None:
        return False
    for network in networks:
        if address.version == network.version and address in network:
            return True
    # IPv4 callers reaching a dual-stack listener show up as ::ffff:a.b.c.d
    if address.version == 6 and address.ipv4_mapped is not None:
        return any(address.ipv4_mapped in net for net in networks if net.version == 4)
    return False


def caller_from_headers(headers: Mapping[str, str], peer: Optional[str] = None,
                        trusted_proxies: Sequence[IPNetwork] = ()) -> Optional[str]:
    """
    Client address as seen through a reverse proxy, falling back to the peer.

    X-Forwarded-For and X-Real-IP are only read when the socket peer is one
    of `trusted_proxies`; any other peer is the caller itself.
    """
    if not address_in(parse_caller(peer), trusted_proxies):
        return peer
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return peer


class AuthGate:
    """Bearer token and caller allow-list check"""

    def __init__(self, auth: AuthConfig, allowed_nets: Sequence[str] = (),
                 require_token: bool = True):
        """
        Args:
            auth: Shared token settings and trusted reverse proxies
            allowed_nets: Caller allow-list; empty admits any address
            require_token: Check inbound bearer tokens. The public frontend only
                uses the token for its own outgoing calls.
        """
        self.enabled = auth.enabled
        self.require_token = require_token and auth.enabled
        self._token = auth.token or ""
        self.networks = parse_networks(allowed_nets)
        self.trusted_proxies = parse_networks(auth.trusted_proxies or [])

        if self.enabled and not self._token:
            raise ConfigurationError(
                "Authentication enabled but no token configured",
                guidance="Set BIRDLG_AUTH_TOKEN or auth.token in the config file",
            )

    def caller(self, headers: Mapping[str, str], peer: Optional[str]) -> Optional[str]:
        """Caller address for admission, honouring forwarded headers from trusted proxies"""
        return caller_from_headers(headers, peer, self.trusted_proxies)

    def ip_allowed(self, caller: Optional[str]) -> bool:
        if not self.networks:
            return True
        return address_in(parse_caller(caller), self.networks)

    def token_valid(self, authorization: Optional[str]) -> bool:
        if not self.require_token:
            return True
        if not authorization:
            return False
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != "bearer" or not token:
            return False
        return hmac.compare_digest(token.strip().encode(), self._token.encode())

    def admit(self, caller_ip: Optional[str], authorization_header: Optional[str]) -> AuthDecision:
        if not self.ip_allowed(caller_ip):
            logger.debug(f"Denied caller {caller_ip}: not in allow-list")
            return AuthDecision.deny(AuthErrorKind.NOT_ALLOWED)
        if not self.token_valid(authorization_header):
            logger.debug(f"Denied caller {caller_ip}: bad or missing token")
            return AuthDecision.deny(AuthErrorKind.UNAUTHORIZED)
        return AuthDecision.allow()

    def check(self, caller_ip: Optional[str], authorization_header: Optional[str]):
        """Like admit(), but raises AuthError on denial"""
        decision = self.admit(caller_ip, authorization_header)
        if not decision:
            raise AuthError(decision.reason)

    def auth_headers(self) -> Dict[str, str]:
        """Headers to attach to outgoing calls to other tiers"""
        if not self.enabled:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
