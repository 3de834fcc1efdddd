"""
Route dump parser for `show route ... all` output

Handles both header styles:

    BIRD 2:  192.0.2.0/24  unicast [peer1 2024-01-01 from 198.51.100.1] * (100) [AS64500i]
    BIRD 1:  192.0.2.0/24  via 198.51.100.1 on eth0 [peer1 2024-01-01] * (100) [AS64500i]

Attribute lines below a header are tab-indented. Alternative routes for the
same prefix repeat the header without the prefix.
"""

import logging
import re
from typing import List, Optional

from bird_lg.models import RouteRecord

logger = logging.getLogger(__name__)

ROUTE_TYPES = ("unicast", "blackhole", "unreachable", "prohibited")

_BIRD2_HEADER = re.compile(
    r"^(?P<prefix>\S+)?\s+(?P<type>unicast|blackhole|unreachable|prohibited)\s+"
    r"\[(?P<protocol>\S+)[^\]]*\]\s*(?P<preferred>\*)?"
)
_BIRD1_HEADER = re.compile(
    r"^(?P<prefix>\S+)?\s+(?P<via>via\s+(?P<gateway>\S+)\s+on\s+\S+)\s+"
    r"\[(?P<protocol>\S+)[^\]]*\]\s*(?P<preferred>\*)?"
)
_VIA = re.compile(r"^\t(via\s+(\S+).*?)\s*$")
_AS_PATH = re.compile(r"^\tBGP\.as_path:\s*(.*?)\s*$")
_NEXT_HOP = re.compile(r"^\tBGP\.next_hop:\s*(\S+)")

_PATH_JUNK = str.maketrans("", "", "(){}")


def parse_as_path(value: str) -> List[int]:
    """
    Turn a BGP.as_path attribute into ASNs.

    Set/confederation markers are dropped and prepends collapse into one hop.
    """
    path: List[int] = []
    for token in value.translate(_PATH_JUNK).split():
        try:
            asn = int(token)
        except ValueError:
            continue
        if path and path[-1] == asn:
            continue
        path.append(asn)
    return path


def parse_routes(text: str, source: Optional[str] = None) -> List[RouteRecord]:
    """Parse every route in a dump; lines that fit no known shape are skipped."""
    routes: List[RouteRecord] = []
    current: Optional[RouteRecord] = None
    last_prefix: Optional[str] = None

    for line in text.splitlines():
        if not line.strip():
            continue

        if line.startswith("\t"):
            if current is None:
                continue
            _apply_attribute(current, line)
            continue

        match = _BIRD2_HEADER.match(line) or _BIRD1_HEADER.match(line)
        if not match:
            # Table banners, status text, anything else
            current = None
            continue

        prefix = match.group("prefix") or last_prefix
        if prefix is None:
            logger.debug(f"Route continuation without a prefix: {line.strip()}")
            current = None
            continue
        last_prefix = prefix

        current = RouteRecord(
            prefix=prefix,
            protocol=match.group("protocol"),
            preferred=match.group("preferred") is not None,
            source=source,
        )
        groups = match.groupdict()
        if groups.get("via"):
            current.via = groups["via"]
            current.next_hop = groups["gateway"]
        routes.append(current)

    return routes


def _apply_attribute(route: RouteRecord, line: str):
    match = _VIA.match(line)
    if match:
        if route.via is None:
            route.via = match.group(1)
            if route.next_hop is None:
                route.next_hop = match.group(2)
        return

    match = _AS_PATH.match(line)
    if match:
        route.as_path = parse_as_path(match.group(1))
        return

    match = _NEXT_HOP.match(line)
    if match:
        route.next_hop = match.group(1)
