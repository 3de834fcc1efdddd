"""Canonical looking glass queries and the BIRD commands they expand to"""

from enum import Enum
from typing import Optional

from bird_lg.utils.error_handling import ValidationError


class CommandKind(Enum):
    SUMMARY = "summary"
    DETAIL = "detail"
    ROUTE = "route"
    ROUTE_ALL = "route_all"
    ROUTE_WHERE = "route_where"
    ROUTE_WHERE_ALL = "route_where_all"
    ROUTE_FROM_PROTOCOL = "route_from_protocol"
    ROUTE_FROM_PROTOCOL_ALL = "route_from_protocol_all"
    ROUTE_FILTERED_FROM_PROTOCOL = "route_filtered_from_protocol"
    ROUTE_FILTERED_FROM_PROTOCOL_ALL = "route_filtered_from_protocol_all"
    ROUTE_FROM_ORIGIN = "route_from_origin"
    ROUTE_FROM_ORIGIN_ALL = "route_from_origin_all"
    GENERIC = "generic"
    ROUTE_BGPMAP = "route_bgpmap"
    ROUTE_WHERE_BGPMAP = "route_where_bgpmap"


COMMAND_TEMPLATES = {
    CommandKind.SUMMARY: "show protocols",
    CommandKind.DETAIL: "show protocols all {}",
    CommandKind.ROUTE: "show route for {}",
    CommandKind.ROUTE_ALL: "show route for {} all",
    CommandKind.ROUTE_WHERE: "show route where net ~ [ {} ]",
    CommandKind.ROUTE_WHERE_ALL: "show route where net ~ [ {} ] all",
    CommandKind.ROUTE_FROM_PROTOCOL: "show route protocol {}",
    CommandKind.ROUTE_FROM_PROTOCOL_ALL: "show route protocol {} all",
    CommandKind.ROUTE_FILTERED_FROM_PROTOCOL: "show route filtered protocol {}",
    CommandKind.ROUTE_FILTERED_FROM_PROTOCOL_ALL: "show route filtered protocol {} all",
    CommandKind.ROUTE_FROM_ORIGIN: "show route where bgp_path.last = {}",
    CommandKind.ROUTE_FROM_ORIGIN_ALL: "show route where bgp_path.last = {} all",
    CommandKind.GENERIC: "show {}",
    # bgpmap needs the full attribute dump
    CommandKind.ROUTE_BGPMAP: "show route for {} all",
    CommandKind.ROUTE_WHERE_BGPMAP: "show route where net ~ [ {} ] all",
}


def parse_kind(kind: str) -> CommandKind:
    try:
        return CommandKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown query type: {kind}", "kind")


def build_command(kind, arg: Optional[str] = None) -> str:
    """Expand a command kind (enum or its string value) with its argument."""
    if not isinstance(kind, CommandKind):
        kind = parse_kind(kind)

    template = COMMAND_TEMPLATES[kind]
    if "{}" not in template:
        return template

    arg = (arg or "").strip()
    if not arg:
        raise ValidationError(f"Query type {kind.value} needs an argument", "arg")
    if "\n" in arg or "\r" in arg:
        raise ValidationError("Argument must be a single line", "arg")
    return template.format(arg)
