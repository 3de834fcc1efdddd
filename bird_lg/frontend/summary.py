"""
Parser for `show protocols` output

    Name       Proto      Table      State  Since         Info
    device1    Device     ---        up     2024-01-01
    bgp_peer1  BGP        ---        up     2024-01-01    Established
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from bird_lg.models import SummaryRow
from bird_lg.utils.error_handling import ValidationError

logger = logging.getLogger(__name__)

_ROW = re.compile(r"(\w+)\s+(\w+)\s+([\w-]+)\s+(\w+)\s+([0-9\-\. :]+)(.*)")

STATE_CLASSES = {
    "up": "success",
    "down": "secondary",
    "start": "danger",
    "passive": "info",
}


@dataclass
class ProtocolSummary:
    """Parsed summary table of one server"""
    server: str
    headers: List[str] = field(default_factory=list)
    rows: List[SummaryRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'server': self.server,
            'headers': self.headers,
            'rows': [r.to_dict() for r in self.rows],
        }


def map_state(state: str, info: str) -> str:
    if "Passive" in info:
        return "info"
    return STATE_CLASSES.get(state.lower(), "secondary")


def parse_summary(data: str, server: str,
                  protocol_filter: Sequence[str] = (),
                  name_filter: Optional[str] = None) -> ProtocolSummary:
    """
    Parse a protocols table.

    Args:
        data: Raw `show protocols` reply
        server: Display name the table belongs to
        protocol_filter: Keep only these protocol types (case-insensitive); empty keeps all
        name_filter: Drop protocols whose name matches this regular expression

    Raises:
        ValidationError: the reply holds no data rows at all
    """
    lines = data.strip().split("\n")
    if len(lines) <= 1:
        raise ValidationError(f"Invalid summary data: {data.strip()}")

    wanted = {p.lower() for p in protocol_filter}
    hidden = re.compile(name_filter) if name_filter else None

    summary = ProtocolSummary(server=server, headers=lines[0].split())
    for line in lines[1:]:
        line = line.strip()
        if not line:
            continue
        match = _ROW.match(line)
        if not match:
            logger.debug(f"Skipping unparsable summary line: {line}")
            continue

        name, proto, table, state, since, info = match.groups()
        since, info = since.strip(), info.strip()

        if wanted and proto.lower() not in wanted:
            continue
        if hidden and hidden.search(name):
            continue

        summary.rows.append(SummaryRow(
            name=name, proto=proto, table=table, state=state,
            since=since, info=info, mapped_state=map_state(state, info),
        ))

    summary.rows.sort(key=lambda r: r.name)
    return summary
