"""
Whois client

Plain RFC 3912 whois: connect to port 43, send the query line, read until
the server closes the connection. Optional network-specific post-processing
rewrites and trims the reply.
"""

import logging
import re
import socket
from typing import Optional

from bird_lg.utils.error_handling import ValidationError, WhoisError
from bird_lg.utils.timeout_config import TimeoutType, get_timeout

logger = logging.getLogger(__name__)

MAX_RESPONSE_SIZE = 1024 * 1024
SHORTEN_LINES = 20

DN42_ASN_BASE = 4242420000
DN42_KEY_ATTRIBUTES = ("aut-num:", "as-name:", "descr:", "admin-c:", "tech-c:", "mnt-by:")

NET_SPECIFIC_MODES = ("", "dn42", "shorten", "dn42_shorten")

_BARE_ASN = re.compile(r"^(?:AS)?(\d+)$", re.IGNORECASE)


def dn42_rewrite(target: str) -> str:
    """Bare AS numbers are queried as AUT-NUM objects; short ones map into the dn42 range."""
    match = _BARE_ASN.match(target)
    if not match:
        return target
    asn = int(match.group(1))
    if asn < 10000:
        asn += DN42_ASN_BASE
    return f"AS{asn}"


def dn42_filter(result: str) -> str:
    """Keep the identifying attributes of an AUT-NUM object."""
    kept = [line for line in result.splitlines()
            if any(key in line for key in DN42_KEY_ATTRIBUTES)]
    return "\n".join(kept) + "\n" if kept else result


def shorten(result: str, lines: int = SHORTEN_LINES) -> str:
    all_lines = result.splitlines()
    if len(all_lines) <= lines:
        return result
    kept = all_lines[:lines]
    kept.append(f"\n{len(all_lines) - lines} line(s) skipped.")
    return "\n".join(kept) + "\n"


class WhoisClient:
    """Queries one whois server"""

    def __init__(self, server: str = "whois.verisign-grs.com", port: int = 43,
                 timeout: Optional[float] = None, net_specific_mode: str = ""):
        if net_specific_mode not in NET_SPECIFIC_MODES:
            raise ValidationError(
                f"Unknown net-specific mode: {net_specific_mode}",
                "net_specific_mode",
                f"Use one of: {', '.join(m for m in NET_SPECIFIC_MODES if m)}",
            )
        self.server = server
        self.port = port
        self.timeout = timeout if timeout is not None else get_timeout(TimeoutType.WHOIS_QUERY)
        self.net_specific_mode = net_specific_mode

    def query(self, target: str) -> str:
        """Look up `target` and apply the configured post-processing."""
        target = target.strip()
        if not target:
            raise ValidationError("Whois target is required", "target")
        if "\n" in target or "\r" in target:
            raise ValidationError("Whois target must be a single line", "target")

        dn42 = self.net_specific_mode.startswith("dn42")
        if dn42:
            target = dn42_rewrite(target)

        result = self.raw_query(target)

        if dn42 and target.upper().startswith("AS"):
            result = dn42_filter(result)
        if self.net_specific_mode.endswith("shorten"):
            result = shorten(result)
        return result

    def raw_query(self, target: str, timeout: Optional[float] = None) -> str:
        timeout = self.timeout if timeout is None else timeout
        logger.debug(f"whois {target} @ {self.server}:{self.port}")
        chunks = []
        size = 0
        try:
            with socket.create_connection((self.server, self.port), timeout=timeout) as sock:
                sock.sendall(f"{target}\r\n".encode("utf-8"))
                while True:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    chunks.append(chunk)
                    size += len(chunk)
                    if size >= MAX_RESPONSE_SIZE:
                        logger.warning(f"whois reply for {target} truncated at {size} bytes")
                        break
        except socket.timeout:
            raise WhoisError(f"whois server {self.server} timed out")
        except OSError as e:
            raise WhoisError(f"Cannot query whois server {self.server}",
                             technical_details=str(e))

        return b"".join(chunks).decode("utf-8", errors="replace")
