"""
ASN metadata lookup for bgpmap labels

Two sources:
- DNS TXT records in the Team Cymru format when a zone is configured
  (`AS64500.asn.cymru.com` -> "64500 | US | arin | 2001-01-01 | EXAMPLE - Example Inc, US")
- whois AUT-NUM objects otherwise

A failed lookup never fails the graph; the node is labelled `AS<n>` plus
`unknown` instead.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import dns.exception
import dns.resolver

from bird_lg.utils.error_handling import GraphBuildError, WhoisError
from bird_lg.utils.timeout_config import Deadline, TimeoutType, get_timeout
from bird_lg.whois import WhoisClient

logger = logging.getLogger(__name__)

DEFAULT_INFO_FIELDS = ("asn", "as-name", "ASName", "descr")
CYMRU_FIELDS = ("asn", "country", "registry", "allocated", "ASName")


def unknown_label(asn: int) -> str:
    return f"AS{asn}\nunknown"


def parse_cymru_txt(asn: int, record: str) -> Dict[str, str]:
    """Split a pipe-separated Cymru TXT record into named attributes."""
    parts = [p.strip() for p in record.split("|")]
    info = {"asn": f"AS{asn}"}
    for name, value in zip(CYMRU_FIELDS[1:], parts[1:]):
        if value:
            info[name] = value

    # "EXAMPLE - Example Inc, US" carries both the handle and a description
    full_name = info.get("ASName")
    if full_name:
        handle, sep, descr = full_name.partition(" - ")
        info["as-name"] = handle.strip()
        if sep and descr.strip():
            info["descr"] = descr.strip()
    return info


def parse_whois_attributes(asn: int, text: str) -> Dict[str, str]:
    """Collect `key: value` attribute lines; the first occurrence wins."""
    info = {"asn": f"AS{asn}"}
    for line in text.splitlines():
        if line.startswith(("%", "#")) or ":" not in line:
            continue
        key, _, value = line.partition(":")
        key, value = key.strip(), value.strip()
        if key and value and " " not in key and key not in info:
            info[key] = value
    return info


class ASNLookup:
    """Resolves AS numbers to display labels"""

    def __init__(self, dns_interface: str = "asn.cymru.com",
                 whois_client: Optional[WhoisClient] = None,
                 info_fields: Sequence[str] = DEFAULT_INFO_FIELDS,
                 timeout: Optional[float] = None,
                 max_workers: int = 8,
                 resolver: Optional[dns.resolver.Resolver] = None):
        self.dns_interface = dns_interface.strip(".") if dns_interface else ""
        self.whois_client = whois_client
        self.info_fields = list(info_fields) or list(DEFAULT_INFO_FIELDS)
        self.timeout = timeout if timeout is not None else get_timeout(TimeoutType.ASN_LOOKUP)
        self.max_workers = max_workers
        self._resolver = resolver

    @property
    def resolver(self) -> dns.resolver.Resolver:
        if self._resolver is None:
            self._resolver = dns.resolver.Resolver()
        return self._resolver

    def lookup(self, asn: int, timeout: Optional[float] = None) -> Dict[str, str]:
        """
        Fetch the attributes of one ASN.

        Raises:
            GraphBuildError: neither source produced an answer
        """
        timeout = self.timeout if timeout is None else timeout
        if self.dns_interface:
            return self._lookup_dns(asn, timeout)
        if self.whois_client is not None:
            return self._lookup_whois(asn, timeout)
        raise GraphBuildError(f"No ASN lookup source configured for AS{asn}")

    def _lookup_dns(self, asn: int, timeout: float) -> Dict[str, str]:
        qname = f"AS{asn}.{self.dns_interface}"
        try:
            answer = self.resolver.resolve(qname, "TXT", lifetime=timeout)
        except dns.exception.DNSException as e:
            raise GraphBuildError(f"DNS lookup for AS{asn} failed",
                                  technical_details=f"{qname}: {e}")

        records = [b"".join(rdata.strings).decode("utf-8", errors="replace") for rdata in answer]
        if not records:
            raise GraphBuildError(f"Empty DNS answer for AS{asn}")
        return parse_cymru_txt(asn, " ".join(records))

    def _lookup_whois(self, asn: int, timeout: float) -> Dict[str, str]:
        try:
            text = self.whois_client.raw_query(f"AS{asn}", timeout=timeout)
        except WhoisError as e:
            raise GraphBuildError(f"whois lookup for AS{asn} failed",
                                  technical_details=e.message)
        info = parse_whois_attributes(asn, text)
        if len(info) == 1:
            raise GraphBuildError(f"No whois data for AS{asn}")
        return info

    def format_label(self, info: Dict[str, str]) -> str:
        values = []
        for name in self.info_fields:
            value = info.get(name)
            if value and value not in values:
                values.append(value)
        return "\n".join(values)

    def label(self, asn: int, timeout: Optional[float] = None) -> Tuple[str, bool]:
        """Label for one ASN and whether the lookup succeeded."""
        try:
            info = self.lookup(asn, timeout)
        except GraphBuildError as e:
            logger.info(f"{e.message}; labelling as unknown")
            return unknown_label(asn), False
        return self.format_label(info) or f"AS{asn}", True

    def _label_within(self, asn: int, deadline: Optional[Deadline]) -> Tuple[str, bool]:
        timeout = self.timeout
        if deadline is not None:
            remaining = deadline.remaining()
            if remaining <= 0:
                return unknown_label(asn), False
            timeout = min(timeout, remaining)
        return self.label(asn, timeout)

    def label_many(self, asns: Iterable[int],
                   deadline: Optional[Deadline] = None) -> Dict[int, Tuple[str, bool]]:
        """
        Look up distinct ASNs concurrently.

        Each lookup is capped by what is left of `deadline`; ASNs still
        pending when it passes are labelled unknown.
        """
        unique: List[int] = list(dict.fromkeys(asns))
        if not unique:
            return {}

        labels: Dict[int, Tuple[str, bool]] = {}
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(unique)),
                                      thread_name_prefix="asn-lookup")
        try:
            futures = {executor.submit(self._label_within, asn, deadline): asn for asn in unique}
            done, not_done = wait(futures,
                                  timeout=deadline.remaining() if deadline is not None else None)
            for future in done:
                labels[futures[future]] = future.result()
            if not_done:
                logger.info(f"{len(not_done)} ASN lookups unfinished at deadline; "
                            f"labelling as unknown")
            for future in not_done:
                future.cancel()
                asn = futures[future]
                labels[asn] = (unknown_label(asn), False)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return {asn: labels[asn] for asn in unique}
