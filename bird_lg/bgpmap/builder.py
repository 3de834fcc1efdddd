"""
bgpmap construction

Fans `show route ... all` out to the selected servers, parses every dump and
merges the AS paths into one graph rooted at the queried target.
"""

import logging
from typing import Optional, Sequence

from bird_lg.bgpmap.asn_lookup import ASNLookup
from bird_lg.bgpmap.graph import PathGraph, asn_key, server_key, target_key
from bird_lg.bgpmap.parser import parse_routes
from bird_lg.frontend.commands import CommandKind, build_command
from bird_lg.frontend.fanout import FanoutAggregator
from bird_lg.frontend.proxy_client import ProxyClient
from bird_lg.models import NodeKind, RouteRecord
from bird_lg.utils.logging import LoggingTimer
from bird_lg.utils.timeout_config import Deadline

logger = logging.getLogger(__name__)


def hop_label(route: RouteRecord) -> str:
    protocol = route.protocol or ""
    if protocol and route.preferred:
        protocol += "*"
    return f"{protocol}\n{route.via or ''}".strip()


def add_route(graph: PathGraph, server: str, route: RouteRecord):
    """Merge one route's path from `server` towards the target into the graph."""
    src = server_key(server)
    target = target_key(graph.target)
    label = hop_label(route)

    if not route.as_path:
        graph.add_edge(src, target, label, route.prefix, route.preferred)
        return

    for asn in route.as_path:
        dst = asn_key(asn)
        graph.add_node(dst, NodeKind.ASN, label=f"AS{asn}", asn=asn, preferred=route.preferred)
        graph.add_edge(src, dst, label, route.prefix, route.preferred)
        src, label = dst, None

    graph.add_edge(src, target, None, route.prefix, route.preferred)


def build_from_responses(servers: Sequence[str], responses: Sequence[str],
                         target: str) -> PathGraph:
    """Build a graph from raw dumps, one per server, without any network access."""
    graph = PathGraph(target)
    for server, response in zip(servers, responses):
        if not response or not response.strip():
            continue
        graph.add_node(server_key(server), NodeKind.SERVER, label=server)
        for route in parse_routes(response, source=server):
            add_route(graph, server, route)
    return graph


class PathGraphBuilder:
    """Queries backends and assembles an annotated AS-path graph"""

    def __init__(self, aggregator: FanoutAggregator, client: ProxyClient,
                 asn_lookup: Optional[ASNLookup] = None):
        self.aggregator = aggregator
        self.client = client
        self.asn_lookup = asn_lookup

    build_from_responses = staticmethod(build_from_responses)

    def build(self, server_pattern: str, target: str,
              deadline: Optional[Deadline] = None, where: bool = False) -> PathGraph:
        kind = CommandKind.ROUTE_WHERE_BGPMAP if where else CommandKind.ROUTE_BGPMAP
        if deadline is None:
            deadline = Deadline(self.aggregator.default_timeout)
        command = build_command(kind, target)

        with LoggingTimer(logger, f"bgpmap for {target}", logging.DEBUG):
            result = self.aggregator.fanout(
                server_pattern,
                lambda backend, timeout: self.client.bird(backend, command, timeout=timeout),
                deadline,
                command,
            )

            answered = result.successful
            graph = build_from_responses(
                [e.display_name for e in answered],
                [e.body for e in answered],
                target,
            )
            for entry in result:
                if not entry.ok:
                    graph.errors[entry.display_name] = entry.error

            self.annotate(graph, deadline)
        return graph

    def annotate(self, graph: PathGraph, deadline: Optional[Deadline] = None):
        """Replace ASN node labels with looked-up metadata, within `deadline`."""
        if self.asn_lookup is None:
            return
        labels = self.asn_lookup.label_many(graph.asns(), deadline)
        for asn, (label, resolved) in labels.items():
            node = graph.node(asn_key(asn))
            node.label = label
            node.resolved = resolved
