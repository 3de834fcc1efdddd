"""AS-path graph (bgpmap) construction from BIRD route dumps"""

from bird_lg.bgpmap.asn_lookup import ASNLookup
from bird_lg.bgpmap.builder import PathGraphBuilder, build_from_responses
from bird_lg.bgpmap.graph import PathGraph
from bird_lg.bgpmap.parser import parse_as_path, parse_routes

__all__ = [
    'ASNLookup', 'PathGraph', 'PathGraphBuilder', 'build_from_responses',
    'parse_as_path', 'parse_routes',
]
