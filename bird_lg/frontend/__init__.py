"""Frontend core: server registry, proxy client, fan-out and query helpers"""

from bird_lg.frontend.fanout import FanoutAggregator
from bird_lg.frontend.proxy_client import ProxyClient, ProxyRequestError, ProxyTimeout
from bird_lg.frontend.servers import Resolution, ServerRegistry, parse_server_spec

__all__ = [
    'FanoutAggregator', 'ProxyClient', 'ProxyRequestError', 'ProxyTimeout',
    'Resolution', 'ServerRegistry', 'parse_server_spec',
]
