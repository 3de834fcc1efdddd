"""Frontend collaborators, built once per application from a config snapshot"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from bird_lg.auth import AuthGate
from bird_lg.bgpmap import ASNLookup, PathGraphBuilder
from bird_lg.frontend import FanoutAggregator, ProxyClient, ServerRegistry
from bird_lg.utils.config import FrontendConfig, LookingGlassConfig
from bird_lg.utils.timeout_config import Deadline
from bird_lg.whois import WhoisClient


@dataclass
class FrontendServices:
    config: FrontendConfig
    registry: ServerRegistry
    client: ProxyClient
    aggregator: FanoutAggregator
    builder: PathGraphBuilder
    whois: WhoisClient

    @classmethod
    def from_config(cls, config: LookingGlassConfig,
                    client: Optional[ProxyClient] = None,
                    asn_lookup: Optional[ASNLookup] = None,
                    whois: Optional[WhoisClient] = None) -> "FrontendServices":
        frontend = config.frontend
        registry = ServerRegistry.from_config(frontend)

        if client is None:
            outgoing = AuthGate(config.auth, require_token=False)
            client = ProxyClient(outgoing.auth_headers(), timeout=frontend.timeout)
        if whois is None:
            whois = WhoisClient(frontend.whois_server, frontend.whois_port,
                                net_specific_mode=frontend.net_specific_mode)
        if asn_lookup is None:
            asn_lookup = ASNLookup(frontend.dns_interface, whois_client=whois,
                                   info_fields=frontend.info_fields)

        aggregator = FanoutAggregator(registry, frontend.timeout)
        return cls(
            config=frontend,
            registry=registry,
            client=client,
            aggregator=aggregator,
            builder=PathGraphBuilder(aggregator, client, asn_lookup),
            whois=whois,
        )

    def deadline(self) -> Deadline:
        return Deadline(self.config.timeout)


def get_services(request: Request) -> FrontendServices:
    return request.app.state.services
