"""BIRD query endpoints: raw commands and canonical query kinds"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from bird_lg.frontend.commands import CommandKind, build_command, parse_kind
from bird_lg.models import CommandRequest
from bird_lg.utils.error_handling import ValidationError
from bird_lg.utils.logging import audit_log
from lgweb.api.bgpmap import render_bgpmap
from lgweb.core.services import FrontendServices, get_services
from lgweb.schemas import AggregatedResponse

router = APIRouter()
queries = APIRouter()

BGPMAP_KINDS = (CommandKind.ROUTE_BGPMAP, CommandKind.ROUTE_WHERE_BGPMAP)


def fan_out_command(request: Request, services: FrontendServices, servers: str,
                    command: str, ipv6: bool = False, kind: Optional[str] = None) -> dict:
    query = CommandRequest(
        servers=servers,
        command=command,
        caller=getattr(request.state, "caller", None),
        kind=kind,
        deadline=services.deadline(),
    )
    audit_log("bird query", caller=query.caller, resource=f"{query.servers}: {query.command}")
    result = services.aggregator.fanout(
        query.servers,
        lambda backend, timeout: services.client.bird(backend, query.command, ipv6=ipv6,
                                                      timeout=timeout),
        query.deadline,
        query.command,
    )
    return result.to_dict()


@router.get("/{servers}/{command:path}", response_model=AggregatedResponse)
def bird_command(request: Request, servers: str, command: str, ipv6: bool = False,
                 services: FrontendServices = Depends(get_services)):
    """Run a raw BIRD command on the selected servers"""
    command = command.strip()
    if not command:
        raise HTTPException(status_code=400, detail="Command is required")
    return fan_out_command(request, services, servers, command, ipv6)


@queries.get("/{kind}/{servers}/{arg:path}")
def canonical_query(request: Request, kind: str, servers: str, arg: str, ipv6: bool = False,
                    services: FrontendServices = Depends(get_services)):
    """Expand a named query kind (route, detail, route_from_origin, ...) and run it"""
    try:
        command_kind = parse_kind(kind)
        if command_kind in BGPMAP_KINDS:
            return render_bgpmap(request, services, servers, arg,
                                 where=command_kind == CommandKind.ROUTE_WHERE_BGPMAP)
        command = build_command(command_kind, arg)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return AggregatedResponse(**fan_out_command(request, services, servers, command, ipv6,
                                                       command_kind.value))
