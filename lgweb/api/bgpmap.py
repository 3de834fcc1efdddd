"""AS-path graph endpoint"""
from fastapi import APIRouter, Depends, HTTPException, Request

from bird_lg.frontend.commands import CommandKind, build_command
from bird_lg.utils.error_handling import ValidationError
from bird_lg.utils.logging import audit_log
from lgweb.core.services import FrontendServices, get_services
from lgweb.schemas import BgpmapResponse

router = APIRouter()


def render_bgpmap(request: Request, services: FrontendServices, servers: str,
                  target: str, where: bool = False) -> BgpmapResponse:
    target = target.strip()
    kind = CommandKind.ROUTE_WHERE_BGPMAP if where else CommandKind.ROUTE_BGPMAP
    command = build_command(kind, target)

    audit_log("bgpmap", caller=getattr(request.state, "caller", None),
              resource=f"{servers}: {target}")
    graph = services.builder.build(servers, target, services.deadline(), where=where)
    return BgpmapResponse(command=command, dot=graph.to_dot(), **graph.to_dict())


@router.get("/{servers}/{target:path}", response_model=BgpmapResponse)
def bgpmap(request: Request, servers: str, target: str, where: bool = False,
           services: FrontendServices = Depends(get_services)):
    """Graph the AS paths every selected server has towards a target"""
    try:
        return render_bgpmap(request, services, servers, target, where)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
