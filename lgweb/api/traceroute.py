"""Traceroute endpoint"""
from fastapi import APIRouter, Depends, HTTPException, Request

from bird_lg.utils.logging import audit_log
from lgweb.core.services import FrontendServices, get_services
from lgweb.schemas import AggregatedResponse

router = APIRouter()


@router.get("/{servers}/{target:path}", response_model=AggregatedResponse)
def traceroute(request: Request, servers: str, target: str, ipv6: bool = False,
               services: FrontendServices = Depends(get_services)):
    """Run traceroute from every selected server"""
    target = target.strip()
    if not target:
        raise HTTPException(status_code=400, detail="Target is required")

    audit_log("traceroute", caller=getattr(request.state, "caller", None),
              resource=f"{servers}: {target}")
    result = services.aggregator.fanout(
        servers,
        lambda backend, timeout: services.client.traceroute(backend, target, ipv6=ipv6,
                                                            timeout=timeout),
        services.deadline(),
        f"traceroute {target}",
    )
    return result.to_dict()
