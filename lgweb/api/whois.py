"""Whois endpoint"""
from fastapi import APIRouter, Depends, HTTPException, Request

from bird_lg.utils.error_handling import ValidationError, WhoisError
from bird_lg.utils.logging import audit_log
from lgweb.core.services import FrontendServices, get_services
from lgweb.schemas import WhoisResponse

router = APIRouter()


@router.get("/{target:path}", response_model=WhoisResponse)
def whois(request: Request, target: str,
          services: FrontendServices = Depends(get_services)):
    """Look up a target on the configured whois server"""
    caller = getattr(request.state, "caller", None)
    try:
        result = services.whois.query(target)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except WhoisError as e:
        audit_log("whois", caller=caller, resource=target, result="failed")
        raise HTTPException(status_code=502, detail=e.message)

    audit_log("whois", caller=caller, resource=target)
    return {"target": target, "result": result}
