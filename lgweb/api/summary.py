"""Protocol summary endpoint"""
import logging

from fastapi import APIRouter, Depends, Request

from bird_lg.frontend.commands import CommandKind, build_command
from bird_lg.frontend.summary import parse_summary
from bird_lg.utils.error_handling import ValidationError
from lgweb.api.bird import fan_out_command
from lgweb.core.services import FrontendServices, get_services
from lgweb.schemas import SummaryResponse

logger = logging.getLogger("lgweb.summary")

router = APIRouter()


@router.get("/{servers}", response_model=SummaryResponse)
def summary(request: Request, servers: str, ipv6: bool = False,
            services: FrontendServices = Depends(get_services)):
    """`show protocols` on every selected server, parsed into rows"""
    config = services.config
    response = fan_out_command(request, services, servers,
                               build_command(CommandKind.SUMMARY), ipv6,
                               CommandKind.SUMMARY.value)

    for entry in response["results"]:
        if entry["status"] != "success":
            continue
        try:
            parsed = parse_summary(entry["result"], entry["display_name"],
                                   config.protocol_filter, config.name_filter or None)
        except ValidationError as e:
            logger.info(f"Summary from {entry['display_name']} not parsed: {e.message}")
            continue
        entry["summary"] = parsed.to_dict()

    return response
