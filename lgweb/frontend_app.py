"""
Frontend HTTP surface

JSON API in front of the proxy fleet. Endpoints are plain `def` functions:
fan-out blocks on a thread pool and FastAPI runs them in its own threadpool.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request

from bird_lg.auth import AuthGate
from bird_lg.utils.config import LookingGlassConfig, get_config
from lgweb.core.security import install_auth_gate
from lgweb.core.services import FrontendServices
from lgweb.schemas import HealthResponse
from lgweb.settings import BIRDLG_ENABLE_DOCS, FRONTEND_PUBLIC_PATHS

logger = logging.getLogger("lgweb.frontend")


def create_app(config: Optional[LookingGlassConfig] = None,
               services: Optional[FrontendServices] = None) -> FastAPI:
    """Create the frontend application around a configuration snapshot"""
    config = (config or get_config()).snapshot()
    if services is None:
        services = FrontendServices.from_config(config)

    app = FastAPI(
        title="bird-lg",
        description="BGP looking glass",
        version="1.0.0",
        docs_url="/docs" if BIRDLG_ENABLE_DOCS else None,
        redoc_url=None,
    )
    app.state.services = services

    # Inbound requests are only checked against the address allow-list;
    # the bearer token is for calls to the proxies.
    gate = AuthGate(config.auth, config.frontend.allowed_nets, require_token=False)
    install_auth_gate(app, gate, exempt=FRONTEND_PUBLIC_PATHS)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    @app.get("/healthz", response_model=HealthResponse)
    def healthz():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "servers": services.registry.all_display_names(),
        }

    from lgweb.api import bgpmap, bird, summary, traceroute, whois

    app.include_router(bird.router, prefix="/api/bird", tags=["bird"])
    app.include_router(traceroute.router, prefix="/api/traceroute", tags=["traceroute"])
    app.include_router(whois.router, prefix="/api/whois", tags=["whois"])
    app.include_router(summary.router, prefix="/api/summary", tags=["summary"])
    app.include_router(bgpmap.router, prefix="/api/bgpmap", tags=["bgpmap"])
    # Named query kinds - MUST BE LAST
    app.include_router(bird.queries, prefix="/api", tags=["queries"])

    logger.info(f"Frontend ready with {len(services.registry)} servers")
    return app
