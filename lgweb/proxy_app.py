"""
Proxy agent HTTP surface

Runs next to one router and exposes its control socket and traceroute to
the frontend. Endpoints are plain `def` functions so FastAPI runs them in
its worker threadpool; blocking waits happen inside the execution gate.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from bird_lg.auth import AuthGate
from bird_lg.proxy.execution_gate import ExecutionGate
from bird_lg.utils.config import LookingGlassConfig, get_config
from bird_lg.utils.error_handling import (ExecutionError, ExecutionErrorKind, LinkError,
                                          LinkErrorKind, ValidationError)
from bird_lg.utils.timeout_config import Deadline
from lgweb.core.security import install_auth_gate
from lgweb.settings import BIRDLG_ENABLE_DOCS

logger = logging.getLogger("lgweb.proxy")

LINK_ERROR_STATUS = {
    LinkErrorKind.FORBIDDEN: 403,
    LinkErrorKind.TIMEOUT: 504,
}
EXECUTION_ERROR_STATUS = {
    ExecutionErrorKind.SLOT_TIMEOUT: 504,
    ExecutionErrorKind.PROCESS_TIMEOUT: 504,
}


def _text(body: str, status_code: int = 200) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code)


def link_error_response(error: LinkError) -> PlainTextResponse:
    status = LINK_ERROR_STATUS.get(error.kind, 500)
    if status == 500:
        # Socket paths and raw protocol lines stay in the log
        return _text("Error communicating with bird\n", 500)
    return _text(f"{error.message}\n", status)


def execution_error_response(error: ExecutionError) -> PlainTextResponse:
    status = EXECUTION_ERROR_STATUS.get(error.kind, 500)
    if error.kind in (ExecutionErrorKind.SPAWN_FAILED, ExecutionErrorKind.PROCESS_FAILED):
        return _text("Error executing traceroute\n", status)
    return _text(f"{error.message}\n", status)


def create_app(config: Optional[LookingGlassConfig] = None,
               gate: Optional[ExecutionGate] = None,
               auth_gate: Optional[AuthGate] = None) -> FastAPI:
    """Create the proxy application around a configuration snapshot"""
    config = (config or get_config()).snapshot()
    proxy = config.proxy

    if gate is None:
        gate = ExecutionGate(proxy)
    if auth_gate is None:
        auth_gate = AuthGate(config.auth, proxy.allowed_nets)

    app = FastAPI(
        title="bird-lg proxy",
        description="BIRD control socket and traceroute proxy",
        version="1.0.0",
        docs_url="/docs" if BIRDLG_ENABLE_DOCS else None,
        redoc_url=None,
    )
    app.state.gate = gate
    install_auth_gate(app, auth_gate)

    @app.get("/")
    def invalid_request():
        return _text("Invalid Request\n", 500)

    def run_bird(request: Request, q: Optional[str], backend: str):
        if not q or not q.strip():
            return _text("Query parameter 'q' is required\n", 400)
        try:
            output = gate.run_command(q, backend=backend,
                                      deadline=Deadline(proxy.command_timeout),
                                      caller=request.state.caller)
        except LinkError as e:
            if e.kind not in LINK_ERROR_STATUS:
                logger.warning(f"Bird command failed: {e.message} ({e.technical_details})")
            return link_error_response(e)
        return _text(output)

    def run_traceroute(request: Request, q: Optional[str], backend: str):
        if not q or not q.strip():
            return _text("Query parameter 'q' is required\n", 400)
        try:
            output = gate.run_traceroute(q, deadline=Deadline(proxy.traceroute_timeout),
                                         caller=request.state.caller, backend=backend)
        except ValidationError as e:
            return _text(f"{e.message}\n", 400)
        except ExecutionError as e:
            logger.warning(f"Traceroute command failed: {e.message} ({e.technical_details})")
            return execution_error_response(e)
        return _text(output)

    @app.get("/bird")
    def bird(request: Request, q: Optional[str] = None):
        return run_bird(request, q, "bird")

    @app.get("/bird6")
    def bird6(request: Request, q: Optional[str] = None):
        return run_bird(request, q, "bird6")

    @app.get("/traceroute")
    def traceroute(request: Request, q: Optional[str] = None):
        return run_traceroute(request, q, "traceroute")

    @app.get("/traceroute6")
    def traceroute6(request: Request, q: Optional[str] = None):
        return run_traceroute(request, q, "traceroute6")

    return app
