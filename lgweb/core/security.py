import logging
from typing import Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bird_lg.auth import AuthGate
from bird_lg.utils.error_handling import AuthError
from bird_lg.utils.logging import audit_log

logger = logging.getLogger("lgweb.security")


def get_caller(request: Request, gate: AuthGate) -> Optional[str]:
    """Socket peer, or the forwarded client address when the peer is a trusted proxy"""
    peer = request.client.host if request.client else None
    return gate.caller(request.headers, peer)


def install_auth_gate(app: FastAPI, gate: AuthGate, exempt: Iterable[str] = ()):
    """Reject requests the gate does not admit with a bare 401"""
    exempt = frozenset(exempt)

    @app.middleware("http")
    async def auth_gate(request: Request, call_next):
        caller = get_caller(request, gate)
        request.state.caller = caller

        if request.url.path in exempt:
            return await call_next(request)

        try:
            gate.check(caller, request.headers.get("authorization"))
        except AuthError as e:
            logger.info(f"Denied {caller} for {request.url.path}: {e.kind.value}")
            audit_log("admission denied", caller=caller, resource=request.url.path,
                      result=e.kind.value)
            return JSONResponse({"error": "unauthorized"}, status_code=401)

        return await call_next(request)
