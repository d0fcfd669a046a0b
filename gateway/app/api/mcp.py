from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from ..core.dependencies import get_services
from ..core.errors import INVALID_REQUEST, SESSION_NOT_FOUND, SessionNotFoundError
from ..core.lifespan import GatewayServices
from ..services.dispatcher import error_response
from ..transports.base import apply_mcp_headers, requested_session_id

router = APIRouter(tags=["mcp"])

logger = logging.getLogger(__name__)


@router.post("/")
@router.post("/message")
@router.post("/sse")
@router.post("/sse/")
async def post_message(request: Request, services: GatewayServices = Depends(get_services)) -> Response:
    return await services.direct.handle(request)


@router.get("/sse")
@router.get("/sse/")
async def open_stream(request: Request, services: GatewayServices = Depends(get_services)) -> Response:
    return await services.sse.handle(request)


@router.post("/messages")
async def post_legacy_message(request: Request, services: GatewayServices = Depends(get_services)) -> Response:
    return await services.legacy.handle(request)


@router.delete("/message")
async def terminate_session(request: Request, services: GatewayServices = Depends(get_services)) -> Response:
    protocol_version = services.config.server.protocol_version
    session_id = requested_session_id(request)
    if not session_id:
        payload = error_response(None, INVALID_REQUEST, "Missing Mcp-Session-Id header")
        return apply_mcp_headers(JSONResponse(payload, status_code=400), session_id=None, protocol_version=protocol_version)
    try:
        services.sessions.close(session_id)
    except SessionNotFoundError as exc:
        payload = error_response(None, SESSION_NOT_FOUND, str(exc))
        return apply_mcp_headers(
            JSONResponse(payload, status_code=404),
            session_id=session_id,
            protocol_version=protocol_version,
        )
    return apply_mcp_headers(Response(status_code=204), session_id=session_id, protocol_version=protocol_version)
