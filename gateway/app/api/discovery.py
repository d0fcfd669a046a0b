from __future__ import annotations

import datetime as dt
import logging
import time
from typing import Optional

from fastapi import APIRouter, Body, Depends, Form, Request, Response
from fastapi.responses import JSONResponse

from ..core.dependencies import get_services
from ..core.lifespan import GatewayServices
from ..schemas import (
    AuthorizationServerMetadata,
    ClientRegistrationRequest,
    ClientRegistrationResponse,
    HealthResponse,
    ServerMetadata,
    TokenResponse,
)
from ..transports.base import apply_mcp_headers, requested_session_id
from ..utils.security import create_access_token, generate_client_id

router = APIRouter(tags=["discovery"])

logger = logging.getLogger(__name__)


def _json(services: GatewayServices, request: Request, payload: dict, status_code: int = 200) -> Response:
    session = services.sessions.get_or_create(requested_session_id(request))
    return apply_mcp_headers(
        JSONResponse(payload, status_code=status_code),
        session_id=session.id,
        protocol_version=services.config.server.protocol_version,
    )


def _base_url(services: GatewayServices, request: Request) -> str:
    public_url = services.config.server.public_url
    if public_url:
        return public_url.rstrip("/")
    return str(request.base_url).rstrip("/")


@router.get("/health")
async def health(request: Request, services: GatewayServices = Depends(get_services)) -> Response:
    payload = HealthResponse(
        version=services.config.server.version,
        timestamp=dt.datetime.now(dt.timezone.utc).isoformat(),
    )
    return _json(services, request, payload.model_dump())


@router.get("/")
async def root(request: Request, services: GatewayServices = Depends(get_services)) -> Response:
    if "text/event-stream" in request.headers.get("accept", ""):
        return await services.sse.handle(request)
    metadata = ServerMetadata(
        name=services.config.server.name,
        version=services.config.server.version,
        endpoints={
            "health": "/health",
            "sse": "/sse",
            "message": "/message",
            "messages": "/messages",
        },
        tools_count=len(services.registry),
    )
    return _json(services, request, metadata.model_dump())


@router.post("/register")
async def register_client(
    request: Request,
    registration: Optional[ClientRegistrationRequest] = Body(default=None),
    services: GatewayServices = Depends(get_services),
) -> Response:
    registration = registration or ClientRegistrationRequest()
    response = ClientRegistrationResponse(
        client_id=generate_client_id(),
        client_name=registration.client_name,
        client_id_issued_at=int(time.time()),
        redirect_uris=registration.redirect_uris,
        grant_types=registration.grant_types,
    )
    logger.info("Registered OAuth client %s", response.client_id)
    return _json(services, request, response.model_dump(), status_code=201)


@router.post("/token")
async def issue_token(
    request: Request,
    grant_type: Optional[str] = Form(default=None),
    client_id: Optional[str] = Form(default=None),
    services: GatewayServices = Depends(get_services),
) -> Response:
    oauth = services.config.oauth
    token = create_access_token(
        subject=client_id or "anonymous",
        secret=oauth.token_secret,
        expires_hours=oauth.token_expires_hours,
        extra_claims={"grant_type": grant_type or "client_credentials"},
    )
    payload = TokenResponse(access_token=token, expires_in=oauth.token_expires_hours * 3600)
    return _json(services, request, payload.model_dump())


@router.get("/.well-known/oauth-authorization-server")
async def authorization_server_metadata(
    request: Request,
    services: GatewayServices = Depends(get_services),
) -> Response:
    base_url = _base_url(services, request)
    metadata = AuthorizationServerMetadata(
        issuer=base_url,
        token_endpoint=f"{base_url}/token",
        registration_endpoint=f"{base_url}/register",
    )
    return _json(services, request, metadata.model_dump())
