from __future__ import annotations

import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from ..core.errors import PARSE_ERROR
from ..services.dispatcher import CallerContext, JSONRPCDispatcher
from ..services.sessions import SessionManager
from .base import apply_mcp_headers, requested_session_id

logger = logging.getLogger(__name__)


class DirectTransport:
    """Single request, single response POST binding (``/message``, ``/``, ``/sse``)."""

    name = "direct"

    def __init__(self, *, sessions: SessionManager, dispatcher: JSONRPCDispatcher, protocol_version: str) -> None:
        self.sessions = sessions
        self.dispatcher = dispatcher
        self.protocol_version = protocol_version

    async def handle(self, request: Request) -> Response:
        session = self.sessions.get_or_create(requested_session_id(request))
        body = await request.body()
        payload = await self.dispatcher.dispatch(body, CallerContext(session_id=session.id, transport=self.name))

        response: Response
        if payload is None:
            response = Response(status_code=202)
        else:
            error = payload.get("error")
            status_code = 400 if error and error["code"] == PARSE_ERROR else 200
            response = JSONResponse(payload, status_code=status_code)
        return apply_mcp_headers(response, session_id=session.id, protocol_version=self.protocol_version)
