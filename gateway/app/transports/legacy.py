from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from ..core.errors import INVALID_REQUEST, PARSE_ERROR, SESSION_NOT_FOUND, SessionNotFoundError
from ..services.dispatcher import CallerContext, JSONRPCDispatcher, error_response
from ..services.sessions import SessionManager
from .base import apply_mcp_headers, format_sse_event, query_session_id

logger = logging.getLogger(__name__)


class LegacyMessagesTransport:
    """Companion POST endpoint of the two-endpoint SSE handshake.

    The session must already exist (it is announced by the stream's
    ``endpoint`` frame). Responses are returned inline with ``202`` and
    also queued onto the session's stream.
    """

    name = "legacy"

    def __init__(self, *, sessions: SessionManager, dispatcher: JSONRPCDispatcher, protocol_version: str) -> None:
        self.sessions = sessions
        self.dispatcher = dispatcher
        self.protocol_version = protocol_version

    async def handle(self, request: Request) -> Response:
        session_id = query_session_id(request)
        if not session_id:
            payload = error_response(None, INVALID_REQUEST, "Missing session_id query parameter")
            return self._respond(JSONResponse(payload, status_code=400), None)

        try:
            session = self.sessions.get(session_id)
        except SessionNotFoundError as exc:
            logger.info("Rejected message for unknown session %s", session_id)
            payload = error_response(None, SESSION_NOT_FOUND, str(exc))
            return self._respond(JSONResponse(payload, status_code=404), session_id)

        body = await request.body()
        payload = await self.dispatcher.dispatch(body, CallerContext(session_id=session_id, transport=self.name))
        if payload is None:
            return self._respond(Response(status_code=202), session_id)

        error = payload.get("error")
        if error and error["code"] == PARSE_ERROR:
            return self._respond(JSONResponse(payload, status_code=400), session_id)

        if session.streamed:
            try:
                self.sessions.enqueue(session_id, format_sse_event(payload, event="message"))
            except SessionNotFoundError:
                logger.debug("Session %s closed before its response could be queued", session_id)
        return self._respond(JSONResponse(payload, status_code=202), session_id)

    def _respond(self, response: Response, session_id: Optional[str]) -> Response:
        return apply_mcp_headers(response, session_id=session_id, protocol_version=self.protocol_version)

