from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Optional

from fastapi import Request, Response
from fastapi.responses import StreamingResponse

from ..core.config import SessionConfig
from ..core.errors import SessionNotFoundError
from ..services.sessions import SessionManager, StreamSlot
from .base import (
    apply_mcp_headers,
    format_sse_comment,
    format_sse_event,
    query_session_id,
    requested_session_id,
)

logger = logging.getLogger(__name__)

_STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class SSEStreamTransport:
    """Long-lived Server-Sent Events stream (``GET /sse``, ``GET /`` negotiated).

    The first frame announces the companion POST endpoint; afterwards
    queued responses are flushed as ``message`` events with keep-alive
    comments in between.
    """

    name = "sse"

    def __init__(
        self,
        *,
        sessions: SessionManager,
        config: SessionConfig,
        protocol_version: str,
        messages_path: str = "/messages",
    ) -> None:
        self.sessions = sessions
        self.config = config
        self.protocol_version = protocol_version
        self.messages_path = messages_path

    async def handle(self, request: Request) -> Response:
        candidate = requested_session_id(request) or query_session_id(request)
        session = self.sessions.get_or_create(candidate)
        response = StreamingResponse(
            self._events(request, session.id),
            media_type="text/event-stream",
            headers=dict(_STREAM_HEADERS),
        )
        return apply_mcp_headers(response, session_id=session.id, protocol_version=self.protocol_version)

    async def _events(self, request: Request, session_id: str) -> AsyncIterator[str]:
        # Claimed here, not in handle(): detach only runs once the body has started.
        slot: Optional[StreamSlot] = None
        started = time.monotonic()
        reason = "client disconnected"
        try:
            slot = self.sessions.attach_stream(session_id)
            logger.info("Stream opened for session %s", session_id)
            yield format_sse_event(f"{self.messages_path}?session_id={session_id}", event="endpoint")
            while True:
                if not self.sessions.is_stream_current(slot):
                    reason = "superseded or session closed"
                    break
                for frame in self.sessions.drain(session_id):
                    yield frame
                    if not self.sessions.is_stream_current(slot):
                        break

                remaining = self.config.max_stream_seconds - (time.monotonic() - started)
                if remaining <= 0:
                    reason = "maximum stream duration reached"
                    break
                woke = await self.sessions.wait_for_events(slot, min(self.config.keepalive_seconds, remaining))
                if await request.is_disconnected():
                    break
                if not woke:
                    yield format_sse_comment("keepalive")
        except SessionNotFoundError:
            reason = "session closed"
        finally:
            if slot is not None:
                self.sessions.detach_stream(slot)
            logger.info("Stream closed for session %s (%s)", session_id, reason)
