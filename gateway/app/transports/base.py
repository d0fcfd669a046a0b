from __future__ import annotations

import json
from typing import Any, Optional, Protocol

from fastapi import Request, Response

SESSION_HEADER = "Mcp-Session-Id"
PROTOCOL_HEADER = "MCP-Protocol-Version"


class Transport(Protocol):
    """One HTTP binding of the JSON-RPC surface."""

    name: str

    async def handle(self, request: Request) -> Response:
        ...


def apply_mcp_headers(response: Response, *, session_id: Optional[str], protocol_version: str) -> Response:
    response.headers[PROTOCOL_HEADER] = protocol_version
    if session_id:
        response.headers[SESSION_HEADER] = session_id
    return response


def requested_session_id(request: Request) -> Optional[str]:
    value = request.headers.get(SESSION_HEADER)
    if value:
        return value.strip() or None
    return None


def format_sse_event(data: Any, event: Optional[str] = None) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    payload = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)
    # Multi-line payloads need one data field per line.
    for line in payload.split("\n"):
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


def format_sse_comment(comment: str) -> str:
    return f": {comment}\n\n"


def query_session_id(request: Request) -> Optional[str]:
    params = request.query_params
    value = params.get("session_id") or params.get("sessionId")
    if value:
        return value.strip() or None
    return None
