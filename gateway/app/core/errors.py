from __future__ import annotations

from typing import Any, Dict, Optional

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Implementation-defined server error range (-32000..-32099)
SESSION_NOT_FOUND = -32001

# Application codes. Upstream-derived errors use 1000 + the upstream HTTP status.
UNKNOWN_TOOL = 1000
TOOL_VALIDATION_FAILED = 1422
TOOL_AUTHENTICATION_FAILED = 1401
TOOL_AUTHORIZATION_FAILED = 1403
TOOL_NOT_FOUND = 1404
TOOL_EXECUTION_FAILED = 1500
TOOL_UPSTREAM_FAILED = 1502


class GatewayError(Exception):
    """Base class for errors raised inside the gateway."""


class SessionNotFoundError(GatewayError, KeyError):
    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class RegistryFrozenError(GatewayError):
    pass


class DuplicateToolError(GatewayError, ValueError):
    pass


class UnknownToolError(GatewayError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown tool: '{self.name}'"


class ToolExecutionError(GatewayError):
    """Domain failure raised by a tool handler.

    ``message`` is shown to the agent verbatim, so it must never contain
    internal details such as tracebacks or credentials.
    """

    def __init__(
        self,
        message: str,
        *,
        code: int = TOOL_EXECUTION_FAILED,
        kind: str = "tool_error",
        hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.kind = kind
        self.hint = hint
        self.details = details or {}

    def to_data(self, tool_name: str) -> Dict[str, Any]:
        data: Dict[str, Any] = {"tool": tool_name, "kind": self.kind}
        if self.hint:
            data["hint"] = self.hint
        if self.details:
            data["details"] = self.details
        return data
