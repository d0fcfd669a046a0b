from __future__ import annotations

import asyncio
import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import jsonschema

from ..core import errors
from ..core.config import ArchiveConfig, DispatchConfig, ServerConfig
from ..tools.base import ToolContext
from .archive import ArchiveClient
from .envelope import ResponseEnvelopeBuilder
from .registry import ToolRegistry

_JSONRPC_VERSION = "2.0"
_NOTIFICATION_PREFIX = "notifications/"

logger = logging.getLogger(__name__)


@dataclass
class CallerContext:
    """Who is calling: the session id and the transport that received the request."""

    session_id: Optional[str] = None
    transport: str = "direct"


class _RequestError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": _JSONRPC_VERSION, "id": request_id, "error": error}


def success_response(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": _JSONRPC_VERSION, "id": request_id, "result": result}


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number {text} is out of range")
    return value


def _valid_id(request_id: Any) -> bool:
    if isinstance(request_id, bool):
        return False
    return request_id is None or isinstance(request_id, (str, int, float))


class JSONRPCDispatcher:
    """Routes JSON-RPC messages to protocol methods and registered tools.

    ``dispatch`` never raises: every failure becomes a JSON-RPC error
    object, and notifications produce ``None``.
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        server_config: ServerConfig,
        dispatch_config: DispatchConfig,
        archive: ArchiveClient,
        archive_config: ArchiveConfig,
        envelope: Optional[ResponseEnvelopeBuilder] = None,
    ) -> None:
        self.registry = registry
        self.server_config = server_config
        self.dispatch_config = dispatch_config
        self.archive = archive
        self.archive_config = archive_config
        self.envelope = envelope or ResponseEnvelopeBuilder()
        self._methods: Dict[str, Callable[[Any, CallerContext], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
        }

    async def dispatch(self, raw_body: bytes, context: CallerContext) -> Optional[Dict[str, Any]]:
        try:
            message = json.loads(raw_body, parse_constant=_reject_constant, parse_float=_parse_finite_float)
        except (ValueError, UnicodeDecodeError, RecursionError) as exc:
            logger.debug("Rejecting unparseable JSON-RPC body: %s", exc)
            return error_response(None, errors.PARSE_ERROR, "Parse error")
        return await self.dispatch_message(message, context)

    async def dispatch_message(self, message: Any, context: CallerContext) -> Optional[Dict[str, Any]]:
        if not isinstance(message, dict):
            return error_response(None, errors.INVALID_REQUEST, "Invalid Request: expected a JSON object")

        is_notification = "id" not in message
        request_id = message.get("id")
        if not _valid_id(request_id):
            return error_response(None, errors.INVALID_REQUEST, "Invalid Request: id must be a string, number or null")

        if message.get("jsonrpc") != _JSONRPC_VERSION:
            return error_response(request_id, errors.INVALID_REQUEST, "Invalid Request: jsonrpc must be '2.0'")
        method = message.get("method")
        if not isinstance(method, str) or not method:
            return error_response(request_id, errors.INVALID_REQUEST, "Invalid Request: missing method")
        params = message.get("params")
        if params is not None and not isinstance(params, (dict, list)):
            return error_response(request_id, errors.INVALID_PARAMS, "Invalid params: expected object or array")

        if method.startswith(_NOTIFICATION_PREFIX):
            logger.debug("Received notification %s (session=%s)", method, context.session_id)
            return None

        handler = self._methods.get(method)
        if handler is None:
            if is_notification:
                logger.debug("Ignoring unknown notification method %s", method)
                return None
            return error_response(request_id, errors.METHOD_NOT_FOUND, f"Method not found: {method}")

        try:
            result = await handler(params, context)
        except _RequestError as exc:
            response = error_response(request_id, exc.code, exc.message, exc.data)
        except Exception:
            logger.exception("Unhandled error while dispatching %s", method)
            response = error_response(request_id, errors.INTERNAL_ERROR, "Internal error")
        else:
            response = success_response(request_id, result)

        if is_notification:
            return None
        return response

    # -- protocol methods ------------------------------------------------

    async def _initialize(self, params: Any, context: CallerContext) -> Dict[str, Any]:
        requested = params.get("protocolVersion") if isinstance(params, dict) else None
        if requested in self.server_config.supported_protocol_versions:
            version = requested
        else:
            version = self.server_config.protocol_version
        result: Dict[str, Any] = {
            "protocolVersion": version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.server_config.name, "version": self.server_config.version},
        }
        if self.server_config.instructions:
            result["instructions"] = self.server_config.instructions
        logger.info("Initialized session %s with protocol %s", context.session_id, version)
        return result

    async def _ping(self, params: Any, context: CallerContext) -> Dict[str, Any]:
        return {}

    async def _tools_list(self, params: Any, context: CallerContext) -> Dict[str, Any]:
        return {"tools": self.registry.to_mcp()}

    async def _tools_call(self, params: Any, context: CallerContext) -> Dict[str, Any]:
        if not isinstance(params, dict):
            raise _RequestError(errors.INVALID_PARAMS, "Invalid params: tools/call expects an object")
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise _RequestError(errors.INVALID_PARAMS, "Invalid params: 'name' must be a non-empty string")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise _RequestError(errors.INVALID_PARAMS, "Invalid params: 'arguments' must be an object")

        try:
            descriptor = self.registry.get(name)
        except errors.UnknownToolError as exc:
            raise _RequestError(errors.UNKNOWN_TOOL, str(exc), {"tool": name}) from exc

        try:
            jsonschema.validate(instance=arguments, schema=descriptor.input_schema)
        except jsonschema.ValidationError as exc:
            path = "/".join(str(part) for part in exc.absolute_path)
            data: Dict[str, Any] = {"tool": name}
            if path:
                data["path"] = path
            raise _RequestError(errors.INVALID_PARAMS, f"Invalid arguments for '{name}': {exc.message}", data) from exc

        tool_context = ToolContext(
            archive=self.archive,
            archive_config=self.archive_config,
            session_id=context.session_id,
        )
        timeout = self.dispatch_config.tool_timeout_seconds
        started = time.perf_counter()
        task = asyncio.ensure_future(descriptor.handler(arguments, tool_context))
        try:
            output = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_discard_late_result(name))
            logger.warning("Tool '%s' exceeded %ss timeout (session=%s)", name, timeout, context.session_id)
            raise _RequestError(
                errors.INTERNAL_ERROR,
                f"Tool '{name}' timed out after {timeout:g} seconds",
                {"tool": name, "kind": "timeout"},
            ) from None
        except errors.ToolExecutionError as exc:
            logger.info("Tool '%s' failed with code %s: %s", name, exc.code, exc.message)
            raise _RequestError(exc.code, exc.message, exc.to_data(name)) from exc
        except Exception as exc:
            logger.exception("Tool '%s' raised an unexpected error", name)
            raise _RequestError(
                errors.INTERNAL_ERROR,
                f"Internal error while executing tool '{name}'",
                {"tool": name, "kind": "internal"},
            ) from exc

        logger.info(
            "Executed tool '%s' in %.1fms (session=%s)",
            name,
            (time.perf_counter() - started) * 1000,
            context.session_id,
        )
        return {"content": self.envelope.build(descriptor, output), "isError": False}


def _discard_late_result(name: str) -> Callable[["asyncio.Future[Any]"], None]:
    def _callback(task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Discarded late failure from tool '%s': %s", name, exc)
        else:
            logger.debug("Discarded late result from tool '%s'", name)

    return _callback
