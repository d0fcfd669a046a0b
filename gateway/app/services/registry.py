from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List

from ..core.errors import DuplicateToolError, RegistryFrozenError, UnknownToolError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any], Any], Awaitable[Any]]


class ResultShape(str, enum.Enum):
    SINGLE = "single"
    LIST = "list"
    STATUS = "status"


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: ToolHandler
    shape: ResultShape = ResultShape.SINGLE
    annotations: Dict[str, Any] = field(default_factory=dict)

    def to_mcp(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.annotations:
            payload["annotations"] = dict(self.annotations)
        return payload


class ToolRegistry:
    """Name -> descriptor mapping, populated at start-up and then frozen."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDescriptor] = {}
        self._frozen = False

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, descriptor: ToolDescriptor) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register '{descriptor.name}': registry is frozen")
        if descriptor.name in self._tools:
            raise DuplicateToolError(f"Tool '{descriptor.name}' is already registered")
        self._tools[descriptor.name] = descriptor
        logger.debug("Registered tool '%s'", descriptor.name)

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    def get(self, name: str) -> ToolDescriptor:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def list(self) -> List[ToolDescriptor]:
        return list(self._tools.values())

    def to_mcp(self) -> List[Dict[str, Any]]:
        return [descriptor.to_mcp() for descriptor in self._tools.values()]
