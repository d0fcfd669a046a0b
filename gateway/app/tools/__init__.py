from __future__ import annotations

from typing import Dict, Iterable

from ..services.registry import ToolDescriptor, ToolRegistry
from . import cards, health, search
from .base import ToolContext

BASELINE_TOOLS = ("get_card", "search_cards", "create_card", "update_card", "health_check")


def all_descriptors() -> Iterable[ToolDescriptor]:
    by_name: Dict[str, ToolDescriptor] = {}
    for module in (cards, search, health):
        for descriptor in module.DESCRIPTORS:
            by_name[descriptor.name] = descriptor
    ordered = [by_name.pop(name) for name in BASELINE_TOOLS]
    return ordered + list(by_name.values())


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    for descriptor in all_descriptors():
        registry.register(descriptor)
    return registry.freeze()


__all__ = ["BASELINE_TOOLS", "ToolContext", "build_registry"]
