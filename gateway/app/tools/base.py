from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional, TypeVar

from ..core.config import ArchiveConfig
from ..services.archive import ArchiveAPIError, ArchiveClient
from ..services.error_formatter import to_tool_error

T = TypeVar("T")

DEFAULT_MAX_CONTENT_LENGTH = 8000


@dataclass
class ToolContext:
    """Per-call collaborators handed to every tool handler."""

    archive: ArchiveClient
    archive_config: ArchiveConfig
    session_id: Optional[str] = None

    def card_url(self, card: Dict[str, Any]) -> str:
        return card.get("url") or self.archive_config.card_url(str(card.get("name", "")))


async def call_archive(
    call: Awaitable[T],
    *,
    operation: str,
    resource: str,
    required_role: Optional[str] = None,
) -> T:
    try:
        return await call
    except ArchiveAPIError as exc:
        if required_role is None and isinstance(exc.details, dict):
            required_role = exc.details.get("required_role")
        raise to_tool_error(
            exc,
            operation=operation,
            resource=resource,
            required_role=required_role,
        ) from exc


def is_virtual_card(card: Dict[str, Any]) -> bool:
    """A compound card with no content only anchors its children."""
    if "virtual_card" in card:
        return bool(card["virtual_card"])
    name = card.get("name") or ""
    content = card.get("content") or ""
    return "+" in name and not str(content).strip()
