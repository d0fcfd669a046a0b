from __future__ import annotations

from typing import Any, Dict, List

from ..core.errors import TOOL_VALIDATION_FAILED, ToolExecutionError
from ..services.envelope import ToolOutput
from ..services.error_formatter import validation_error
from ..services.registry import ResultShape, ToolDescriptor
from .base import DEFAULT_MAX_CONTENT_LENGTH, ToolContext, call_archive, is_virtual_card

_MAX_CONTENT_SCHEMA = {
    "type": "integer",
    "description": "Maximum content length to return (default: 8000 chars). Set to 0 for unlimited.",
    "default": DEFAULT_MAX_CONTENT_LENGTH,
    "minimum": 0,
}


def format_card(card: Dict[str, Any], *, max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH) -> str:
    virtual = is_virtual_card(card)
    lines: List[str] = [f"# {card.get('name', '')}", "", f"**Type:** {card.get('type', '')}"]
    if card.get("id"):
        lines.append(f"**ID:** {card['id']}")
    if card.get("updated_at"):
        lines.append(f"**Updated:** {card['updated_at']}")
    if card.get("url"):
        lines.append(f"**URL:** {card['url']}")
    if virtual:
        lines.append("**Virtual Card:** YES - This is a structural hierarchy card, DO NOT DELETE")
    else:
        lines.append("**Virtual Card:** No")

    lines += ["", "## Content", ""]
    content = str(card.get("content") or "").strip()
    truncated = False
    if not content:
        lines.append("(empty)")
    elif max_content_length > 0 and len(content) > max_content_length:
        lines.append(content[:max_content_length])
        truncated = True
    else:
        lines.append(content)

    if truncated:
        lines += [
            "",
            "---",
            f"**[Content truncated]** Showing {max_content_length} of {len(content)} characters.",
            "Use `max_content_length: 0` to get the full content.",
        ]

    card_type = card.get("type")
    if card_type == "Pointer":
        lines += [
            "",
            "**Note:** This is a Pointer card. Use list_children to see referenced cards, "
            "or get_card with with_children=true.",
        ]
    elif card_type == "Search":
        lines += [
            "",
            "**Note:** This is a Search card. Content shows the search query; results are "
            "generated when viewed on the wiki.",
        ]

    if virtual:
        lines += [
            "",
            "---",
            "## Virtual Card Warning",
            "",
            "This is an empty compound card that exists as a structural parent in the wiki",
            "hierarchy. Its content lives in the child cards beneath it.",
            "",
            "**DO NOT DELETE** - deleting virtual cards breaks the wiki structure.",
            "Use `list_children` to see child cards under this parent.",
        ]

    children = card.get("children") or []
    if children:
        lines += ["", f"## Children ({len(children)})", ""]
        lines += [f"- {child.get('name')} ({child.get('type')})" for child in children]
    return "\n".join(lines)


def _card_metadata(card: Dict[str, Any]) -> Dict[str, Any]:
    metadata = {
        "type": card.get("type"),
        "card_id": card.get("id"),
        "created_at": card.get("created_at"),
        "updated_at": card.get("updated_at"),
    }
    return {key: value for key, value in metadata.items() if value is not None}


def _card_summary(title: str, card: Dict[str, Any], closing: str) -> str:
    lines = [f"# {title}", "", f"**Name:** {card.get('name')}", f"**Type:** {card.get('type')}"]
    if card.get("id"):
        lines.append(f"**ID:** {card['id']}")
    if card.get("url"):
        lines.append(f"**URL:** {card['url']}")
    lines += ["", closing]
    return "\n".join(lines)


async def get_card(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    name = arguments["name"]
    max_content_length = arguments.get("max_content_length", DEFAULT_MAX_CONTENT_LENGTH)
    card = await call_archive(
        context.archive.get_card(name, with_children=arguments.get("with_children", False)),
        operation="view",
        resource=name,
    )
    content = str(card.get("content") or "")
    metadata = _card_metadata(card)
    metadata["virtual_card"] = is_virtual_card(card)
    metadata["content_length"] = len(content)
    metadata["truncated"] = max_content_length > 0 and len(content.strip()) > max_content_length
    if card.get("children"):
        metadata["children"] = [child.get("name") for child in card["children"]]
    card_name = card.get("name") or name
    return ToolOutput(
        id=card_name,
        title=card_name,
        text=format_card(card, max_content_length=max_content_length),
        source=context.card_url(card),
        metadata=metadata,
    )


async def create_card(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    name = arguments["name"]
    card = await call_archive(
        context.archive.create_card(
            name,
            content=arguments.get("content"),
            type=arguments.get("type") or "Basic",
        ),
        operation="create",
        resource=name,
    )
    card = card or {"name": name}
    card_name = card.get("name") or name
    return ToolOutput(
        id=card_name,
        title=card_name,
        text=_card_summary(
            "Card Created Successfully",
            card,
            "The card has been created and is now available on the wiki.",
        ),
        source=context.card_url(card),
        metadata=_card_metadata(card),
    )


async def update_card(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    name = arguments["name"]
    content = arguments.get("content")
    card_type = arguments.get("type")
    if content is None and not card_type:
        message = "No update parameters provided; pass content and/or type"
        raise ToolExecutionError(
            message,
            code=TOOL_VALIDATION_FAILED,
            kind="validation",
            hint=validation_error(message, field="content"),
        )
    card = await call_archive(
        context.archive.update_card(name, content=content, type=card_type),
        operation="update",
        resource=name,
        required_role="user",
    )
    card = card or {"name": name}
    card_name = card.get("name") or name
    return ToolOutput(
        id=card_name,
        title=card_name,
        text=_card_summary("Card Updated Successfully", card, "The card has been updated on the wiki."),
        source=context.card_url(card),
        metadata=_card_metadata(card),
    )


async def delete_card(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    name = arguments["name"]
    force = bool(arguments.get("force", False))
    await call_archive(
        context.archive.delete_card(name, force=force),
        operation="delete",
        resource=name,
        required_role="admin",
    )
    text = "\n".join(
        [
            "# Card Deleted Successfully",
            "",
            f"**Card:** {name}",
            "",
            "The card has been permanently deleted from the wiki.",
            "",
            "**Warning:** This action cannot be undone.",
        ]
    )
    return ToolOutput(
        id=name,
        title=name,
        text=text,
        source=context.archive_config.card_url(name),
        metadata={"deleted": True, "force": force},
    )


async def list_children(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    parent = arguments["parent_name"]
    payload = await call_archive(
        context.archive.list_children(parent, limit=arguments.get("limit", 50)),
        operation="list children of",
        resource=parent,
    )
    payload = payload or {}
    children = payload.get("children") or []
    total = payload.get("total")
    if total is None:
        total = len(children)

    lines = [f"# Children of {parent}", ""]
    if children:
        lines += [f"Found {total} child cards:", ""]
        for index, child in enumerate(children, start=1):
            lines.append(f"{index}. **{child.get('name')}** ({child.get('type')})")
            if child.get("updated_at"):
                lines.append(f"   ID: {child.get('id')}, Updated: {child['updated_at']}")
    else:
        lines.append("No child cards found.")

    results = [
        {
            "id": child.get("name"),
            "title": child.get("name"),
            "source": context.card_url(child),
            "type": child.get("type"),
        }
        for child in children
    ]
    return ToolOutput(
        id=parent,
        title=f"Children of {parent}",
        text="\n".join(lines),
        source=context.archive_config.card_url(parent),
        metadata={"parent": parent, "child_count": len(children)},
        results=results,
        total=total,
    )


DESCRIPTORS = [
    ToolDescriptor(
        name="get_card",
        description=(
            "Get a single card by name from the Magi Archive wiki. Pointer cards reference other "
            "cards (use list_children to see them); Search cards hold a query, not its results."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Full card name, e.g. 'Main Page' or 'Business Plan+Executive Summary'",
                },
                "with_children": {
                    "type": "boolean",
                    "description": "Include child cards in the response",
                    "default": False,
                },
                "max_content_length": _MAX_CONTENT_SCHEMA,
            },
            "required": ["name"],
        },
        handler=get_card,
        annotations={"readOnlyHint": True, "destructiveHint": False},
    ),
    ToolDescriptor(
        name="create_card",
        description="Create a new card in the Magi Archive wiki",
        input_schema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Name of the card to create, e.g. 'New Article' or 'Parent+Child'",
                },
                "content": {"type": "string", "description": "Card content (HTML or plain text)"},
                "type": {
                    "type": "string",
                    "description": "Card type, e.g. 'Article', 'Basic', 'RichText'",
                    "default": "Basic",
                },
            },
            "required": ["name"],
        },
        handler=create_card,
        annotations={"readOnlyHint": False, "destructiveHint": False},
    ),
    ToolDescriptor(
        name="update_card",
        description="Update an existing card in the Magi Archive wiki",
        input_schema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name of the card to update"},
                "content": {"type": "string", "description": "New content for the card"},
                "type": {"type": "string", "description": "New type for the card"},
            },
            "required": ["name"],
        },
        handler=update_card,
        annotations={"readOnlyHint": False, "destructiveHint": False},
    ),
    ToolDescriptor(
        name="delete_card",
        description="Delete a card from the Magi Archive wiki (requires admin role)",
        input_schema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name of the card to delete"},
                "force": {
                    "type": "boolean",
                    "description": "Force delete even if the card has children",
                    "default": False,
                },
            },
            "required": ["name"],
        },
        handler=delete_card,
        annotations={"readOnlyHint": False, "destructiveHint": True},
    ),
    ToolDescriptor(
        name="list_children",
        description="List all child cards of a parent card",
        input_schema={
            "type": "object",
            "properties": {
                "parent_name": {"type": "string", "description": "Name of the parent card"},
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of children to return",
                    "default": 50,
                    "minimum": 1,
                    "maximum": 100,
                },
            },
            "required": ["parent_name"],
        },
        handler=list_children,
        shape=ResultShape.LIST,
        annotations={"readOnlyHint": True, "destructiveHint": False},
    ),
]
