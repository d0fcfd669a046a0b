from __future__ import annotations

from typing import Any, Dict, List

from ..services.envelope import ToolOutput
from ..services.registry import ResultShape, ToolDescriptor
from .base import DEFAULT_MAX_CONTENT_LENGTH, ToolContext, call_archive


def _result_entry(card: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
    url = context.card_url(card)
    entry: Dict[str, Any] = {
        "id": card.get("name"),
        "title": card.get("name"),
        "source": url,
        "url": url,
    }
    if card.get("type"):
        entry["type"] = card["type"]
    if card.get("updated_at"):
        entry["updated_at"] = card["updated_at"]
    return entry


async def search_cards(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    query = arguments.get("query")
    card_type = arguments.get("type")
    limit = arguments.get("limit", 50)
    offset = arguments.get("offset", 0)
    payload = await call_archive(
        context.archive.search_cards(q=query, type=card_type, limit=limit, offset=offset),
        operation="search",
        resource="cards",
        required_role="user",
    )
    payload = payload or {}
    cards = payload.get("cards") or []
    total = payload.get("total")
    if total is None:
        total = len(cards)
    offset = payload.get("offset") or offset
    next_offset = payload.get("next_offset")

    lines: List[str] = [
        "# Search Results",
        "",
        f"Found {total} total cards, showing {len(cards)} starting at offset {offset}",
        "",
    ]
    if cards:
        for index, card in enumerate(cards, start=offset + 1):
            lines.append(f"{index}. **{card.get('name')}** ({card.get('type')})")
            if card.get("updated_at"):
                lines.append(f"   ID: {card.get('id')}, Updated: {card['updated_at']}")
    else:
        lines.append("No cards found matching the search criteria.")
    if next_offset:
        lines += ["", "---", f"More results available. Use offset: {next_offset} to fetch next page."]

    metadata: Dict[str, Any] = {"query": query, "type": card_type, "limit": limit, "offset": offset}
    if next_offset is not None:
        metadata["next_offset"] = next_offset
    return ToolOutput(
        id=f"search:{query or '*'}",
        title=f"Search results for '{query}'" if query else "Search results",
        text="\n".join(lines),
        source=None,
        metadata={key: value for key, value in metadata.items() if value is not None},
        results=[_result_entry(card, context) for card in cards],
        total=total,
    )


async def search(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    query = arguments["query"]
    payload = await call_archive(
        context.archive.search_cards(q=query, search_in="both", limit=10),
        operation="search",
        resource=query,
    )
    cards = (payload or {}).get("cards") or []
    results = [_result_entry(card, context) for card in cards]
    if results:
        text = "\n".join(f"- {entry['title']}: {entry['url']}" for entry in results)
    else:
        text = f"No cards found for '{query}'."
    return ToolOutput(
        id=f"search:{query}",
        title=f"Search results for '{query}'",
        text=text,
        metadata={"query": query},
        results=results,
        total=len(results),
    )


async def fetch(arguments: Dict[str, Any], context: ToolContext) -> ToolOutput:
    card_id = arguments["id"]
    max_content_length = arguments.get("max_content_length", DEFAULT_MAX_CONTENT_LENGTH)
    content_offset = arguments.get("content_offset", 0)
    card = await call_archive(context.archive.get_card(card_id), operation="view", resource=card_id)

    full_content = str(card.get("content") or "")
    total_length = len(full_content)
    truncated = False
    next_offset = None
    if not full_content:
        text = "No content available"
    elif content_offset >= total_length:
        text = f"(offset {content_offset} exceeds content length {total_length})"
    else:
        text = full_content[content_offset:]
        if max_content_length > 0 and len(text) > max_content_length:
            truncated = True
            next_offset = content_offset + max_content_length
            text = text[:max_content_length]

    url = context.card_url(card)
    metadata = {
        "type": card.get("type"),
        "created_at": card.get("created_at"),
        "updated_at": card.get("updated_at"),
        "url": url,
        "total_length": total_length,
        "content_offset": content_offset,
        "truncated": truncated,
        "next_offset": next_offset,
    }
    name = card.get("name") or card_id
    return ToolOutput(
        id=name,
        title=name,
        text=text,
        source=url,
        metadata={key: value for key, value in metadata.items() if value is not None},
    )


DESCRIPTORS = [
    ToolDescriptor(
        name="search_cards",
        description="Search for cards in the Magi Archive wiki by query, type, or other filters",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query (matches card names)"},
                "type": {
                    "type": "string",
                    "description": "Filter by card type, e.g. 'Article', 'Basic', 'Species'",
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of results to return",
                    "default": 50,
                    "minimum": 1,
                    "maximum": 100,
                },
                "offset": {
                    "type": "integer",
                    "description": "Number of results to skip (for pagination)",
                    "default": 0,
                    "minimum": 0,
                },
            },
            "required": [],
        },
        handler=search_cards,
        shape=ResultShape.LIST,
        annotations={"readOnlyHint": True, "destructiveHint": False},
    ),
    ToolDescriptor(
        name="search",
        description=(
            "Search the Magi Archive wiki for relevant cards. Returns results with IDs, "
            "titles, and URLs for citation."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query string. Searches card names and content.",
                },
            },
            "required": ["query"],
        },
        handler=search,
        shape=ResultShape.LIST,
        annotations={"readOnlyHint": True, "destructiveHint": False},
    ),
    ToolDescriptor(
        name="fetch",
        description=(
            "Retrieve card content by ID (card name) for detailed analysis and citation. "
            "Long content is paginated with content_offset."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "id": {
                    "type": "string",
                    "description": "Card name/ID from search results",
                },
                "max_content_length": {
                    "type": "integer",
                    "description": "Maximum content length to return (default: 8000 chars). Set to 0 for unlimited.",
                    "default": DEFAULT_MAX_CONTENT_LENGTH,
                    "minimum": 0,
                },
                "content_offset": {
                    "type": "integer",
                    "description": "Character offset to start content from. Use for pagination.",
                    "default": 0,
                    "minimum": 0,
                },
            },
            "required": ["id"],
        },
        handler=fetch,
        annotations={"readOnlyHint": True, "destructiveHint": False},
    ),
]
