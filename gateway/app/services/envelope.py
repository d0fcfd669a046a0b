from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .registry import ResultShape, ToolDescriptor


@dataclass
class ToolOutput:
    """Raw result returned by a tool handler before it is wrapped for the wire."""

    id: str
    title: str
    text: str
    source: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    results: Optional[List[Dict[str, Any]]] = None
    total: Optional[int] = None
    status: Optional[str] = None


class ResponseEnvelopeBuilder:
    """Wraps tool output in the single-text-item content array.

    The embedded JSON carries both a narrative ``text`` and structured
    fields, so plain-text clients and structured clients read the same
    payload.
    """

    def build(self, descriptor: ToolDescriptor, output: ToolOutput) -> List[Dict[str, Any]]:
        hybrid = self.hybrid(descriptor, output)
        return [{"type": "text", "text": json.dumps(hybrid, ensure_ascii=False, default=str)}]

    def hybrid(self, descriptor: ToolDescriptor, output: ToolOutput) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": output.id, "title": output.title}
        if descriptor.shape is ResultShape.STATUS:
            payload["status"] = output.status or "unknown"
        payload["text"] = output.text
        payload["source"] = output.source
        payload["metadata"] = dict(output.metadata)

        if descriptor.shape is ResultShape.LIST:
            results = [self._result_item(item) for item in (output.results or [])]
            payload["results"] = results
            payload["total"] = output.total if output.total is not None else len(results)
        return payload

    @staticmethod
    def _result_item(item: Dict[str, Any]) -> Dict[str, Any]:
        entry = dict(item)
        entry.setdefault("id", "")
        entry.setdefault("title", entry["id"])
        entry.setdefault("source", None)
        return entry


def decode_text_content(content: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Return the hybrid document embedded in a built content array."""
    if len(content) != 1 or content[0].get("type") != "text":
        raise ValueError("Expected a single text content item")
    return json.loads(content[0]["text"])
