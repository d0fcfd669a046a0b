from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from gateway.app.core.config import GatewayConfig  # noqa: E402
from gateway.app.services.archive import ArchiveClient  # noqa: E402

ARCHIVE_BASE_URL = "https://archive.test/api/mcp"
SITE_URL = "https://archive.test"
_API_PREFIX = "/api/mcp"


def make_config(**sessions: Any) -> GatewayConfig:
    session_settings = {
        "keepalive_seconds": 0.05,
        "max_stream_seconds": 0.3,
        "stream_grace_seconds": 60,
    }
    session_settings.update(sessions)
    return GatewayConfig(
        server={
            "name": "test-gateway",
            "version": "9.9.9",
            "instructions": "Use full card names.",
            "allowed_hosts": ["testserver"],
        },
        sessions=session_settings,
        dispatch={"tool_timeout_seconds": 5},
        archive={"base_url": ARCHIVE_BASE_URL, "site_url": SITE_URL, "api_token": "archive-token"},
        oauth={"token_secret": "test-secret-for-the-gateway-suite"},
    )


class ArchiveStub:
    """In-memory stand-in for the archive card API."""

    def __init__(self) -> None:
        self.cards: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.health: Dict[str, Any] = {
            "status": "healthy",
            "timestamp": "2025-01-01T00:00:00Z",
            "version": "1.2.3",
            "checks": {"database": "ok", "cards": "ok"},
        }
        self.fail_with: Optional[int] = None
        self.admin = True
        self.add_card("Home", "Welcome to the archive.", card_type="RichText", card_id=1)

    def add_card(
        self,
        name: str,
        content: str = "",
        *,
        card_type: str = "Basic",
        card_id: Optional[int] = None,
        children: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        card = {
            "id": card_id or len(self.cards) + 100,
            "name": name,
            "type": card_type,
            "content": content,
            "updated_at": "2025-01-02T03:04:05Z",
            "created_at": "2024-12-01T00:00:00Z",
        }
        self.cards[name] = card
        for child in children or []:
            self.add_card(f"{name}+{child}", f"{child} content")
        return card

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(_API_PREFIX):]
        if path == "/health":
            return httpx.Response(200, json=self.health)
        if path == "/health/ping":
            return httpx.Response(200, json={"status": "ok", "timestamp": "2025-01-01T00:00:00Z"})
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "failure", "message": "Upstream refused"})
        if path == "/cards":
            if request.method == "GET":
                return self._search(request)
            if request.method == "POST":
                return self._create(json.loads(request.content))
        if path.startswith("/cards/"):
            name = path[len("/cards/"):]
            if name.endswith("/children"):
                return self._children(name[: -len("/children")], request)
            if request.method == "GET":
                return self._get(name, request)
            if request.method == "PATCH":
                return self._update(name, json.loads(request.content))
            if request.method == "DELETE":
                return self._delete(name)
        return httpx.Response(404, json={"error": "not_found", "message": "No route"})

    def _get(self, name: str, request: httpx.Request) -> httpx.Response:
        card = self.cards.get(name)
        if card is None:
            return httpx.Response(404, json={"error": "not_found", "message": f"Card '{name}' not found"})
        payload = dict(card)
        if request.url.params.get("with_children") == "true":
            payload["children"] = self._child_cards(name)
        return httpx.Response(200, json=payload)

    def _search(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        query = (params.get("q") or "").lower()
        card_type = params.get("type")
        limit = int(params.get("limit", 50))
        offset = int(params.get("offset", 0))
        matches = [
            card
            for card in self.cards.values()
            if query in card["name"].lower() and (card_type is None or card["type"] == card_type)
        ]
        page = matches[offset : offset + limit]
        next_offset = offset + limit if offset + limit < len(matches) else None
        return httpx.Response(
            200,
            json={"cards": page, "total": len(matches), "offset": offset, "limit": limit, "next_offset": next_offset},
        )

    def _child_cards(self, parent: str) -> List[Dict[str, Any]]:
        prefix = f"{parent}+"
        return [card for name, card in self.cards.items() if name.startswith(prefix)]

    def _children(self, parent: str, request: httpx.Request) -> httpx.Response:
        if parent not in self.cards:
            return httpx.Response(404, json={"error": "not_found", "message": "Parent not found"})
        children = self._child_cards(parent)
        limit = int(request.url.params.get("limit", 50))
        return httpx.Response(200, json={"parent": parent, "children": children[:limit], "total": len(children)})

    def _create(self, payload: Dict[str, Any]) -> httpx.Response:
        name = payload.get("name", "")
        if not name or name in self.cards:
            return httpx.Response(422, json={"error": "validation_error", "message": "Name has already been taken"})
        card = self.add_card(name, payload.get("content", ""), card_type=payload.get("type", "Basic"))
        return httpx.Response(201, json=card)

    def _update(self, name: str, payload: Dict[str, Any]) -> httpx.Response:
        card = self.cards.get(name)
        if card is None:
            return httpx.Response(404, json={"error": "not_found", "message": "Card not found"})
        card.update({key: value for key, value in payload.items() if key in ("content", "type")})
        return httpx.Response(200, json=card)

    def _delete(self, name: str) -> httpx.Response:
        if not self.admin:
            return httpx.Response(
                403,
                json={"error": "forbidden", "message": "Permission denied", "details": {"required_role": "admin"}},
            )
        if self.cards.pop(name, None) is None:
            return httpx.Response(404, json={"error": "not_found", "message": "Card not found"})
        return httpx.Response(200, json={"success": True})


@pytest.fixture
def archive_stub() -> ArchiveStub:
    return ArchiveStub()


@pytest.fixture
def config() -> GatewayConfig:
    return make_config()


@pytest.fixture
def archive_client(archive_stub: ArchiveStub, config: GatewayConfig) -> ArchiveClient:
    return ArchiveClient.from_config(config.archive, transport=archive_stub.transport())


@pytest.fixture
def client(archive_stub: ArchiveStub, config: GatewayConfig):
    from fastapi.testclient import TestClient

    from gateway.app.main import create_app

    app = create_app(config, archive_transport=archive_stub.transport())
    with TestClient(app) as test_client:
        yield test_client
