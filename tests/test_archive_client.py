from __future__ import annotations

import asyncio

import httpx
import pytest

from gateway.app.services.archive import (
    ArchiveAPIError,
    ArchiveAuthenticationError,
    ArchiveAuthorizationError,
    ArchiveClient,
    ArchiveNotFoundError,
    ArchiveServerError,
    ArchiveValidationError,
    encode_card_name,
)


def test_encode_card_name_keeps_compound_separator():
    assert encode_card_name("Business Plan+Executive Summary") == "Business%20Plan+Executive%20Summary"
    assert encode_card_name("a/b?c") == "a%2Fb%3Fc"
    assert encode_card_name("Main-Page_v1.0~x") == "Main-Page_v1.0~x"


def test_requests_carry_bearer_token_and_encoded_path(archive_client, archive_stub):
    archive_stub.add_card("Games+Butterfly Galaxii", "Game root")

    card = asyncio.run(archive_client.get_card("Games+Butterfly Galaxii", with_children=True))

    assert card["name"] == "Games+Butterfly Galaxii"
    request = archive_stub.requests[-1]
    assert request.headers["Authorization"] == "Bearer archive-token"
    assert request.url.raw_path.startswith(b"/api/mcp/cards/Games+Butterfly%20Galaxii")
    assert request.url.params["with_children"] == "true"


def test_search_caps_limit_and_drops_empty_filters(archive_client, archive_stub):
    asyncio.run(archive_client.search_cards(q="home", limit=500))
    params = archive_stub.requests[-1].url.params
    assert params["limit"] == "100"
    assert params["q"] == "home"
    assert "type" not in params


def test_delete_with_force_sends_flag(archive_client, archive_stub):
    archive_stub.add_card("Obsolete")
    asyncio.run(archive_client.delete_card("Obsolete", force=True))
    request = archive_stub.requests[-1]
    assert request.method == "DELETE"
    assert request.url.params["force"] == "true"


def test_update_without_changes_is_rejected_locally(archive_client, archive_stub):
    with pytest.raises(ValueError):
        asyncio.run(archive_client.update_card("Home"))
    assert archive_stub.requests == []


@pytest.mark.parametrize(
    "status, error_cls",
    [
        (401, ArchiveAuthenticationError),
        (403, ArchiveAuthorizationError),
        (404, ArchiveNotFoundError),
        (422, ArchiveValidationError),
        (409, ArchiveAPIError),
        (503, ArchiveServerError),
    ],
)
def test_status_codes_map_to_typed_errors(archive_client, archive_stub, status, error_cls):
    archive_stub.fail_with = status
    with pytest.raises(error_cls) as excinfo:
        asyncio.run(archive_client.get_card("Home"))
    assert excinfo.value.status == status
    assert excinfo.value.message == "Upstream refused"


def test_non_json_error_body_is_used_as_message():
    def handler(request):
        return httpx.Response(404, text="plain failure")

    client = ArchiveClient(base_url="https://archive.test/api/mcp", transport=httpx.MockTransport(handler))
    with pytest.raises(ArchiveNotFoundError) as excinfo:
        asyncio.run(client.get_card("Home"))
    assert excinfo.value.message == "plain failure"
    assert excinfo.value.error_code == "unknown"


def test_transport_failure_becomes_server_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = ArchiveClient(base_url="https://archive.test/api/mcp", transport=httpx.MockTransport(handler))
    with pytest.raises(ArchiveServerError) as excinfo:
        asyncio.run(client.get_card("Home"))
    assert "connection refused" in str(excinfo.value)


def test_health_endpoints_do_not_send_credentials(archive_client, archive_stub):
    health = asyncio.run(archive_client.health_check())
    ping = asyncio.run(archive_client.ping())

    assert health["status"] == "healthy"
    assert ping["status"] == "ok"
    assert all("Authorization" not in request.headers for request in archive_stub.requests)
