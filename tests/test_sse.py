from __future__ import annotations

import asyncio
import json
import re
import time

from starlette.requests import Request

SESSION_FRAME = re.compile(r"event: endpoint\ndata: /messages\?session_id=([0-9a-f-]{36})\n\n")

TOOLS_LIST = {"jsonrpc": "2.0", "id": 21, "method": "tools/list"}


def _message_events(body: str):
    events = []
    for frame in body.split("\n\n"):
        lines = frame.split("\n")
        if lines and lines[0] == "event: message":
            data = "\n".join(line[len("data: "):] for line in lines[1:] if line.startswith("data: "))
            events.append(json.loads(data))
    return events


def test_stream_announces_companion_endpoint_first(client):
    response = client.get("/sse")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    match = SESSION_FRAME.match(response.text)
    assert match is not None
    assert match.group(1) == response.headers["Mcp-Session-Id"]


def test_stream_sends_keepalive_comments(client):
    body = client.get("/sse/").text
    assert ": keepalive\n\n" in body


def test_root_negotiates_event_stream(client):
    response = client.get("/", headers={"Accept": "text/event-stream"})
    assert response.headers["content-type"].startswith("text/event-stream")
    assert SESSION_FRAME.match(response.text)


def test_stream_reuses_session_from_header_or_query(client):
    session_id = client.get("/sse").headers["Mcp-Session-Id"]

    by_header = client.get("/sse", headers={"Mcp-Session-Id": session_id})
    by_query = client.get("/sse", params={"session_id": session_id})

    assert by_header.headers["Mcp-Session-Id"] == session_id
    assert SESSION_FRAME.match(by_query.text).group(1) == session_id


def test_legacy_response_is_delivered_on_reconnected_stream(client):
    session_id = client.get("/sse").headers["Mcp-Session-Id"]

    posted = client.post("/messages", params={"session_id": session_id}, json=TOOLS_LIST)
    assert posted.status_code == 202

    body = client.get("/sse", headers={"Mcp-Session-Id": session_id}).text
    assert SESSION_FRAME.match(body).group(1) == session_id
    events = _message_events(body)
    assert [event["id"] for event in events] == [21]
    assert events[0]["result"]["tools"] == posted.json()["result"]["tools"]


def test_queued_frames_are_flushed_in_fifo_order(client):
    services = client.app.state.services
    session_id = client.get("/sse").headers["Mcp-Session-Id"]
    for request_id in (1, 2, 3):
        client.post(
            "/messages",
            params={"session_id": session_id},
            json={"jsonrpc": "2.0", "id": request_id, "method": "ping"},
        )

    body = client.get("/sse", params={"session_id": session_id}).text
    assert [event["id"] for event in _message_events(body)] == [1, 2, 3]
    assert list(services.sessions.drain(session_id)) == []


def test_session_outlives_stream_for_grace_period(client):
    services = client.app.state.services
    session_id = client.get("/sse").headers["Mcp-Session-Id"]
    session = services.sessions.get(session_id)
    assert not session.has_active_stream
    assert session.detached_at is not None
    assert client.post("/messages", params={"session_id": session_id}, json=TOOLS_LIST).status_code == 202


def test_unstarted_stream_does_not_pin_session(client):
    services = client.app.state.services
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/sse",
        "headers": [],
        "query_string": b"",
    }
    response = asyncio.run(services.sse.handle(Request(scope)))
    session_id = response.headers["Mcp-Session-Id"]
    session = services.sessions.get(session_id)
    assert not session.has_active_stream

    assert services.sessions.expire_idle(time.time() + 10**6, ttl=1) == [session_id]
    assert session_id not in services.sessions
