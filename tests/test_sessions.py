from __future__ import annotations

import asyncio
import re
import threading
import time

import pytest

from gateway.app.core.errors import SessionNotFoundError
from gateway.app.services.sessions import SessionManager

UUID4 = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$")


def test_create_issues_unique_uuid4_ids():
    manager = SessionManager()
    ids = {manager.create().id for _ in range(50)}
    assert len(ids) == 50
    assert all(UUID4.match(session_id) for session_id in ids)
    assert len(manager) == 50


def test_get_or_create_reuses_known_session_and_bumps_activity():
    manager = SessionManager()
    session = manager.create()
    session.last_active_at -= 100
    before = session.last_active_at

    again = manager.get_or_create(session.id)

    assert again is session
    assert session.last_active_at > before


def test_get_or_create_mints_for_unknown_or_missing_ids():
    manager = SessionManager()
    fresh = manager.get_or_create("not-a-known-session")
    assert fresh.id != "not-a-known-session"
    assert manager.get_or_create(None).id != fresh.id
    assert len(manager) == 2


def test_strict_get_raises_for_unknown_session():
    manager = SessionManager()
    with pytest.raises(SessionNotFoundError) as excinfo:
        manager.get("missing")
    assert "Session not found" in str(excinfo.value)


def test_touch_never_moves_activity_backwards():
    manager = SessionManager()
    session = manager.create()
    latest = session.last_active_at
    session.touch(latest - 10)
    assert session.last_active_at == latest


def test_drain_yields_in_fifo_order_and_removes_events():
    manager = SessionManager()
    session = manager.create()
    for index in range(3):
        manager.enqueue(session.id, f"event-{index}")

    iterator = manager.drain(session.id)
    assert next(iterator) == "event-0"
    manager.enqueue(session.id, "event-3")
    assert list(iterator) == ["event-1", "event-2", "event-3"]
    assert list(manager.drain(session.id)) == []


def test_enqueue_unknown_session_raises():
    manager = SessionManager()
    with pytest.raises(SessionNotFoundError):
        manager.enqueue("missing", "frame")


def test_pending_queue_drops_oldest_when_full(caplog):
    manager = SessionManager(max_pending_events=2)
    session = manager.create()
    for frame in ("a", "b", "c"):
        manager.enqueue(session.id, frame)
    assert list(manager.drain(session.id)) == ["b", "c"]
    assert "dropped oldest frame" in caplog.text


def test_concurrent_enqueue_from_threads_keeps_every_event():
    manager = SessionManager(max_pending_events=10_000)
    session = manager.create()

    def produce(prefix: str) -> None:
        for index in range(200):
            manager.enqueue(session.id, f"{prefix}-{index}")

    threads = [threading.Thread(target=produce, args=(f"t{n}",)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    events = list(manager.drain(session.id))
    assert len(events) == 800
    t0_events = [event for event in events if event.startswith("t0-")]
    assert t0_events == [f"t0-{index}" for index in range(200)]


def test_expire_idle_removes_only_stale_sessions():
    manager = SessionManager()
    stale = manager.create()
    fresh = manager.create()
    now = time.time()
    stale.last_active_at = now - 3600

    expired = manager.expire_idle(now, ttl=1800)

    assert expired == [stale.id]
    assert stale.id not in manager
    assert fresh.id in manager


def test_close_removes_session():
    manager = SessionManager()
    session = manager.create()
    manager.close(session.id)
    assert session.id not in manager
    with pytest.raises(SessionNotFoundError):
        manager.close(session.id)


def test_streaming_session_survives_sweeps_and_honours_grace_period():
    async def scenario():
        manager = SessionManager(stream_grace_seconds=5)
        session = manager.create()
        slot = manager.attach_stream(session.id)
        now = time.time()

        # An attached stream keeps the session alive regardless of idleness.
        assert manager.expire_idle(now + 10_000, ttl=1) == []

        manager.detach_stream(slot)
        assert manager.expire_idle(now + 1, ttl=1800) == []
        assert manager.expire_idle(now + 10, ttl=1800) == [session.id]

    asyncio.run(scenario())


def test_wait_for_events_wakes_on_enqueue_and_times_out_otherwise():
    async def scenario():
        manager = SessionManager()
        session = manager.create()
        slot = manager.attach_stream(session.id)

        assert await manager.wait_for_events(slot, timeout=0.01) is False

        loop = asyncio.get_running_loop()
        loop.call_later(0.01, manager.enqueue, session.id, "frame")
        assert await manager.wait_for_events(slot, timeout=2) is True
        assert list(manager.drain(session.id)) == ["frame"]

    asyncio.run(scenario())


def test_enqueue_from_worker_thread_wakes_stream():
    async def scenario():
        manager = SessionManager()
        session = manager.create()
        slot = manager.attach_stream(session.id)
        threading.Timer(0.01, manager.enqueue, args=(session.id, "from-thread")).start()
        assert await manager.wait_for_events(slot, timeout=2) is True
        assert list(manager.drain(session.id)) == ["from-thread"]

    asyncio.run(scenario())


def test_newer_stream_supersedes_older_one():
    async def scenario():
        manager = SessionManager()
        session = manager.create()
        first = manager.attach_stream(session.id)
        second = manager.attach_stream(session.id)

        assert manager.is_stream_current(second)
        assert not manager.is_stream_current(first)
        assert await manager.wait_for_events(first, timeout=1) is True

        # Releasing the superseded slot must not detach the live stream.
        manager.detach_stream(first)
        assert session.has_active_stream
        manager.detach_stream(second)
        assert not session.has_active_stream

    asyncio.run(scenario())
