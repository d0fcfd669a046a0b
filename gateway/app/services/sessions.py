from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterator, List, Optional

from ..core.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class StreamSlot:
    """Claim on a session's single streaming connection."""

    session_id: str
    token: str
    wakeup: asyncio.Event
    loop: asyncio.AbstractEventLoop


@dataclass
class Session:
    id: str
    created_at: float = field(default_factory=time.time)
    last_active_at: float = field(default_factory=time.time)
    pending_events: Deque[str] = field(default_factory=deque)
    streamed: bool = False
    detached_at: Optional[float] = None

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._slot: Optional[StreamSlot] = None

    def touch(self, now: Optional[float] = None) -> None:
        moment = time.time() if now is None else now
        with self._lock:
            if moment > self.last_active_at:
                self.last_active_at = moment

    @property
    def has_active_stream(self) -> bool:
        return self._slot is not None

    def owns_stream(self, slot: StreamSlot) -> bool:
        current = self._slot
        return current is not None and current.token == slot.token


class SessionManager:
    """In-memory store of gateway sessions.

    The id -> session map is guarded by one lock; each session's pending
    queue by its own, so operations on different sessions never contend.
    """

    def __init__(self, *, max_pending_events: int = 100, stream_grace_seconds: float = 60.0) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self.max_pending_events = max_pending_events
        self.stream_grace_seconds = stream_grace_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def create(self) -> Session:
        with self._lock:
            session_id = str(uuid.uuid4())
            while session_id in self._sessions:
                session_id = str(uuid.uuid4())
            session = Session(id=session_id)
            self._sessions[session_id] = session
        logger.info("Created session %s", session_id)
        return session

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.touch()
        return session

    def get_or_create(self, candidate_id: Optional[str]) -> Session:
        if candidate_id:
            try:
                return self.get(candidate_id)
            except SessionNotFoundError:
                logger.debug("Unknown session id %s supplied; issuing a new one", candidate_id)
        return self.create()

    def close(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        self._wake(session)
        logger.info("Closed session %s", session_id)

    def enqueue(self, session_id: str, event: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        with session._lock:
            if len(session.pending_events) >= self.max_pending_events:
                session.pending_events.popleft()
                logger.warning(
                    "Pending event queue full for session %s; dropped oldest frame",
                    session_id,
                )
            session.pending_events.append(event)
        self._wake(session)

    def drain(self, session_id: str) -> Iterator[str]:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return self._drain(session)

    @staticmethod
    def _drain(session: Session) -> Iterator[str]:
        while True:
            with session._lock:
                if not session.pending_events:
                    return
                event = session.pending_events.popleft()
            yield event

    def attach_stream(self, session_id: str) -> StreamSlot:
        """Claim the streaming slot, superseding any stream that still holds it."""
        session = self.get(session_id)
        slot = StreamSlot(
            session_id=session_id,
            token=str(uuid.uuid4()),
            wakeup=asyncio.Event(),
            loop=asyncio.get_running_loop(),
        )
        with session._lock:
            previous = session._slot
            session._slot = slot
            session.streamed = True
            session.detached_at = None
        if previous is not None:
            logger.info("Stream for session %s superseded by a new connection", session_id)
            previous.loop.call_soon_threadsafe(previous.wakeup.set)
        return slot

    def detach_stream(self, slot: StreamSlot) -> None:
        with self._lock:
            session = self._sessions.get(slot.session_id)
        if session is None:
            return
        with session._lock:
            if session._slot is not None and session._slot.token == slot.token:
                session._slot = None
                session.detached_at = time.time()
        session.touch()

    def is_stream_current(self, slot: StreamSlot) -> bool:
        with self._lock:
            session = self._sessions.get(slot.session_id)
        return session is not None and session.owns_stream(slot)

    async def wait_for_events(self, slot: StreamSlot, timeout: float) -> bool:
        """Suspend until an event is enqueued for the slot's session or ``timeout`` passes."""
        try:
            await asyncio.wait_for(slot.wakeup.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        slot.wakeup.clear()
        return True

    def expire_idle(self, now: float, ttl: float) -> List[str]:
        expired: List[str] = []
        with self._lock:
            for session_id, session in list(self._sessions.items()):
                if session.has_active_stream:
                    continue
                idle = now - session.last_active_at > ttl
                grace_over = (
                    session.detached_at is not None
                    and now - session.detached_at > self.stream_grace_seconds
                )
                if idle or grace_over:
                    del self._sessions[session_id]
                    expired.append(session_id)
        if expired:
            logger.info("Expired %d idle session(s)", len(expired))
        return expired

    @staticmethod
    def _wake(session: Session) -> None:
        slot = session._slot
        if slot is not None:
            slot.loop.call_soon_threadsafe(slot.wakeup.set)
