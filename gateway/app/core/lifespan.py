from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI

from ..services.archive import ArchiveClient
from ..services.dispatcher import JSONRPCDispatcher
from ..services.registry import ToolRegistry
from ..services.sessions import SessionManager
from ..tools import build_registry
from ..transports.direct import DirectTransport
from ..transports.legacy import LegacyMessagesTransport
from ..transports.sse import SSEStreamTransport
from .config import GatewayConfig, SessionConfig

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    config: GatewayConfig
    sessions: SessionManager
    registry: ToolRegistry
    archive: ArchiveClient
    dispatcher: JSONRPCDispatcher
    direct: DirectTransport
    sse: SSEStreamTransport
    legacy: LegacyMessagesTransport


def build_services(
    config: GatewayConfig,
    *,
    archive_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GatewayServices:
    sessions = SessionManager(
        max_pending_events=config.sessions.max_pending_events,
        stream_grace_seconds=config.sessions.stream_grace_seconds,
    )
    registry = build_registry()
    archive = ArchiveClient.from_config(config.archive, transport=archive_transport)
    dispatcher = JSONRPCDispatcher(
        registry=registry,
        server_config=config.server,
        dispatch_config=config.dispatch,
        archive=archive,
        archive_config=config.archive,
    )
    protocol_version = config.server.protocol_version
    return GatewayServices(
        config=config,
        sessions=sessions,
        registry=registry,
        archive=archive,
        dispatcher=dispatcher,
        direct=DirectTransport(sessions=sessions, dispatcher=dispatcher, protocol_version=protocol_version),
        sse=SSEStreamTransport(sessions=sessions, config=config.sessions, protocol_version=protocol_version),
        legacy=LegacyMessagesTransport(sessions=sessions, dispatcher=dispatcher, protocol_version=protocol_version),
    )


async def sweep_idle_sessions(sessions: SessionManager, config: SessionConfig) -> None:
    while True:
        await asyncio.sleep(config.sweep_interval_seconds)
        try:
            sessions.expire_idle(time.time(), config.idle_ttl_seconds)
        except Exception:
            logger.exception("Idle session sweep failed")


@asynccontextmanager
async def lifespan_context(app: FastAPI) -> AsyncIterator[None]:
    config: GatewayConfig = app.state.config
    services = build_services(config, archive_transport=getattr(app.state, "archive_transport", None))
    app.state.services = services
    sweeper = asyncio.create_task(sweep_idle_sessions(services.sessions, config.sessions))
    logger.info(
        "Gateway %s %s ready with %d tools",
        config.server.name,
        config.server.version,
        len(services.registry),
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await services.archive.aclose()
        logger.info("Gateway shut down")
