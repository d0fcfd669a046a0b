from __future__ import annotations

import logging
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from .api import discovery, mcp
from .core.config import GatewayConfig
from .core.dependencies import get_config_service
from .core.lifespan import lifespan_context
from .transports.base import PROTOCOL_HEADER, SESSION_HEADER

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[GatewayConfig] = None,
    *,
    archive_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    if config is None:
        logger.info("Loading gateway configuration")
        config = get_config_service().get_gateway_config()

    app = FastAPI(
        title="Archive MCP Gateway",
        version=config.server.version,
        lifespan=lifespan_context,
    )
    app.state.config = config
    app.state.archive_transport = archive_transport

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER, PROTOCOL_HEADER],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=config.server.allowed_hosts)

    app.include_router(discovery.router)
    app.include_router(mcp.router)
    return app


def run() -> None:
    config = get_config_service().get_gateway_config()
    logging.basicConfig(level=config.server.log_level.upper())
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level,
    )


if __name__ == "__main__":
    run()
