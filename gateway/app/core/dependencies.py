from __future__ import annotations

from functools import lru_cache

from fastapi import Request

from ..services.config_loader import ConfigService, create_config_service
from .lifespan import GatewayServices


@lru_cache(maxsize=1)
def get_config_service() -> ConfigService:
    return create_config_service()


def get_services(request: Request) -> GatewayServices:
    return request.app.state.services
