from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from ..core.config import ConfigSet, GatewayConfig, load_config_set


class ConfigService:
    def __init__(self, config_dir: Path) -> None:
        self._config_dir = config_dir
        self._config: Optional[ConfigSet] = None

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    def load(self) -> ConfigSet:
        self._config = load_config_set(self._config_dir)
        return self._config

    def get(self) -> ConfigSet:
        if self._config is None:
            self.load()
        assert self._config is not None
        return self._config

    def get_gateway_config(self) -> GatewayConfig:
        return self.get().gateway


def default_config_dir() -> Path:
    override = os.getenv("GATEWAY_CONFIG_DIR")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[3] / "config"


def create_config_service(config_dir: Optional[Path] = None) -> ConfigService:
    return ConfigService(config_dir=config_dir or default_config_dir())
