from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, constr


class ServerConfig(BaseModel):
    name: constr(strip_whitespace=True, min_length=1) = "archive-mcp-gateway"
    version: str = "0.1.0"
    protocol_version: str = Field(
        "2025-03-26",
        description="Protocol revision advertised in the MCP-Protocol-Version header",
    )
    supported_protocol_versions: List[str] = Field(
        default_factory=lambda: ["2025-06-18", "2025-03-26", "2024-11-05"],
        description="Revisions accepted during initialize negotiation",
    )
    instructions: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = Field(3002, ge=1, le=65535)
    log_level: str = "info"
    public_url: Optional[str] = Field(
        default=None,
        description="Externally visible base URL; request base URL is used when unset",
    )
    allowed_hosts: List[str] = Field(
        default_factory=lambda: ["127.0.0.1", "localhost", "mcp.magi-agi.org"],
        description="Accepted Host header values; a '*' entry accepts any host",
    )


class SessionConfig(BaseModel):
    idle_ttl_seconds: float = Field(1800, gt=0)
    sweep_interval_seconds: float = Field(60, gt=0)
    stream_grace_seconds: float = Field(
        60,
        ge=0,
        description="How long a session outlives its disconnected SSE stream",
    )
    keepalive_seconds: float = Field(15, gt=0)
    max_stream_seconds: float = Field(1800, gt=0)
    max_pending_events: int = Field(100, ge=1)


class DispatchConfig(BaseModel):
    tool_timeout_seconds: float = Field(30, gt=0)


class ArchiveConfig(BaseModel):
    base_url: str = Field(..., description="Base URL of the archive MCP API")
    site_url: str = Field(..., description="Public wiki URL used to build card source links")
    request_timeout_seconds: float = Field(30, ge=1)
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token supplied by the external auth subsystem",
    )

    def card_url(self, name: str) -> str:
        return f"{self.site_url.rstrip('/')}/{name.replace(' ', '_')}"


class OAuthConfig(BaseModel):
    token_secret: constr(min_length=16)
    token_expires_hours: int = Field(24, ge=1)


class GatewayConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    archive: ArchiveConfig
    oauth: OAuthConfig


@dataclass
class ConfigSet:
    gateway: GatewayConfig
    config_dir: Path


class ConfigLoaderError(RuntimeError):
    pass


def _read_json(path: Path) -> dict:
    if not path.exists():
        raise ConfigLoaderError(f"Configuration file not found: {path}")
    try:
        return json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigLoaderError(f"Invalid JSON in {path}: {exc}") from exc


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides on top of the file contents."""
    archive = raw.setdefault("archive", {})
    server = raw.setdefault("server", {})
    oauth = raw.setdefault("oauth", {})

    base_url = os.getenv("ARCHIVE_API_BASE_URL")
    if base_url:
        archive["base_url"] = base_url
    site_url = os.getenv("ARCHIVE_SITE_URL")
    if site_url:
        archive["site_url"] = site_url
    token = os.getenv("ARCHIVE_API_TOKEN")
    if token:
        archive["api_token"] = token

    public_url = os.getenv("GATEWAY_PUBLIC_URL")
    if public_url:
        server["public_url"] = public_url

    secret = os.getenv("GATEWAY_TOKEN_SECRET")
    if secret:
        oauth["token_secret"] = secret
    return raw


def load_config_set(config_dir: Path) -> ConfigSet:
    """Load the gateway configuration from the provided directory."""
    raw = _apply_env_overrides(_read_json(config_dir / "gateway.json"))
    try:
        gateway = GatewayConfig(**raw)
    except ValidationError as exc:
        raise ConfigLoaderError(str(exc)) from exc
    return ConfigSet(gateway=gateway, config_dir=config_dir)


def load_gateway_config(config_dir: Path) -> GatewayConfig:
    return load_config_set(config_dir).gateway
