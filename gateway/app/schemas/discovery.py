from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    timestamp: str


class ServerMetadata(BaseModel):
    name: str
    version: str
    protocol: str = "mcp"
    transport: str = "http/sse"
    endpoints: Dict[str, str]
    tools_count: int


class ClientRegistrationRequest(BaseModel):
    client_name: Optional[str] = None
    redirect_uris: List[str] = Field(default_factory=list)
    grant_types: List[str] = Field(default_factory=lambda: ["client_credentials"])


class ClientRegistrationResponse(BaseModel):
    client_id: str
    client_name: Optional[str] = None
    client_id_issued_at: int
    redirect_uris: List[str] = Field(default_factory=list)
    grant_types: List[str] = Field(default_factory=list)
    token_endpoint_auth_method: str = "none"


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthorizationServerMetadata(BaseModel):
    issuer: str
    token_endpoint: str
    registration_endpoint: str
    response_types_supported: List[str] = Field(default_factory=lambda: ["token"])
    grant_types_supported: List[str] = Field(default_factory=lambda: ["client_credentials"])
    token_endpoint_auth_methods_supported: List[str] = Field(default_factory=lambda: ["none"])
