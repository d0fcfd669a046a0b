from .discovery import (
    AuthorizationServerMetadata,
    ClientRegistrationRequest,
    ClientRegistrationResponse,
    HealthResponse,
    ServerMetadata,
    TokenResponse,
)

__all__ = [
    "AuthorizationServerMetadata",
    "ClientRegistrationRequest",
    "ClientRegistrationResponse",
    "HealthResponse",
    "ServerMetadata",
    "TokenResponse",
]
