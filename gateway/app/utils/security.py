from __future__ import annotations

import datetime as dt
import secrets
from typing import Any, Dict

from jose import jwt


def create_access_token(*, subject: str, secret: str, expires_hours: int = 24, extra_claims: Dict[str, Any] | None = None) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    expire = now + dt.timedelta(hours=expires_hours)
    payload: Dict[str, Any] = {"sub": subject, "iat": now, "exp": expire}
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def generate_client_id() -> str:
    return f"mcp-client-{secrets.token_urlsafe(12)}"
