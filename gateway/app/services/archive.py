from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import httpx

from ..core.config import ArchiveConfig

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]

# Unreserved characters plus "+", which joins compound card names ("Parent+Child").
_CARD_NAME_SAFE = "-_.~+"


class ArchiveAPIError(Exception):
    """Request to the archive API failed."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.error_code = error_code
        self.details = details


class ArchiveAuthenticationError(ArchiveAPIError):
    pass


class ArchiveAuthorizationError(ArchiveAPIError):
    pass


class ArchiveNotFoundError(ArchiveAPIError):
    pass


class ArchiveValidationError(ArchiveAPIError):
    pass


class ArchiveServerError(ArchiveAPIError):
    pass


_CLIENT_ERRORS = {
    401: ArchiveAuthenticationError,
    403: ArchiveAuthorizationError,
    404: ArchiveNotFoundError,
    422: ArchiveValidationError,
}


def encode_card_name(name: str) -> str:
    return quote(name, safe=_CARD_NAME_SAFE)


class ArchiveClient:
    """Async client for the archive's card API.

    One instance (and one pooled ``httpx.AsyncClient``) is shared by every
    tool call in the process.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 30,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: ArchiveConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ArchiveClient":
        return cls(
            base_url=config.base_url,
            timeout_seconds=config.request_timeout_seconds,
            token_provider=lambda: config.api_token,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- generic verbs -------------------------------------------------

    async def get(self, path: str, **params: Any) -> Any:
        return await self._request("GET", path, params=_drop_none(params))

    async def post(self, path: str, **data: Any) -> Any:
        return await self._request("POST", path, json=data)

    async def patch(self, path: str, **data: Any) -> Any:
        return await self._request("PATCH", path, json=data)

    async def delete(self, path: str, **params: Any) -> Any:
        return await self._request("DELETE", path, params=_drop_none(params))

    # -- health --------------------------------------------------------

    async def health_check(self) -> Dict[str, Any]:
        return await self._unauthenticated_get("/health", "Health check failed")

    async def ping(self) -> Dict[str, Any]:
        return await self._unauthenticated_get("/health/ping", "Ping failed")

    # -- cards ---------------------------------------------------------

    async def get_card(self, name: str, *, with_children: bool = False) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if with_children:
            params["with_children"] = "true"
        return await self.get(f"/cards/{encode_card_name(name)}", **params)

    async def search_cards(
        self,
        *,
        q: Optional[str] = None,
        type: Optional[str] = None,
        search_in: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        return await self.get(
            "/cards",
            q=q,
            type=type,
            search_in=search_in,
            limit=min(limit, 100),
            offset=offset,
        )

    async def list_children(self, parent_name: str, *, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return await self.get(
            f"/cards/{encode_card_name(parent_name)}/children",
            limit=min(limit, 100),
            offset=offset,
        )

    async def create_card(
        self,
        name: str,
        *,
        content: Optional[str] = None,
        type: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": name}
        if content is not None:
            payload["content"] = content
        if type:
            payload["type"] = type
        return await self.post("/cards", **payload)

    async def update_card(
        self,
        name: str,
        *,
        content: Optional[str] = None,
        type: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if content is not None:
            payload["content"] = content
        if type:
            payload["type"] = type
        if not payload:
            raise ValueError("No update parameters provided")
        return await self.patch(f"/cards/{encode_card_name(name)}", **payload)

    async def delete_card(self, name: str, *, force: bool = False) -> Dict[str, Any]:
        params = {"force": "true"} if force else {}
        return await self.delete(f"/cards/{encode_card_name(name)}", **params)

    # -- internals -----------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        logger.debug("Archive request %s %s", method, path)
        try:
            response = await self._client.request(
                method,
                path,
                params=params or None,
                json=json,
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise ArchiveServerError(f"HTTP request failed: {exc}") from exc
        return self._handle_response(response)

    async def _unauthenticated_get(self, path: str, failure_message: str) -> Dict[str, Any]:
        try:
            response = await self._client.get(path, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise ArchiveServerError(f"{failure_message}: {exc}") from exc
        if not response.is_success:
            raise ArchiveAPIError(failure_message, status=response.status_code)
        return self._parse_body(response) or {}

    def _handle_response(self, response: httpx.Response) -> Any:
        status_code = response.status_code
        if 200 <= status_code < 300:
            return self._parse_body(response)
        data = self._parse_error_body(response)
        if 400 <= status_code < 500:
            error_cls = _CLIENT_ERRORS.get(status_code, ArchiveAPIError)
            message = data.get("message") or data.get("error") or "Request failed"
            raise error_cls(
                message,
                status=status_code,
                error_code=data.get("error"),
                details=data.get("details"),
            )
        if status_code >= 500:
            message = data.get("message") or data.get("error") or "Server error"
            raise ArchiveServerError(message, status=status_code, error_code=data.get("error"))
        raise ArchiveAPIError(f"Unexpected HTTP status: {status_code}", status=status_code)

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ArchiveAPIError(f"Response parse failed: {exc}", status=response.status_code) from exc

    @staticmethod
    def _parse_error_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {"error": "unknown", "message": response.text}
        if not isinstance(data, dict):
            return {"error": "unknown", "message": str(data)}
        return data


def _drop_none(params: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}
