"""Authenticated transport for Microsoft Graph.

Every call makes exactly one attempt. Non-2xx responses raise APIError with
the status, reason phrase and parsed body; network failures raise
TransportError.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..core.config import Settings, get_settings_instance
from ..core.exceptions import APIError, TransportError
from ..core.http_client import HTTPClientManager, get_http_client_manager
from ..core.logging import get_logger
from ..providers.base_token_provider import BaseTokenProvider

logger = get_logger(__name__)


@dataclass
class GraphResponse:
    status_code: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


def build_odata_query_string(params: Dict[str, Any]) -> str:
    """
    Build an OData query string for Microsoft Graph.

    Keys such as $select, $filter and $orderby keep their $ prefix. Values are
    URL-encoded, except characters Graph expects literally in select lists,
    datetimes and filter expressions.
    """
    parts = []
    for key, value in params.items():
        if value is None:
            continue
        encoded_value = quote(str(value), safe=",-/:.'()T")
        parts.append(f"{key}={encoded_value}")
    return "&".join(parts)


class GraphClient:
    """Issues GET/POST/PATCH requests against Graph with a bearer token from the provider."""

    def __init__(
        self,
        token_provider: BaseTokenProvider,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        client_manager: Optional[HTTPClientManager] = None,
        settings: Optional[Settings] = None,
    ):
        self._token_provider = token_provider
        self._http_client = http_client
        self._client_manager = client_manager
        self._settings = settings or get_settings_instance()

    @property
    def base_url(self) -> str:
        return self._settings.graph_base_url.rstrip("/")

    def url_for(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def get(self, path: str, query: Optional[Dict[str, Any]] = None) -> GraphResponse:
        return await self.request("GET", path, query=query)

    async def post(self, path: str, body: Optional[Dict[str, Any]] = None, query: Optional[Dict[str, Any]] = None) -> GraphResponse:
        return await self.request("POST", path, query=query, body=body)

    async def patch(self, path: str, body: Optional[Dict[str, Any]] = None, query: Optional[Dict[str, Any]] = None) -> GraphResponse:
        return await self.request("PATCH", path, query=query, body=body)

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> GraphResponse:
        access_token = await self._token_provider.get_access_token()
        url = self.url_for(path)
        if query:
            url = f"{url}?{build_odata_query_string(query)}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        logger.info(
            "graph.request",
            extra={
                "method": method,
                "url": url,
                "auth_bearer_hash": hashlib.sha256(access_token.encode("utf-8")).hexdigest()[:10],
            },
        )
        client = self._http_client or await (self._client_manager or get_http_client_manager()).get_client()
        try:
            resp = await client.request(method.upper(), url, headers=headers, json=body)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"{method.upper()} request", url, f"{type(e).__name__}: {e}") from None

        content_type = resp.headers.get("content-type", "")
        parsed: Any
        try:
            parsed = resp.json() if "json" in content_type else resp.text
        except ValueError:
            parsed = resp.text
        status = int(resp.status_code)

        if not resp.is_success:
            logger.warning("graph.request error", extra={"method": method, "url": url, "status": status})
            raise APIError(status, url, status_message=resp.reason_phrase, body=parsed, headers=dict(resp.headers))
        return GraphResponse(status_code=status, body=parsed, headers=dict(resp.headers))
