from __future__ import annotations

from ..core.exceptions import ConfigurationError


class BaseTokenProvider:
    """
    Token provider interface.

    GraphClient asks its provider for a bearer token before every request;
    providers decide whether that means a cache hit or a network exchange.
    """

    async def get_access_token(self) -> str:
        raise NotImplementedError

    def healthy(self) -> bool:
        """Whether the provider currently holds a usable credential."""
        raise NotImplementedError


class StaticTokenProvider(BaseTokenProvider):
    """Serves a pre-issued access token (auth_method=token). No refresh, no expiry tracking."""

    def __init__(self, access_token: str):
        self._access_token = (access_token or "").strip()

    def __repr__(self) -> str:
        return "StaticTokenProvider(access_token=***)"

    async def get_access_token(self) -> str:
        if not self._access_token:
            raise ConfigurationError("Access token is required", details={"field": "access_token"})
        return self._access_token

    def healthy(self) -> bool:
        return bool(self._access_token)
