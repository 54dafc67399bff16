from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, Optional

import httpx

from ...core.config import Settings, get_settings_instance
from ...core.exceptions import ConfigurationError, OAuthError, TransportError
from ...core.http_client import HTTPClientManager, get_http_client_manager
from ...core.logging import get_logger
from ..base_token_provider import BaseTokenProvider

logger = get_logger(__name__)

STEP_ACQUIRE = "acquire"
STEP_REFRESH = "refresh"

DiagnosticHook = Callable[[str, Dict[str, Any]], None]


@dataclass(frozen=True)
class Credential:
    """Application registration used to obtain Graph tokens."""

    client_id: str
    client_secret: str = field(repr=False)
    tenant_id: str
    refresh_token: Optional[str] = field(default=None, repr=False)

    def missing_fields(self) -> list[str]:
        missing = []
        for name in ("client_id", "client_secret", "tenant_id"):
            if not (getattr(self, name) or "").strip():
                missing.append(name)
        return missing


@dataclass
class TokenState:
    """Cached token material. Valid iff access_token is non-empty and now < expires_at."""

    access_token: str = field(default="", repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[datetime] = None

    def is_valid(self, now: datetime) -> bool:
        return bool(self.access_token) and self.expires_at is not None and now < self.expires_at

    @classmethod
    def from_response(
        cls,
        body: Dict[str, Any],
        *,
        now: datetime,
        default_ttl: int,
        previous_refresh_token: Optional[str] = None,
    ) -> "TokenState":
        """Decode a token endpoint JSON response into a TokenState.

        Raises ValueError when no access_token is present. A missing or
        unparsable expires_in falls back to default_ttl.
        """
        access_token = body.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise ValueError("response did not contain an access_token")
        try:
            expires_in = int(body.get("expires_in"))
        except (TypeError, ValueError):
            expires_in = default_ttl
        return cls(
            access_token=access_token,
            refresh_token=body.get("refresh_token") or previous_refresh_token,
            expires_at=now + timedelta(seconds=expires_in),
        )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenManager(BaseTokenProvider):
    """Keeps one Microsoft identity platform access token valid.

    - A valid cached token is returned as-is.
    - An expired/missing token triggers a refresh_token grant when a refresh
      token is held, falling back to exactly one client_credentials grant if
      the refresh errors; otherwise client_credentials is used directly.
    - The check -> exchange -> store sequence runs under an asyncio.Lock, so
      concurrent callers wait for and share a single in-flight exchange.

    Errors never carry the client secret.
    """

    def __init__(
        self,
        credential: Credential,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        client_manager: Optional[HTTPClientManager] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
        diagnostics: Optional[DiagnosticHook] = None,
        verbose: Optional[bool] = None,
    ):
        self._credential = credential
        self._http_client = http_client
        self._client_manager = client_manager
        self._settings = settings or get_settings_instance()
        self._clock = clock
        self._diagnostics = diagnostics
        self._verbose = self._settings.token_debug if verbose is None else verbose
        self._state = TokenState(refresh_token=(credential.refresh_token or "").strip() or None)
        self._lock = asyncio.Lock()
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def __repr__(self) -> str:
        return f"TokenManager(client_id={self._credential.client_id!r}, tenant_id={self._credential.tenant_id!r})"

    @property
    def token_url(self) -> str:
        return self._settings.token_url(self._credential.tenant_id.strip())

    @property
    def state(self) -> TokenState:
        """Snapshot of the cached token state."""
        return replace(self._state)

    def healthy(self) -> bool:
        return self._state.is_valid(self._clock())

    async def get_access_token(self) -> str:
        missing = self._credential.missing_fields()
        if missing:
            raise ConfigurationError(
                f"OAuth credential is incomplete: {', '.join(missing)} must not be empty",
                details={"missing": missing},
            )

        loop = asyncio.get_running_loop()
        if self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop

        async with self._lock:
            if self._state.is_valid(self._clock()):
                self._diag("token.cache_hit", expires_at=self._state.expires_at.isoformat())
                return self._state.access_token

            if self._state.refresh_token:
                try:
                    return await self._refresh()
                except (OAuthError, TransportError) as e:
                    logger.warning(
                        "Token refresh failed; falling back to client credentials",
                        extra={"tenant_id": self._credential.tenant_id, "error_code": e.error_code},
                    )
                    self._diag("token.refresh_failed", error=e.message)

            return await self._acquire()

    async def _acquire(self) -> str:
        data = {
            "grant_type": "client_credentials",
            "client_id": self._credential.client_id,
            "client_secret": self._credential.client_secret,
            "scope": self._settings.graph_scope,
        }
        return await self._exchange(STEP_ACQUIRE, data)

    async def _refresh(self) -> str:
        data = {
            "grant_type": "refresh_token",
            "client_id": self._credential.client_id,
            "client_secret": self._credential.client_secret,
            "refresh_token": self._state.refresh_token or "",
        }
        return await self._exchange(STEP_REFRESH, data)

    async def _exchange(self, step: str, data: Dict[str, str]) -> str:
        url = self.token_url
        self._diag(f"token.{step}.request", url=url, grant_type=data["grant_type"])
        client = self._http_client or await (self._client_manager or get_http_client_manager()).get_client()
        try:
            resp = await client.post(
                url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(step, url, self._redact(f"{type(e).__name__}: {e}")) from None

        if not resp.is_success:
            raise self._oauth_error(step, resp)

        try:
            body = resp.json()
        except (json.JSONDecodeError, ValueError):
            raise OAuthError(step, "token endpoint returned a non-JSON body", http_status=resp.status_code) from None
        if not isinstance(body, dict):
            raise OAuthError(step, "token endpoint returned an unexpected body", http_status=resp.status_code)

        now = self._clock()
        try:
            new_state = TokenState.from_response(
                body,
                now=now,
                default_ttl=self._settings.default_token_ttl,
                previous_refresh_token=self._state.refresh_token,
            )
        except ValueError as e:
            raise OAuthError(step, str(e), http_status=resp.status_code) from None

        self._state = new_state
        logger.info(
            "Access token obtained",
            extra={
                "step": step,
                "tenant_id": self._credential.tenant_id,
                "expires_at": new_state.expires_at.isoformat(),
                "refresh_token_rotated": bool(body.get("refresh_token")),
            },
        )
        self._diag(f"token.{step}.success", expires_at=new_state.expires_at.isoformat())
        return new_state.access_token

    def _oauth_error(self, step: str, resp: httpx.Response) -> OAuthError:
        """Build an OAuthError from a rejected grant, preferring structured error fields."""
        raw = self._redact(resp.text or "")
        provider_error = None
        provider_description = None
        try:
            parsed = json.loads(raw) if raw else None
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            err = parsed.get("error")
            if isinstance(err, dict):
                provider_error = err.get("code")
                provider_description = err.get("message")
            elif err:
                provider_error = str(err)
            provider_description = parsed.get("error_description") or provider_description

        if provider_error or provider_description:
            reason = " - ".join(str(p) for p in (provider_error, provider_description) if p)
        else:
            reason = raw[:500] or "no response body"
        reason = f"HTTP {resp.status_code}: {reason}"
        if step == STEP_ACQUIRE:
            reason += " (check client_id, client_secret and tenant_id)"
        return OAuthError(
            step,
            reason,
            http_status=resp.status_code,
            provider_error=provider_error,
            provider_description=provider_description,
        )

    def _redact(self, text: str) -> str:
        secret = self._credential.client_secret
        if secret and secret in text:
            text = text.replace(secret, "***")
        return text

    def _diag(self, event: str, **fields: Any) -> None:
        if self._verbose:
            logger.debug(event, extra=fields)
        if self._diagnostics is not None:
            self._diagnostics(event, fields)
