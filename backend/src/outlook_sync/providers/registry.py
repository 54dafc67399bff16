from __future__ import annotations

from typing import Optional

import httpx

from ..core.config import AgentOptions
from ..core.http_client import HTTPClientManager
from .base_token_provider import BaseTokenProvider, StaticTokenProvider
from .microsoft.token_manager import Credential, DiagnosticHook, TokenManager


def get_token_provider(
    options: AgentOptions,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    client_manager: Optional[HTTPClientManager] = None,
    diagnostics: Optional[DiagnosticHook] = None,
) -> BaseTokenProvider:
    """
    Factory for token providers.

    auth_method=oauth builds a TokenManager owning the credential set;
    anything else serves the configured access_token unchanged.
    """
    method = (options.auth_method or "").strip().lower()
    if method == "oauth":
        credential = Credential(
            client_id=options.client_id.strip(),
            client_secret=options.client_secret.strip(),
            tenant_id=options.tenant_id.strip(),
            refresh_token=options.refresh_token.strip() or None,
        )
        return TokenManager(
            credential, http_client=http_client, client_manager=client_manager, diagnostics=diagnostics
        )
    return StaticTokenProvider(options.access_token)
