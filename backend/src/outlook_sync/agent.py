"""Host-facing adapter.

A host runtime (scheduler, event bus, options store) drives the agent through
``configure``, ``check``/``poll``, ``receive``/``dispatch`` and ``healthy``.
Failures come back as ``AgentResult.err`` so a bad invocation never takes the
host down; the next scheduled invocation is the retry.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

import httpx

from .core.config import CONTENT_TYPES, AgentOptions
from .core.exceptions import ConfigurationError, OutlookSyncException
from .core.http_client import HTTPClientManager
from .core.logging import get_logger
from .graph.client import GraphClient
from .mail.dispatcher import MessageDispatcher
from .mail.models import Cursor
from .mail.poller import EventSink, InboxPoller
from .providers.base_token_provider import BaseTokenProvider
from .providers.microsoft.token_manager import DiagnosticHook
from .providers.registry import get_token_provider

logger = get_logger(__name__)

_RECIPIENT_SEPARATORS = re.compile(r"[,;]")


class AgentResult:
    def __init__(self, status: str, data: Optional[Dict[str, Any]] = None, error: Optional[Dict[str, Any]] = None):
        self.status = status
        self.data = data
        self.error = error

    def __repr__(self) -> str:
        return f"AgentResult(status={self.status!r}, error={self.error!r})"

    @classmethod
    def ok(cls, data: Optional[Dict[str, Any]] = None) -> "AgentResult":
        return cls("success", data or {})

    @classmethod
    def err(cls, message: str, code: str = "agent_error", details: Optional[Dict[str, Any]] = None) -> "AgentResult":
        return cls("error", error={"code": code, "message": message, "details": (details or {})})

    @classmethod
    def from_exception(cls, e: OutlookSyncException) -> "AgentResult":
        return cls("error", error=e.to_dict())


def split_recipients(value: Any) -> List[str]:
    """Accept a delimited string or a list; return trimmed, non-empty addresses."""
    if not value:
        return []
    items = [value] if isinstance(value, str) else list(value)
    result: List[str] = []
    for item in items:
        for part in _RECIPIENT_SEPARATORS.split(str(item or "")):
            part = part.strip()
            if part:
                result.append(part)
    return result


class OutlookAgent:
    """Polls an Outlook folder or sends mail through Microsoft Graph."""

    def __init__(
        self,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        emit: Optional[EventSink] = None,
        diagnostics: Optional[DiagnosticHook] = None,
    ):
        self._http_client = http_client
        self._client_manager = HTTPClientManager() if http_client is None else None
        self._emit = emit
        self._diagnostics = diagnostics
        self._options: Optional[AgentOptions] = None
        self._token_provider: Optional[BaseTokenProvider] = None
        self._poller: Optional[InboxPoller] = None
        self._dispatcher: Optional[MessageDispatcher] = None
        self._last_check_ok: Optional[bool] = None
        self._last_receive_ok: Optional[bool] = None

    @property
    def options(self) -> Optional[AgentOptions]:
        return self._options

    @property
    def token_provider(self) -> Optional[BaseTokenProvider]:
        return self._token_provider

    def configure(self, options: Mapping[str, Any]) -> None:
        """Validate options and build the token provider, poller and dispatcher.

        Raises ConfigurationError listing every invalid field.
        """
        parsed = AgentOptions.load(dict(options))
        token_provider = get_token_provider(
            parsed, http_client=self._http_client, client_manager=self._client_manager, diagnostics=self._diagnostics
        )
        client = GraphClient(token_provider, http_client=self._http_client, client_manager=self._client_manager)

        self._options = parsed
        self._token_provider = token_provider
        self._poller = InboxPoller(client, mark_as_read=parsed.mark_as_read, mailbox=parsed.mailbox, emit=self._emit)
        self._dispatcher = MessageDispatcher(client, mailbox=parsed.mailbox)
        logger.info("Agent configured", extra={"mode": parsed.mode, "auth_method": parsed.auth_method})

    def cursor(self, folder: str) -> Cursor:
        if self._poller is None:
            raise ConfigurationError("Agent is not configured")
        return self._poller.cursor(folder)

    def healthy(self) -> bool:
        return self._last_check_ok is True or self._last_receive_ok is True

    async def check(self) -> AgentResult:
        """Scheduled tick: poll the configured folder in receive mode."""
        if self._options is None:
            return AgentResult.from_exception(ConfigurationError("Agent is not configured"))
        if self._options.mode != "receive":
            return AgentResult.ok({"count": 0, "note": "check is a no-op in send mode"})
        return await self.poll()

    async def poll(self, folder: Optional[str] = None, since: Optional[str] = None) -> AgentResult:
        if self._options is None or self._poller is None:
            return AgentResult.from_exception(ConfigurationError("Agent is not configured"))
        folder = folder or self._options.folder
        since = self._options.since if since is None else since
        try:
            result = await self._poller.poll(folder, since)
        except OutlookSyncException as e:
            self._last_check_ok = False
            logger.error("Poll failed", extra={"folder": folder, "error_code": e.error_code, "reason": e.message})
            return AgentResult.from_exception(e)

        self._last_check_ok = True
        data: Dict[str, Any] = {
            "events": result.events,
            "count": len(result.messages),
            "skipped_read": result.skipped_read,
            "cursor": self._poller.cursor(folder).last_seen_timestamp,
        }
        if result.mark_read_failures:
            data["skips"] = result.mark_read_failures
        if result.skipped_malformed:
            data["skipped_malformed"] = result.skipped_malformed
        return AgentResult.ok(data)

    async def receive(self, events: Iterable[Mapping[str, Any]]) -> List[AgentResult]:
        """Inbound event batch: dispatch one message per event in send mode."""
        if self._options is None:
            return [AgentResult.from_exception(ConfigurationError("Agent is not configured"))]
        if self._options.mode != "send":
            return []
        results = []
        for event in events:
            if not isinstance(event, Mapping):
                self._last_receive_ok = False
                results.append(AgentResult.err("Event payload must be a mapping", code="invalid_event"))
                continue
            results.append(await self.dispatch(event.get("payload", event)))
        return results

    async def dispatch(self, fields: Optional[Mapping[str, Any]] = None) -> AgentResult:
        """Send one message built from already-rendered fields, falling back to the options."""
        if self._options is None or self._dispatcher is None:
            return AgentResult.from_exception(ConfigurationError("Agent is not configured"))
        try:
            message = self._outbound_fields(self._options, fields or {})
            result = await self._dispatcher.dispatch(**message)
        except OutlookSyncException as e:
            self._last_receive_ok = False
            logger.error("Dispatch failed", extra={"error_code": e.error_code, "reason": e.message})
            return AgentResult.from_exception(e)
        self._last_receive_ok = True
        return AgentResult.ok(result.to_dict())

    @staticmethod
    def _outbound_fields(opts: AgentOptions, fields: Mapping[str, Any]) -> Dict[str, Any]:
        def pick(name: str) -> Any:
            value = fields.get(name)
            return getattr(opts, name) if value is None else value

        to = split_recipients(pick("to"))
        if not to:
            raise ConfigurationError("Recipient (to) is required", details={"field": "to"})
        content_type = pick("content_type") or "HTML"
        if content_type not in CONTENT_TYPES:
            raise ConfigurationError("Content type must be 'HTML' or 'Text'", details={"field": "content_type"})
        return {
            "subject": str(pick("subject") or ""),
            "body": str(pick("body") or ""),
            "content_type": content_type,
            "to": to,
            "cc": split_recipients(pick("cc")),
            "bcc": split_recipients(pick("bcc")),
        }

    async def close(self) -> None:
        """Release this agent's own HTTP client. An injected client belongs to the caller."""
        if self._client_manager is not None:
            await self._client_manager.close()
