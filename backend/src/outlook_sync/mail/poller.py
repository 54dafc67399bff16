from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from ..core.config import WELL_KNOWN_FOLDERS, parse_since
from ..core.exceptions import APIError, OutlookSyncException
from ..core.logging import get_logger
from ..graph.client import GraphClient, GraphResponse
from .models import Cursor, InboundMessage

logger = get_logger(__name__)

MESSAGE_FIELDS = "id,subject,from,toRecipients,ccRecipients,bccRecipients,body,receivedDateTime,isRead"

EventSink = Callable[[Dict[str, Any]], Any]


@dataclass
class PollResult:
    folder: str
    messages: List[InboundMessage] = field(default_factory=list)
    skipped_read: int = 0
    skipped_malformed: int = 0
    mark_read_failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def events(self) -> List[Dict[str, Any]]:
        return [m.to_event() for m in self.messages]


def format_filter_timestamp(value: datetime) -> str:
    """Render a datetime as the UTC literal Graph expects in $filter. Sub-second precision is kept."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    timespec = "microseconds" if value.microsecond else "seconds"
    return value.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


class InboxPoller:
    """Fetches one page of a mail folder and emits a sync event per new message.

    Dedup policy:
    - with a ``since`` lower bound every returned message is emitted;
    - without one only unread messages are emitted.

    The per-folder cursor records the newest receivedDateTime of the last
    unfiltered, non-empty page. It is bookkeeping only and is not used to
    build the next request.
    """

    def __init__(
        self,
        client: GraphClient,
        *,
        mark_as_read: bool = False,
        mailbox: str = "",
        emit: Optional[EventSink] = None,
    ):
        self._client = client
        self._mark_as_read = mark_as_read
        self._mailbox = (mailbox or "").strip()
        self._emit = emit
        self._resolved_root: Optional[str] = None
        self._cursors: Dict[str, Cursor] = {}

    def cursor(self, folder: str) -> Cursor:
        return self._cursors.setdefault(folder, Cursor(folder=folder))

    async def resolve_root(self) -> str:
        """Return the mailbox path prefix: ``users/{id}`` when resolvable, else ``me``."""
        if self._mailbox:
            return f"users/{quote(self._mailbox, safe='@')}"
        if self._resolved_root:
            return self._resolved_root
        try:
            resp = await self._client.get("me", {"$select": "id,userPrincipalName"})
        except APIError as e:
            logger.warning(
                "Could not resolve mailbox identity; using mailbox-relative path",
                extra={"status": e.http_status, "error_category": e.error_category},
            )
            return "me"
        user_id = resp.body.get("id") if isinstance(resp.body, dict) else None
        if not user_id:
            return "me"
        self._resolved_root = f"users/{user_id}"
        return self._resolved_root

    async def poll(self, folder: str = "inbox", since: Optional[str] = None) -> PollResult:
        since_dt = parse_since(since)
        folder_name = WELL_KNOWN_FOLDERS.get(folder, folder)

        root = await self.resolve_root()
        query = {
            "$select": MESSAGE_FIELDS,
            "$orderby": "receivedDateTime desc",
        }
        if since_dt is not None:
            query["$filter"] = f"receivedDateTime ge {format_filter_timestamp(since_dt)}"

        # Single page only; @odata.nextLink is not followed.
        path = f"{root}/mailFolders/{folder_name}/messages"
        resp = await self._client.get(path, query)
        page = self._page_items(resp, path)

        result = PollResult(folder=folder)
        newest: Optional[str] = None
        for item in page:
            if not isinstance(item, dict):
                result.skipped_malformed += 1
                continue
            if newest is None:
                newest = item.get("receivedDateTime")
            message = InboundMessage.from_graph(item)
            if since_dt is None and message.is_read:
                result.skipped_read += 1
                continue

            if self._emit is not None:
                emitted = self._emit(message.to_event())
                if inspect.isawaitable(emitted):
                    await emitted
            result.messages.append(message)

            if self._mark_as_read and message.id:
                failure = await self._mark_read(root, message.id)
                if failure:
                    result.mark_read_failures.append(failure)

        if since_dt is None and newest is not None:
            self.cursor(folder).last_seen_timestamp = newest

        logger.info(
            "Poll complete",
            extra={
                "folder": folder,
                "fetched": len(page),
                "emitted": len(result.messages),
                "skipped_read": result.skipped_read,
                "skipped_malformed": result.skipped_malformed,
                "filtered": since_dt is not None,
            },
        )
        return result

    def _page_items(self, resp: GraphResponse, path: str) -> List[Any]:
        """Items of a list page. A missing or null ``value`` is an empty page."""
        body = resp.body if isinstance(resp.body, dict) else {}
        page = body.get("value")
        if page is None:
            return []
        if not isinstance(page, list):
            raise APIError(
                resp.status_code,
                self._client.url_for(path),
                status_message="Malformed message list",
                body=resp.body,
                headers=resp.headers,
            )
        return page

    async def _mark_read(self, root: str, message_id: str) -> Optional[Dict[str, Any]]:
        """PATCH isRead=true. Failures are logged and returned, never raised."""
        try:
            await self._client.patch(f"{root}/messages/{quote(message_id, safe='')}", {"isRead": True})
        except OutlookSyncException as e:
            logger.warning(
                "Failed to mark message as read",
                extra={"message_id": message_id, "error_code": e.error_code, "reason": e.message},
            )
            return {"item_id": message_id, "reason": e.message, "code": e.error_code}
        return None
