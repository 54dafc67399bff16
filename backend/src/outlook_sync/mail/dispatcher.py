from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote

from ..core.exceptions import APIError, DeliveryError
from ..core.logging import get_logger
from ..graph.client import GraphClient
from .models import OutboundMessage, as_address_list

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    status_code: int
    recipients: list[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"status_code": self.status_code, "recipients": list(self.recipients)}


class MessageDispatcher:
    """Sends one message per call through sendMail. Fire-and-forget, single attempt."""

    def __init__(self, client: GraphClient, *, mailbox: str = ""):
        self._client = client
        self._mailbox = (mailbox or "").strip()

    @property
    def send_path(self) -> str:
        if self._mailbox:
            return f"users/{quote(self._mailbox, safe='@')}/sendMail"
        return "me/sendMail"

    async def dispatch(
        self,
        subject: str,
        body: str,
        content_type: str = "HTML",
        to: Sequence[str] | str = (),
        cc: Optional[Sequence[str] | str] = None,
        bcc: Optional[Sequence[str] | str] = None,
    ) -> DispatchResult:
        message = OutboundMessage(
            to=as_address_list(to),
            subject=subject,
            body=body,
            content_type=content_type or "HTML",
            cc=as_address_list(cc),
            bcc=as_address_list(bcc),
        )
        return await self.send(message)

    async def send(self, message: OutboundMessage) -> DispatchResult:
        payload = message.to_payload()
        recipients = [r["emailAddress"]["address"] for r in payload["message"]["toRecipients"]]
        try:
            resp = await self._client.post(self.send_path, payload)
        except APIError as e:
            logger.error(
                "Failed to send email",
                extra={"status": e.http_status, "status_message": e.status_message},
            )
            raise DeliveryError.from_api_error(e) from e

        logger.info("Email sent successfully", extra={"recipients": ", ".join(recipients)})
        return DispatchResult(status_code=resp.status_code, recipients=recipients)
