from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional


def _address(entry: Any) -> Optional[str]:
    """Extract the plain address from a Graph recipient object."""
    if not isinstance(entry, dict):
        return None
    email_obj = entry.get("emailAddress") or {}
    address = email_obj.get("address") if isinstance(email_obj, dict) else None
    return address or None


def flatten_recipients(recipient_list: Optional[Iterable[Any]]) -> List[str]:
    if not isinstance(recipient_list, (list, tuple)):
        return []
    return [a for a in (_address(r) for r in recipient_list) if a]


def as_address_list(recipients: Optional[Iterable[str] | str]) -> List[str]:
    """A single address string is one recipient, never a sequence of characters."""
    if isinstance(recipients, str):
        return [recipients]
    return list(recipients or [])


def format_recipients(recipients: Optional[Iterable[str] | str]) -> List[Dict[str, Dict[str, str]]]:
    """Trim each address and wrap it in Graph's recipient form; blanks are dropped."""
    result = []
    for recipient in as_address_list(recipients):
        address = (recipient or "").strip()
        if address:
            result.append({"emailAddress": {"address": address}})
    return result


@dataclass
class Cursor:
    """Last synchronization point for one folder."""

    folder: str
    last_seen_timestamp: Optional[str] = None


@dataclass
class InboundMessage:
    id: str
    subject: Optional[str] = None
    sender: Optional[str] = None
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    body: str = ""
    received_at: Optional[str] = None
    is_read: bool = False

    @classmethod
    def from_graph(cls, message: Dict[str, Any]) -> "InboundMessage":
        body_obj = message.get("body") or {}
        return cls(
            id=str(message.get("id") or ""),
            subject=message.get("subject"),
            sender=_address(message.get("from")),
            to=flatten_recipients(message.get("toRecipients")),
            cc=flatten_recipients(message.get("ccRecipients")),
            bcc=flatten_recipients(message.get("bccRecipients")),
            body=(body_obj.get("content") if isinstance(body_obj, dict) else None) or "",
            received_at=message.get("receivedDateTime"),
            is_read=bool(message.get("isRead", False)),
        )

    def to_event(self) -> Dict[str, Any]:
        """Payload of the synchronization event emitted to the host."""
        return {
            "id": self.id,
            "subject": self.subject,
            "from": self.sender,
            "to": list(self.to),
            "cc": list(self.cc),
            "bcc": list(self.bcc),
            "body": self.body,
            "receivedAt": self.received_at,
            "isRead": self.is_read,
        }


@dataclass
class OutboundMessage:
    to: List[str]
    subject: str = ""
    body: str = ""
    content_type: str = "HTML"
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """sendMail compose payload; cc/bcc are included only when non-empty."""
        message: Dict[str, Any] = {
            "subject": self.subject,
            "body": {"contentType": self.content_type or "HTML", "content": self.body},
            "toRecipients": format_recipients(self.to),
        }
        cc = format_recipients(self.cc)
        if cc:
            message["ccRecipients"] = cc
        bcc = format_recipients(self.bcc)
        if bcc:
            message["bccRecipients"] = bcc
        return {"message": message}
