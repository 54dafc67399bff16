"""Outlook mailbox synchronization and dispatch over Microsoft Graph."""

from .agent import AgentResult, OutlookAgent

__all__ = ["AgentResult", "OutlookAgent"]
