"""Decision backends: webhook and human approval."""

from __future__ import annotations

from callgate.backends.approval import (
    ApprovalAction,
    ApprovalChannel,
    ApprovalDispatcher,
    CallbackEvent,
    HumanApprovalBackend,
    PendingApproval,
    format_approval_message,
    is_allowed_sender,
)
from callgate.backends.webhook import WebhookBackend

__all__ = [
    "ApprovalAction",
    "ApprovalChannel",
    "ApprovalDispatcher",
    "CallbackEvent",
    "HumanApprovalBackend",
    "PendingApproval",
    "WebhookBackend",
    "format_approval_message",
    "is_allowed_sender",
]
