"""Notification pipeline handlers."""

from .audit import AuditTrail
from .senders import send_email, send_push, send_sms, wants
from .validate import enrich, validate

__all__ = [
    "validate",
    "enrich",
    "send_email",
    "send_sms",
    "send_push",
    "wants",
    "AuditTrail",
]
