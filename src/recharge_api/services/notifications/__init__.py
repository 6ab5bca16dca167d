"""Customer messaging: gateway backends and message templates."""

from .backend import (
    DispatchResult,
    InMemoryMessagingBackend,
    LoggingMessagingBackend,
    MessagingBackend,
    ZApiWhatsAppBackend,
    build_messaging_backend,
    normalize_phone,
)
from .templates import render_expiry_reminder, render_pending_code, render_purchase_confirmation

__all__ = [
    "DispatchResult",
    "InMemoryMessagingBackend",
    "LoggingMessagingBackend",
    "MessagingBackend",
    "ZApiWhatsAppBackend",
    "build_messaging_backend",
    "normalize_phone",
    "render_expiry_reminder",
    "render_pending_code",
    "render_purchase_confirmation",
]
