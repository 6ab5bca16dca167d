"""Background workers supporting async processing."""

from .expiry_reminders import ExpiryReminderWorker

__all__ = ["ExpiryReminderWorker"]
