"""Expiry reminder scheduling."""

from .service import ExpiryReminderService, ReminderSweepSummary, SweepGuard, get_sweep_guard
from .stages import days_until_expiry, is_stage_sent, mark_stage_sent, stage_for_days

__all__ = [
    "ExpiryReminderService",
    "ReminderSweepSummary",
    "SweepGuard",
    "days_until_expiry",
    "get_sweep_guard",
    "is_stage_sent",
    "mark_stage_sent",
    "stage_for_days",
]
