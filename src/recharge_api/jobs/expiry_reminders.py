"""Scheduled entrypoint for the expiry reminder sweep."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.workers.expiry_reminders import ExpiryReminderWorker

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def run_expiry_reminder_sweep(
    *,
    session_factory: SessionFactory,
    triggered_by: str = "cron",
) -> Dict[str, Any]:
    worker = ExpiryReminderWorker(session_factory)
    return await worker.run_once(triggered_by=triggered_by)


__all__ = ["run_expiry_reminder_sweep"]
