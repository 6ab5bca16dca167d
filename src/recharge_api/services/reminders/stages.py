"""Calendar-day staging for expiry reminders."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Mapping
from zoneinfo import ZoneInfo

from recharge_api.models.purchase import ReminderStage

_STAGE_BY_DAYS: dict[int, ReminderStage] = {
    3: ReminderStage.THREE_DAYS,
    1: ReminderStage.ONE_DAY,
    0: ReminderStage.TODAY,
}


def ensure_aware(value: datetime) -> datetime:
    """Treat naive timestamps (SQLite round-trips) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_until_expiry(expires_at: datetime, now: datetime, zone: ZoneInfo) -> int:
    """Whole calendar days between today and the expiry date, both taken in ``zone``."""

    expiry_day = ensure_aware(expires_at).astimezone(zone).date()
    today = ensure_aware(now).astimezone(zone).date()
    return (expiry_day - today).days


def stage_for_days(days: int) -> ReminderStage | None:
    """Exact-match staging: 3, 1 and 0 days fire; every other count is silent."""

    return _STAGE_BY_DAYS.get(days)


def is_stage_sent(reminders: Mapping[str, Any] | None, stage: ReminderStage) -> bool:
    entry = (reminders or {}).get(stage.value) or {}
    return bool(entry.get("sent"))


def mark_stage_sent(
    reminders: Mapping[str, Any] | None,
    stage: ReminderStage,
    *,
    sent_at: datetime,
    message_id: str | None,
) -> Dict[str, Dict[str, Any]]:
    """Return a fresh ledger with ``stage`` flipped to sent; other stages are preserved."""

    ledger: Dict[str, Dict[str, Any]] = {
        key: dict(value) for key, value in (reminders or {}).items() if isinstance(value, Mapping)
    }
    for known in ReminderStage:
        ledger.setdefault(known.value, {"sent": False})
    ledger[stage.value] = {
        "sent": True,
        "sentAt": ensure_aware(sent_at).isoformat(),
        "messageId": message_id,
    }
    return ledger


__all__ = [
    "days_until_expiry",
    "ensure_aware",
    "is_stage_sent",
    "mark_stage_sent",
    "stage_for_days",
]
