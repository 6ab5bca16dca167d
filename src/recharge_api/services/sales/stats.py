"""Operator dashboard aggregates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.core.settings import settings
from recharge_api.models.plan import Plan
from recharge_api.models.purchase import Purchase, PurchaseStatusEnum
from recharge_api.models.recharge_code import RechargeCode, RechargeCodeStatusEnum


@dataclass(slots=True)
class DashboardStats:
    total_revenue: Decimal
    today_revenue: Decimal
    active_plans: int
    approved_purchases: int
    pending_code_deliveries: int
    expiring_today: int
    available_codes: int

    def as_dict(self) -> dict[str, object]:
        return {
            "total_revenue": str(self.total_revenue),
            "today_revenue": str(self.today_revenue),
            "active_plans": self.active_plans,
            "approved_purchases": self.approved_purchases,
            "pending_code_deliveries": self.pending_code_deliveries,
            "expiring_today": self.expiring_today,
            "available_codes": self.available_codes,
        }


def local_day_bounds(now: datetime, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """Return the UTC start and end of ``now``'s calendar day in ``zone``."""

    local_day = now.astimezone(zone).date()
    start = datetime.combine(local_day, time.min, tzinfo=zone)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _as_decimal(value: object) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value)).quantize(Decimal("0.01"))


async def compute_dashboard_stats(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    timezone_name: str | None = None,
) -> DashboardStats:
    current = now or datetime.now(timezone.utc)
    day_start, day_end = local_day_bounds(current, ZoneInfo(timezone_name or settings.reminder_timezone))

    sold = RechargeCode.status == RechargeCodeStatusEnum.SOLD
    total_revenue = await session.scalar(select(func.sum(RechargeCode.value)).where(sold))
    today_revenue = await session.scalar(
        select(func.sum(RechargeCode.value)).where(
            sold,
            RechargeCode.sold_at >= day_start,
            RechargeCode.sold_at < day_end,
        )
    )
    active_plans = await session.scalar(select(func.count(Plan.id)).where(Plan.is_active.is_(True)))
    approved = await session.scalar(
        select(func.count(Purchase.id)).where(Purchase.status == PurchaseStatusEnum.APPROVED)
    )
    pending = await session.scalar(
        select(func.count(Purchase.id)).where(Purchase.status == PurchaseStatusEnum.PENDING_CODE_DELIVERY)
    )
    expiring_today = await session.scalar(
        select(func.count(Purchase.id)).where(
            Purchase.status == PurchaseStatusEnum.APPROVED,
            Purchase.expires_at >= day_start,
            Purchase.expires_at < day_end,
        )
    )
    available = await session.scalar(
        select(func.count(RechargeCode.id)).where(RechargeCode.status == RechargeCodeStatusEnum.AVAILABLE)
    )

    return DashboardStats(
        total_revenue=_as_decimal(total_revenue),
        today_revenue=_as_decimal(today_revenue),
        active_plans=int(active_plans or 0),
        approved_purchases=int(approved or 0),
        pending_code_deliveries=int(pending or 0),
        expiring_today=int(expiring_today or 0),
        available_codes=int(available or 0),
    )
