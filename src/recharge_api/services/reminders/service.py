"""Expiry reminder sweep: stage detection, dispatch and idempotent ledger updates."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict
from uuid import UUID
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.core.settings import settings
from recharge_api.models.plan import Plan
from recharge_api.models.purchase import Purchase, PurchaseStatusEnum, ReminderStage
from recharge_api.observability.reminders import get_reminder_store
from recharge_api.services.notifications import DispatchResult, MessagingBackend, render_expiry_reminder
from .stages import days_until_expiry, ensure_aware, is_stage_sent, mark_stage_sent, stage_for_days


class SweepGuard:
    """Process-wide non-blocking lock serializing sweeps."""

    def __init__(self) -> None:
        self._lock = Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def locked(self) -> bool:
        return self._lock.locked()


_SWEEP_GUARD = SweepGuard()


def get_sweep_guard() -> SweepGuard:
    return _SWEEP_GUARD


@dataclass(slots=True)
class ReminderSweepSummary:
    candidates: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    not_due: int = 0
    overlapped: bool = False

    def as_dict(self) -> Dict[str, object]:
        return {
            "candidates": self.candidates,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "not_due": self.not_due,
            "overlapped": self.overlapped,
        }


class ExpiryReminderService:
    """Runs one pass over approved purchases and sends each due reminder stage once."""

    def __init__(
        self,
        session: AsyncSession,
        messaging: MessagingBackend,
        *,
        timezone_name: str | None = None,
        dispatch_timeout_seconds: float | None = None,
        company_name: str | None = None,
        guard: SweepGuard | None = None,
    ) -> None:
        self._session = session
        self._messaging = messaging
        self._zone = ZoneInfo(timezone_name or settings.reminder_timezone)
        self._dispatch_timeout = dispatch_timeout_seconds or settings.messaging_timeout_seconds
        self._company_name = company_name or settings.company_name
        self._guard = guard or get_sweep_guard()
        self._observability = get_reminder_store()

    async def collect_candidates(self, *, now: datetime) -> list[Purchase]:
        stmt = (
            select(Purchase)
            .where(
                Purchase.status == PurchaseStatusEnum.APPROVED,
                Purchase.recharge_code != "",
                Purchase.expires_at > now,
            )
            .order_by(Purchase.expires_at, Purchase.id)
        )
        return list((await self._session.scalars(stmt)).all())

    async def sweep(self, *, now: datetime | None = None) -> ReminderSweepSummary:
        """Send every due, unsent stage; a failed dispatch stays unsent for the next sweep.

        Returns immediately with ``overlapped=True`` when another sweep holds
        the guard.
        """

        if not self._guard.acquire():
            logger.warning("Expiry reminder sweep already in progress; skipping")
            self._observability.record_overlap()
            return ReminderSweepSummary(overlapped=True)

        try:
            summary = await self._sweep(ensure_aware(now or datetime.now(timezone.utc)))
        except Exception as exc:
            self._observability.record_sweep_failure(str(exc))
            raise
        finally:
            self._guard.release()

        self._observability.record_sweep(summary.as_dict())
        logger.info("Expiry reminder sweep completed", **summary.as_dict())
        return summary

    async def _sweep(self, now: datetime) -> ReminderSweepSummary:
        summary = ReminderSweepSummary()
        candidates = await self.collect_candidates(now=now)
        summary.candidates = len(candidates)
        if not candidates:
            return summary

        plans = await self._load_plans({purchase.plan_id for purchase in candidates})
        # End the read transaction; no locks are held across gateway calls.
        await self._session.commit()

        for purchase in candidates:
            days = days_until_expiry(purchase.expires_at, now, self._zone)
            stage = stage_for_days(days)
            if stage is None:
                summary.not_due += 1
                continue
            if is_stage_sent(purchase.expiry_reminders, stage):
                summary.skipped += 1
                continue

            plan = plans.get(purchase.plan_id)
            customer = purchase.customer_data or {}
            phone = customer.get("phone") if isinstance(customer, dict) else None
            if plan is None or not phone:
                logger.warning(
                    "Expiry reminder skipped for incomplete purchase",
                    purchase_id=str(purchase.id),
                    plan_missing=plan is None,
                    phone_missing=not phone,
                    stage=stage.value,
                )
                summary.skipped += 1
                continue

            message = render_expiry_reminder(
                customer_name=customer.get("name"),
                plan_name=plan.name,
                days_until_expiry=days,
                expires_on=ensure_aware(purchase.expires_at).astimezone(self._zone).date(),
                company_name=self._company_name,
            )
            result = await self._dispatch(purchase.id, stage, phone, message)
            if not result.success:
                summary.failed += 1
                continue

            try:
                purchase.expiry_reminders = mark_stage_sent(
                    purchase.expiry_reminders,
                    stage,
                    sent_at=now,
                    message_id=result.message_id,
                )
                await self._session.commit()
            except Exception:
                await self._session.rollback()
                raise
            summary.sent += 1

        return summary

    async def _dispatch(
        self,
        purchase_id: UUID,
        stage: ReminderStage,
        phone: str,
        message: str,
    ) -> DispatchResult:
        """Send one reminder; timeouts and raised errors come back as failed results."""

        try:
            result = await asyncio.wait_for(self._messaging.send(phone, message), timeout=self._dispatch_timeout)
        except asyncio.TimeoutError:
            logger.warning("Expiry reminder dispatch timed out", purchase_id=str(purchase_id), stage=stage.value)
            self._observability.record_dispatch(stage.value, success=False, error="timeout")
            return DispatchResult(success=False, error="timeout")
        except Exception as exc:
            logger.exception(
                "Expiry reminder dispatch raised",
                purchase_id=str(purchase_id),
                stage=stage.value,
                error=str(exc),
            )
            self._observability.record_dispatch(stage.value, success=False, error=str(exc))
            return DispatchResult(success=False, error=str(exc))

        if not result.success:
            logger.warning(
                "Expiry reminder not delivered",
                purchase_id=str(purchase_id),
                stage=stage.value,
                error=result.error,
            )
            self._observability.record_dispatch(stage.value, success=False, error=result.error)
            return result

        self._observability.record_dispatch(stage.value, success=True)
        logger.info(
            "Expiry reminder sent",
            purchase_id=str(purchase_id),
            stage=stage.value,
            message_id=result.message_id,
        )
        return result

    async def _load_plans(self, plan_ids: set[UUID]) -> dict[UUID, Plan]:
        rows = await self._session.scalars(select(Plan).where(Plan.id.in_(plan_ids)))
        return {plan.id: plan for plan in rows.all()}


__all__ = [
    "ExpiryReminderService",
    "ReminderSweepSummary",
    "SweepGuard",
    "get_sweep_guard",
]
