"""Checkout: payment authorization, sale allocation and customer notification."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.core.settings import settings
from recharge_api.services.notifications import (
    MessagingBackend,
    render_pending_code,
    render_purchase_confirmation,
)
from recharge_api.services.payments import PaymentGateway, PaymentRequest
from .orchestrator import BuyerInfo, SaleOrchestrator, SaleResult


class CheckoutStatus(str, Enum):
    APPROVED = "approved"
    PENDING_CODE_DELIVERY = "pending_code_delivery"
    REJECTED = "rejected"


@dataclass(slots=True)
class CheckoutRequest:
    plan_id: UUID
    buyer: BuyerInfo


@dataclass(slots=True)
class CheckoutResult:
    status: CheckoutStatus
    payment_id: str
    purchase_id: UUID | None = None
    recharge_code: str | None = None
    error_code: str | None = None
    notification_sent: bool = False


class CheckoutService:
    """Charge first, then sell; rejected payments never touch inventory."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        gateway: PaymentGateway,
        messaging: MessagingBackend | None = None,
        orchestrator: SaleOrchestrator | None = None,
        notifications_enabled: bool | None = None,
        dispatch_timeout_seconds: float | None = None,
        company_name: str | None = None,
    ) -> None:
        self._session = session
        self._gateway = gateway
        self._messaging = messaging
        self._orchestrator = orchestrator or SaleOrchestrator(session)
        self._notifications_enabled = (
            settings.sale_notifications_enabled if notifications_enabled is None else notifications_enabled
        )
        self._dispatch_timeout = dispatch_timeout_seconds or settings.messaging_timeout_seconds
        self._company_name = company_name or settings.company_name

    async def process(self, request: CheckoutRequest) -> CheckoutResult:
        plan = await self._orchestrator.inventory.get_plan(request.plan_id)
        plan_id, plan_name, amount = plan.id, plan.name, plan.value
        # Do not hold a database transaction across the gateway round-trip.
        await self._session.commit()

        decision = await self._gateway.authorize(
            PaymentRequest(
                plan_id=plan_id,
                amount=amount,
                payment_method=request.buyer.payment_method,
                customer_name=request.buyer.name,
                customer_email=request.buyer.email,
            )
        )
        if not decision.approved:
            logger.info(
                "Checkout payment rejected",
                plan_id=str(plan_id),
                payment_id=decision.payment_id,
                error_code=decision.error_code,
            )
            return CheckoutResult(
                status=CheckoutStatus.REJECTED,
                payment_id=decision.payment_id,
                error_code=decision.error_code or "PAYMENT_REJECTED",
            )

        buyer = replace(request.buyer, payment_id=decision.payment_id)
        sale = await self._orchestrator.sell(plan_id, buyer)
        notified = await self._notify(sale, buyer, plan_name)

        return CheckoutResult(
            status=CheckoutStatus.APPROVED if sale.success else CheckoutStatus.PENDING_CODE_DELIVERY,
            payment_id=decision.payment_id,
            purchase_id=sale.purchase.id,
            recharge_code=sale.purchase.recharge_code or None,
            notification_sent=notified,
        )

    async def _notify(self, sale: SaleResult, buyer: BuyerInfo, plan_name: str) -> bool:
        if not self._notifications_enabled or self._messaging is None:
            return False

        if sale.success:
            message = render_purchase_confirmation(
                customer_name=buyer.name,
                plan_name=plan_name,
                recharge_code=sale.purchase.recharge_code,
                expires_at=sale.purchase.expires_at,
                company_name=self._company_name,
            )
        else:
            message = render_pending_code(
                customer_name=buyer.name,
                plan_name=plan_name,
                company_name=self._company_name,
            )

        try:
            result = await asyncio.wait_for(
                self._messaging.send(buyer.phone, message),
                timeout=self._dispatch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Sale notification timed out", purchase_id=str(sale.purchase.id))
            return False
        except Exception as exc:
            logger.exception("Sale notification failed", purchase_id=str(sale.purchase.id), error=str(exc))
            return False

        if not result.success:
            logger.warning(
                "Sale notification not delivered",
                purchase_id=str(sale.purchase.id),
                error=result.error,
            )
        return result.success
