"""Sale allocation with pending-delivery fallback and manual resolution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.core.logging import mask_code
from recharge_api.models.plan import Plan
from recharge_api.models.purchase import (
    NO_AVAILABLE_CODES,
    PaymentMethodEnum,
    Purchase,
    PurchaseStatusEnum,
    default_expiry_reminders,
)
from recharge_api.models.recharge_code import RechargeCode, RechargeCodeStatusEnum
from recharge_api.services.inventory import CodeInventoryService


class SaleOutcome(str, Enum):
    APPROVED = "approved"
    PENDING_CODE_DELIVERY = "pending_code_delivery"


class AssignOutcome(str, Enum):
    ASSIGNED = "assigned"
    PURCHASE_NOT_FOUND = "purchase_not_found"
    PURCHASE_NOT_PENDING = "purchase_not_pending"
    CODE_NOT_FOUND = "code_not_found"
    CODE_PLAN_MISMATCH = "code_plan_mismatch"
    CODE_NOT_AVAILABLE = "code_not_available"


@dataclass(slots=True)
class BuyerInfo:
    """Customer details captured at sale time."""

    name: str
    phone: str
    email: str = ""
    customer_id: str | None = None
    reseller_id: str | None = None
    payment_method: PaymentMethodEnum = PaymentMethodEnum.CREDIT_CARD
    payment_id: str | None = None

    def snapshot(self) -> dict[str, str]:
        return {"name": self.name, "email": self.email, "phone": self.phone}


@dataclass(slots=True)
class SaleResult:
    outcome: SaleOutcome
    purchase: Purchase
    code: RechargeCode | None = None

    @property
    def success(self) -> bool:
        return self.outcome is SaleOutcome.APPROVED


@dataclass(slots=True)
class AssignResult:
    """Manual assignment outcome; ORM objects are populated only on success."""

    outcome: AssignOutcome
    purchase_id: UUID
    code_id: UUID
    purchase: Purchase | None = None
    code: RechargeCode | None = None

    @property
    def success(self) -> bool:
        return self.outcome is AssignOutcome.ASSIGNED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SaleOrchestrator:
    """Turns a paid sale into an approved purchase or a pending delivery."""

    def __init__(self, session: AsyncSession, *, inventory: CodeInventoryService | None = None) -> None:
        self._session = session
        self.inventory = inventory or CodeInventoryService(session)

    async def sell(self, plan_id: UUID, buyer: BuyerInfo, *, now: datetime | None = None) -> SaleResult:
        """Allocate a code for the buyer, falling back to the pending queue when the pool is empty.

        The code flip and the purchase row commit together; a storage failure
        rolls both back and propagates.
        """

        timestamp = now or _utcnow()
        plan = await self.inventory.get_plan(plan_id)

        try:
            code = await self.inventory.allocate_one(plan.id, now=timestamp)
            purchase = self._new_purchase(plan, buyer, timestamp)
            if code is not None:
                purchase.status = PurchaseStatusEnum.APPROVED
                purchase.recharge_code = code.code
                purchase.assigned_code_id = code.id
                purchase.amount = code.value
                purchase.approved_at = timestamp
            else:
                purchase.status = PurchaseStatusEnum.PENDING_CODE_DELIVERY
                purchase.recharge_code = ""
                purchase.code_delivery_failure_reason = NO_AVAILABLE_CODES
                purchase.amount = plan.value

            self._session.add(purchase)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        if code is not None:
            logger.info(
                "Sale approved",
                purchase_id=str(purchase.id),
                plan_id=str(plan.id),
                code_id=str(code.id),
                code=mask_code(code.code),
            )
            return SaleResult(outcome=SaleOutcome.APPROVED, purchase=purchase, code=code)

        logger.warning(
            "Sale queued for manual code delivery",
            purchase_id=str(purchase.id),
            plan_id=str(plan.id),
            reason=NO_AVAILABLE_CODES,
        )
        return SaleResult(outcome=SaleOutcome.PENDING_CODE_DELIVERY, purchase=purchase)

    async def assign_code(
        self,
        purchase_id: UUID,
        code_id: UUID,
        *,
        now: datetime | None = None,
    ) -> AssignResult:
        """Resolve a pending delivery with an operator-chosen code."""

        timestamp = now or _utcnow()

        def _fail(outcome: AssignOutcome) -> AssignResult:
            logger.info(
                "Manual code assignment rejected",
                purchase_id=str(purchase_id),
                code_id=str(code_id),
                outcome=outcome.value,
            )
            return AssignResult(outcome=outcome, purchase_id=purchase_id, code_id=code_id)

        purchase = await self._session.get(Purchase, purchase_id, populate_existing=True)
        if purchase is None:
            return _fail(AssignOutcome.PURCHASE_NOT_FOUND)
        if purchase.status != PurchaseStatusEnum.PENDING_CODE_DELIVERY:
            return _fail(AssignOutcome.PURCHASE_NOT_PENDING)

        code = await self._session.get(RechargeCode, code_id, populate_existing=True)
        if code is None:
            return _fail(AssignOutcome.CODE_NOT_FOUND)
        if code.plan_id != purchase.plan_id:
            return _fail(AssignOutcome.CODE_PLAN_MISMATCH)
        if code.status != RechargeCodeStatusEnum.AVAILABLE:
            return _fail(AssignOutcome.CODE_NOT_AVAILABLE)

        try:
            claimed = await self.inventory.claim_code(code_id, now=timestamp)
            if claimed is None:
                await self._session.rollback()
                return _fail(AssignOutcome.CODE_NOT_AVAILABLE)

            result = await self._session.execute(
                update(Purchase)
                .where(
                    Purchase.id == purchase_id,
                    Purchase.status == PurchaseStatusEnum.PENDING_CODE_DELIVERY,
                )
                .values(
                    status=PurchaseStatusEnum.APPROVED,
                    recharge_code=claimed.code,
                    assigned_code_id=claimed.id,
                    approved_at=timestamp,
                    code_delivery_failure_reason=None,
                    expiry_reminders=default_expiry_reminders(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self._session.rollback()
                return _fail(AssignOutcome.PURCHASE_NOT_PENDING)

            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        purchase = await self._session.get(Purchase, purchase_id, populate_existing=True)
        code = await self._session.get(RechargeCode, code_id, populate_existing=True)
        logger.info(
            "Pending delivery resolved manually",
            purchase_id=str(purchase_id),
            code_id=str(code_id),
            code=mask_code(code.code if code else None),
        )
        return AssignResult(
            outcome=AssignOutcome.ASSIGNED,
            purchase_id=purchase_id,
            code_id=code_id,
            purchase=purchase,
            code=code,
        )

    async def list_pending_deliveries(
        self,
        *,
        plan_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Purchase]:
        stmt = select(Purchase).where(Purchase.status == PurchaseStatusEnum.PENDING_CODE_DELIVERY)
        if plan_id is not None:
            stmt = stmt.where(Purchase.plan_id == plan_id)
        stmt = stmt.order_by(Purchase.created_at.desc(), Purchase.id).limit(limit).offset(offset)
        return list((await self._session.scalars(stmt)).all())

    async def count_pending_deliveries(self) -> int:
        total = await self._session.scalar(
            select(func.count(Purchase.id)).where(Purchase.status == PurchaseStatusEnum.PENDING_CODE_DELIVERY)
        )
        return int(total or 0)

    def _new_purchase(self, plan: Plan, buyer: BuyerInfo, timestamp: datetime) -> Purchase:
        return Purchase(
            id=uuid4(),
            customer_id=buyer.customer_id or f"customer-{uuid4().hex[:12]}",
            plan_id=plan.id,
            reseller_id=buyer.reseller_id or "system",
            payment_method=buyer.payment_method,
            payment_id=buyer.payment_id or f"pay_{uuid4().hex[:16]}",
            customer_data=buyer.snapshot(),
            expiry_reminders=default_expiry_reminders(),
            created_at=timestamp,
            expires_at=timestamp + timedelta(days=plan.validity_days or 30),
        )


__all__ = [
    "AssignOutcome",
    "AssignResult",
    "BuyerInfo",
    "SaleOrchestrator",
    "SaleOutcome",
    "SaleResult",
]
