import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from recharge_api.models.purchase import (
    NO_AVAILABLE_CODES,
    Purchase,
    PurchaseStatusEnum,
    ReminderStage,
)
from recharge_api.models.recharge_code import RechargeCode, RechargeCodeStatusEnum
from recharge_api.services.inventory import CodeInventoryService, PlanNotFoundError
from recharge_api.services.sales import AssignOutcome, BuyerInfo, SaleOrchestrator, SaleOutcome

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _buyer(name: str = "Ana Souza") -> BuyerInfo:
    return BuyerInfo(name=name, phone="11987654321", email="ana@example.com")


async def _import(session_factory, plan_id, codes):
    async with session_factory() as session:
        return await CodeInventoryService(session).import_codes(plan_id, codes)


@pytest.mark.asyncio
async def test_sell_allocates_code_and_approves_purchase(session_factory, make_plan):
    plan = await make_plan(session_factory, value="29.90", validity_days=30)
    imported = await _import(session_factory, plan.id, ["aaaa1111"])

    async with session_factory() as session:
        result = await SaleOrchestrator(session).sell(plan.id, _buyer(), now=NOW)

    assert result.outcome is SaleOutcome.APPROVED
    assert result.success is True
    purchase = result.purchase
    assert purchase.status == PurchaseStatusEnum.APPROVED
    assert purchase.recharge_code == "AAAA 1111"
    assert purchase.assigned_code_id == imported.inserted[0].id
    assert purchase.amount == Decimal("29.90")
    assert purchase.approved_at == NOW
    assert purchase.expires_at == NOW + timedelta(days=30)
    assert purchase.customer_data == {"name": "Ana Souza", "email": "ana@example.com", "phone": "11987654321"}
    assert all(not purchase.expiry_reminders[stage.value]["sent"] for stage in ReminderStage)

    async with session_factory() as session:
        code = await session.get(RechargeCode, imported.inserted[0].id)
        assert code.status == RechargeCodeStatusEnum.SOLD
        assert code.sold_at is not None


@pytest.mark.asyncio
async def test_sell_falls_back_to_pending_delivery_when_pool_is_empty(session_factory, make_plan):
    plan = await make_plan(session_factory, value="19.90")

    async with session_factory() as session:
        result = await SaleOrchestrator(session).sell(plan.id, _buyer(), now=NOW)

    assert result.outcome is SaleOutcome.PENDING_CODE_DELIVERY
    assert result.success is False
    assert result.code is None
    purchase = result.purchase
    assert purchase.status == PurchaseStatusEnum.PENDING_CODE_DELIVERY
    assert purchase.recharge_code == ""
    assert purchase.assigned_code_id is None
    assert purchase.code_delivery_failure_reason == NO_AVAILABLE_CODES
    assert purchase.amount == Decimal("19.90")

    async with session_factory() as session:
        orchestrator = SaleOrchestrator(session)
        pending = await orchestrator.list_pending_deliveries()
        assert [item.id for item in pending] == [purchase.id]
        assert await orchestrator.count_pending_deliveries() == 1


@pytest.mark.asyncio
async def test_sell_for_unknown_plan_raises(session_factory):
    async with session_factory() as session:
        with pytest.raises(PlanNotFoundError):
            await SaleOrchestrator(session).sell(uuid4(), _buyer())


@pytest.mark.asyncio
async def test_concurrent_sales_never_share_the_last_code(file_session_factory, make_plan):
    plan = await make_plan(file_session_factory)
    await _import(file_session_factory, plan.id, ["last1111"])

    async def _sell(name: str):
        async with file_session_factory() as session:
            return await SaleOrchestrator(session).sell(plan.id, _buyer(name))

    results = await asyncio.gather(_sell("Buyer One"), _sell("Buyer Two"))

    outcomes = sorted(result.outcome.value for result in results)
    assert outcomes == [SaleOutcome.APPROVED.value, SaleOutcome.PENDING_CODE_DELIVERY.value]

    async with file_session_factory() as session:
        purchases = (await session.scalars(select(Purchase))).all()
        assigned = [purchase.assigned_code_id for purchase in purchases if purchase.assigned_code_id]
        assert len(purchases) == 2
        assert len(assigned) == 1
        code = (await session.scalars(select(RechargeCode))).one()
        assert code.status == RechargeCodeStatusEnum.SOLD


@pytest.mark.asyncio
async def test_assign_code_resolves_pending_delivery(session_factory, make_plan):
    plan = await make_plan(session_factory)

    async with session_factory() as session:
        sale = await SaleOrchestrator(session).sell(plan.id, _buyer(), now=NOW)
    pending = sale.purchase

    imported = await _import(session_factory, plan.id, ["new11111"])
    code_id = imported.inserted[0].id
    assigned_at = NOW + timedelta(hours=2)

    async with session_factory() as session:
        result = await SaleOrchestrator(session).assign_code(pending.id, code_id, now=assigned_at)

    assert result.outcome is AssignOutcome.ASSIGNED
    assert result.success is True
    purchase = result.purchase
    assert purchase.status == PurchaseStatusEnum.APPROVED
    assert purchase.recharge_code == "NEW1 1111"
    assert purchase.assigned_code_id == code_id
    assert purchase.code_delivery_failure_reason is None
    assert purchase.approved_at.replace(tzinfo=None) == assigned_at.replace(tzinfo=None)
    assert purchase.expires_at.replace(tzinfo=None) == pending.expires_at.replace(tzinfo=None)
    assert all(not purchase.expiry_reminders[stage.value]["sent"] for stage in ReminderStage)
    assert result.code.status == RechargeCodeStatusEnum.SOLD


@pytest.mark.asyncio
async def test_assign_code_retry_is_rejected_without_side_effects(session_factory, make_plan):
    plan = await make_plan(session_factory)

    async with session_factory() as session:
        sale = await SaleOrchestrator(session).sell(plan.id, _buyer())
    imported = await _import(session_factory, plan.id, ["one11111", "two22222"])
    first_id, second_id = (code.id for code in imported.inserted)

    async with session_factory() as session:
        first = await SaleOrchestrator(session).assign_code(sale.purchase.id, first_id)
    async with session_factory() as session:
        retry = await SaleOrchestrator(session).assign_code(sale.purchase.id, second_id)

    assert first.outcome is AssignOutcome.ASSIGNED
    assert retry.outcome is AssignOutcome.PURCHASE_NOT_PENDING
    assert retry.purchase is None

    async with session_factory() as session:
        second = await session.get(RechargeCode, second_id)
        purchase = await session.get(Purchase, sale.purchase.id)
        assert second.status == RechargeCodeStatusEnum.AVAILABLE
        assert purchase.assigned_code_id == first_id


@pytest.mark.asyncio
async def test_assign_code_rejects_sold_code_and_foreign_plan(session_factory, make_plan):
    plan = await make_plan(session_factory)
    other_plan = await make_plan(session_factory, name="Other")

    async with session_factory() as session:
        sale = await SaleOrchestrator(session).sell(plan.id, _buyer())
    foreign = await _import(session_factory, other_plan.id, ["frgn1111"])
    sold = await _import(session_factory, plan.id, ["sold2222"])

    async with session_factory() as session:
        await CodeInventoryService(session).allocate_one(plan.id)
        await session.commit()

    async with session_factory() as session:
        orchestrator = SaleOrchestrator(session)
        mismatch = await orchestrator.assign_code(sale.purchase.id, foreign.inserted[0].id)
        unavailable = await orchestrator.assign_code(sale.purchase.id, sold.inserted[0].id)
        missing_code = await orchestrator.assign_code(sale.purchase.id, uuid4())
        missing_purchase = await orchestrator.assign_code(uuid4(), sold.inserted[0].id)

    assert mismatch.outcome is AssignOutcome.CODE_PLAN_MISMATCH
    assert unavailable.outcome is AssignOutcome.CODE_NOT_AVAILABLE
    assert missing_code.outcome is AssignOutcome.CODE_NOT_FOUND
    assert missing_purchase.outcome is AssignOutcome.PURCHASE_NOT_FOUND

    async with session_factory() as session:
        purchase = await session.get(Purchase, sale.purchase.id)
        foreign_code = await session.get(RechargeCode, foreign.inserted[0].id)
        assert purchase.status == PurchaseStatusEnum.PENDING_CODE_DELIVERY
        assert foreign_code.status == RechargeCodeStatusEnum.AVAILABLE


@pytest.mark.asyncio
async def test_failed_purchase_insert_releases_allocated_code(session_factory, make_plan, monkeypatch):
    plan = await make_plan(session_factory)
    imported = await _import(session_factory, plan.id, ["keep1111"])

    def _incomplete_purchase(self, plan, buyer, timestamp):
        return Purchase(id=uuid4(), plan_id=plan.id, customer_id=None, payment_id=None, expires_at=timestamp)

    monkeypatch.setattr(SaleOrchestrator, "_new_purchase", _incomplete_purchase)

    async with session_factory() as session:
        with pytest.raises(IntegrityError):
            await SaleOrchestrator(session).sell(plan.id, _buyer(), now=NOW)

    async with session_factory() as session:
        code = await session.get(RechargeCode, imported.inserted[0].id)
        assert code.status == RechargeCodeStatusEnum.AVAILABLE
        assert code.sold_at is None
        assert await session.scalar(select(func.count(Purchase.id))) == 0


@pytest.mark.asyncio
async def test_concurrent_assignments_never_share_a_code(file_session_factory, make_plan):
    plan = await make_plan(file_session_factory)

    pending_ids = []
    for name in ("Waiting One", "Waiting Two"):
        async with file_session_factory() as session:
            sale = await SaleOrchestrator(session).sell(plan.id, _buyer(name))
            pending_ids.append(sale.purchase.id)
    imported = await _import(file_session_factory, plan.id, ["only1111"])
    code_id = imported.inserted[0].id

    async def _assign(purchase_id):
        async with file_session_factory() as session:
            return await SaleOrchestrator(session).assign_code(purchase_id, code_id)

    results = await asyncio.gather(*(_assign(purchase_id) for purchase_id in pending_ids))

    outcomes = sorted(result.outcome.value for result in results)
    assert outcomes == [AssignOutcome.ASSIGNED.value, AssignOutcome.CODE_NOT_AVAILABLE.value]

    async with file_session_factory() as session:
        purchases = (await session.scalars(select(Purchase))).all()
        statuses = sorted(purchase.status.value for purchase in purchases)
        assert statuses == [PurchaseStatusEnum.APPROVED.value, PurchaseStatusEnum.PENDING_CODE_DELIVERY.value]
        assert [purchase.assigned_code_id for purchase in purchases if purchase.assigned_code_id] == [code_id]
