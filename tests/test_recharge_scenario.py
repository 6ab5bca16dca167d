"""Full lifecycle: import, sell past exhaustion, resolve manually, remind before expiry."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from recharge_api.services.inventory import CodeInventoryService
from recharge_api.services.notifications import InMemoryMessagingBackend
from recharge_api.services.reminders import ExpiryReminderService, SweepGuard
from recharge_api.services.sales import AssignOutcome, BuyerInfo, SaleOrchestrator, SaleOutcome, compute_dashboard_stats

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_sell_out_and_manual_recovery(session_factory, make_plan):
    plan = await make_plan(session_factory, value="29.90", validity_days=30)

    async with session_factory() as session:
        imported = await CodeInventoryService(session).import_codes(plan.id, ["c1c1c1c1", "c2c2c2c2"], now=NOW)
    assert imported.inserted_count == 2

    outcomes = {}
    for offset, name in enumerate(["Buyer A", "Buyer B", "Buyer C"]):
        async with session_factory() as session:
            outcomes[name] = await SaleOrchestrator(session).sell(
                plan.id,
                BuyerInfo(name=name, phone=f"1190000000{offset}"),
                now=NOW + timedelta(minutes=offset),
            )

    assert outcomes["Buyer A"].outcome is SaleOutcome.APPROVED
    assert outcomes["Buyer A"].purchase.recharge_code == "C1C1 C1C1"
    assert outcomes["Buyer B"].purchase.recharge_code == "C2C2 C2C2"
    assert outcomes["Buyer C"].outcome is SaleOutcome.PENDING_CODE_DELIVERY

    async with session_factory() as session:
        restock = await CodeInventoryService(session).import_codes(plan.id, ["c3c3c3c3"], now=NOW + timedelta(hours=1))
    async with session_factory() as session:
        assigned = await SaleOrchestrator(session).assign_code(
            outcomes["Buyer C"].purchase.id,
            restock.inserted[0].id,
            now=NOW + timedelta(hours=1),
        )
    assert assigned.outcome is AssignOutcome.ASSIGNED

    async with session_factory() as session:
        summary = await CodeInventoryService(session).summarize(plan.id)
        stats = await compute_dashboard_stats(session, now=NOW + timedelta(hours=2), timezone_name="UTC")
    assert summary.as_dict() == {"available": 0, "sold": 3, "expired": 0, "total": 3}
    assert stats.pending_code_deliveries == 0
    assert stats.approved_purchases == 3
    assert stats.total_revenue == Decimal("89.70")

    # Three days before expiry every buyer gets exactly one reminder.
    messaging = InMemoryMessagingBackend()
    reminder_day = NOW + timedelta(days=27)
    async with session_factory() as session:
        sweep = await ExpiryReminderService(session, messaging, timezone_name="UTC", guard=SweepGuard()).sweep(
            now=reminder_day
        )
    assert sweep.sent == 3
    assert sorted(phone for phone, _ in messaging.sent_messages) == ["11900000000", "11900000001", "11900000002"]

    async with session_factory() as session:
        repeat = await ExpiryReminderService(session, messaging, timezone_name="UTC", guard=SweepGuard()).sweep(
            now=reminder_day + timedelta(hours=3)
        )
    assert repeat.sent == 0
    assert repeat.skipped == 3
