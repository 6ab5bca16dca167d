from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from recharge_api.api.v1.endpoints.reminders import get_reminder_worker
from recharge_api.models.purchase import Purchase, PurchaseStatusEnum
from recharge_api.services.notifications import InMemoryMessagingBackend
from recharge_api.workers.expiry_reminders import ExpiryReminderWorker


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_manual_sweep_sends_due_reminders(app_with_db, make_plan) -> None:
    app, session_factory = app_with_db
    plan = await make_plan(session_factory)
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        session.add(
            Purchase(
                id=uuid4(),
                customer_id="customer-api",
                plan_id=plan.id,
                recharge_code="ABCD 1234",
                amount=Decimal("29.90"),
                payment_id="pay_api",
                status=PurchaseStatusEnum.APPROVED,
                customer_data={"name": "Gil", "phone": "11933332222"},
                approved_at=now - timedelta(days=29),
                expires_at=now + timedelta(days=1),
            )
        )
        await session.commit()

    messaging = InMemoryMessagingBackend()
    worker = ExpiryReminderWorker(session_factory, messaging_factory=lambda: messaging)
    app.dependency_overrides[get_reminder_worker] = lambda: worker

    async with _client(app) as client:
        first = await client.post("/api/v1/reminders/sweep")
        second = await client.post("/api/v1/reminders/sweep")
        status = await client.get("/api/v1/reminders/status")

    assert first.status_code == 200
    assert first.json()["sent"] == 1
    assert first.json()["run_id"]
    assert second.json()["sent"] == 0
    assert second.json()["skipped"] == 1
    assert len(messaging.sent_messages) == 1

    payload = status.json()
    assert payload["worker_running"] is False
    assert payload["sweep_in_progress"] is False
    assert payload["scheduler"] is None
    assert payload["metrics"]["totals"]["sweeps"] == 2
    assert payload["metrics"]["totals"]["sent"] == 1
