"""Expiry reminder operations: manual sweep trigger and status."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from recharge_api.api.dependencies.security import require_operator_api_key
from recharge_api.db.session import async_session
from recharge_api.observability.reminders import get_reminder_store
from recharge_api.services.reminders import get_sweep_guard
from recharge_api.workers.expiry_reminders import ExpiryReminderWorker

router = APIRouter(
    prefix="/reminders",
    tags=["reminders"],
    dependencies=[Depends(require_operator_api_key)],
)


def get_reminder_worker(request: Request) -> ExpiryReminderWorker:
    worker = getattr(request.app.state, "expiry_reminder_worker", None)
    if worker is None:
        worker = ExpiryReminderWorker(async_session)
    return worker


@router.post("/sweep")
async def trigger_sweep(worker: ExpiryReminderWorker = Depends(get_reminder_worker)) -> Dict[str, Any]:
    """Run one sweep now; overlapping with a scheduled sweep yields ``overlapped=true``."""

    return await worker.run_once(triggered_by="api")


@router.get("/status")
async def reminder_status(request: Request) -> Dict[str, Any]:
    worker = getattr(request.app.state, "expiry_reminder_worker", None)
    scheduler = getattr(request.app.state, "job_scheduler", None)
    return {
        "worker_running": bool(worker and worker.is_running),
        "sweep_in_progress": get_sweep_guard().locked,
        "scheduler": scheduler.health() if scheduler else None,
        "metrics": get_reminder_store().snapshot().as_dict(),
    }
