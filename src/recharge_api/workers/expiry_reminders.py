"""Worker wiring for periodic expiry reminder sweeps."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from recharge_api.core.settings import settings
from recharge_api.models.expiry_reminder_run import ExpiryReminderRun
from recharge_api.services.notifications import MessagingBackend, build_messaging_backend
from recharge_api.services.reminders import ExpiryReminderService

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]
MessagingFactory = Callable[[], MessagingBackend]


class ExpiryReminderWorker:
    """Runs the reminder sweep on a fixed interval after a short warm-up delay."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        messaging_factory: MessagingFactory | None = None,
        interval_seconds: int | None = None,
        initial_delay_seconds: float | None = None,
        trigger_label: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._messaging_factory = messaging_factory or (lambda: build_messaging_backend(settings))
        self.interval_seconds = interval_seconds or settings.expiry_reminder_interval_seconds
        self.initial_delay_seconds = (
            settings.expiry_reminder_initial_delay_seconds if initial_delay_seconds is None else initial_delay_seconds
        )
        self._trigger_label = trigger_label or settings.expiry_reminder_trigger_label
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Expiry reminder worker started",
            interval_seconds=self.interval_seconds,
            initial_delay_seconds=self.initial_delay_seconds,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Expiry reminder worker stopped")

    async def run_once(self, *, triggered_by: str | None = None, now: datetime | None = None) -> Dict[str, object]:
        """Execute one sweep and persist a run record."""

        messaging = self._messaging_factory()
        trigger = triggered_by or self._trigger_label

        session = await self._ensure_session()
        async with session as managed_session:
            run = ExpiryReminderRun(triggered_by=trigger, status="running")
            managed_session.add(run)
            await managed_session.commit()
            await managed_session.refresh(run)
            run_id = str(run.id)

            service = ExpiryReminderService(managed_session, messaging)
            try:
                summary = await service.sweep(now=now)
                run.status = "skipped" if summary.overlapped else "completed"
                run.completed_at = datetime.now(timezone.utc)
                run.candidate_count = summary.candidates
                run.sent_count = summary.sent
                run.failed_count = summary.failed
                run.skipped_count = summary.skipped
                run.metadata_json = self._build_run_metadata(trigger, messaging, summary.as_dict())
                managed_session.add(run)
                await managed_session.commit()
            except Exception as exc:
                await managed_session.rollback()
                run.status = "failed"
                run.completed_at = datetime.now(timezone.utc)
                run.error_message = str(exc)
                run.metadata_json = self._build_run_metadata(trigger, messaging, {"error": str(exc)})
                managed_session.add(run)
                await managed_session.commit()
                logger.exception("Expiry reminder sweep failed", run_id=run_id, error=str(exc))
                raise

        result = summary.as_dict()
        result["run_id"] = run_id
        return result

    async def _run_loop(self) -> None:
        if self.initial_delay_seconds > 0 and await self._wait(self.initial_delay_seconds):
            return
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("Expiry reminder iteration failed", error=str(exc))
            if await self._wait(self.interval_seconds):
                return

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True when stop was requested."""

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session

    def _build_run_metadata(
        self,
        trigger: str,
        messaging: MessagingBackend,
        details: Dict[str, object],
    ) -> Dict[str, object]:
        metadata: Dict[str, object] = {
            "triggered_by": trigger,
            "messaging_provider": getattr(messaging, "provider_label", "unknown"),
        }
        metadata.update(details)
        return metadata
