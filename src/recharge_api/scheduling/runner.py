"""Cron runtime for recurring jobs (expiry reminders and friends)."""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from importlib import import_module
from pathlib import Path
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from recharge_api.observability.scheduler import get_job_scheduler_store
from .config import JobDefinition, ScheduleConfig, load_job_definitions

SessionFactory = Callable[[], Awaitable[Any]] | Callable[[], Any]
JobCallable = Callable[..., Awaitable[Any]]


def backoff_delay(job: JobDefinition, attempt: int) -> float:
    """Delay before retry number ``attempt + 1``, capped and jittered."""

    delay = job.base_backoff_seconds * (job.backoff_multiplier ** (attempt - 1))
    if job.max_backoff_seconds:
        delay = min(delay, job.max_backoff_seconds)
    if job.jitter_seconds:
        delay += random.uniform(0, job.jitter_seconds)
    return max(delay, 0.0)


def resolve_task(task_path: str) -> JobCallable:
    module_name, _, attr = task_path.rpartition(".")
    if not module_name:
        raise ValueError(f"Invalid task path: {task_path}")
    func = getattr(import_module(module_name), attr, None)
    if func is None:
        raise AttributeError(f"Task {task_path} not found")
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"Task {task_path} must be an async function")
    return func


class JobScheduler:
    """Registers TOML-defined jobs on apscheduler cron triggers with retry/backoff."""

    def __init__(self, *, session_factory: SessionFactory, config_path: Path) -> None:
        self._session_factory = session_factory
        self._config_path = config_path
        self._config: ScheduleConfig | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running: bool = False
        self._observability = get_job_scheduler_store()

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        config = load_job_definitions(self._config_path)
        zone = ZoneInfo(config.timezone)
        scheduler = AsyncIOScheduler(timezone=zone)

        for job in config.enabled_jobs:
            scheduler.add_job(
                self._wrap_callable(resolve_task(job.task), job),
                trigger=CronTrigger.from_crontab(job.cron, timezone=zone),
                id=job.id,
                replace_existing=True,
                max_instances=job.max_instances,
                coalesce=True,
            )
            logger.info("Registered scheduled job", job_id=job.id, task=job.task, cron=job.cron)

        scheduler.start()
        self._config = config
        self._scheduler = scheduler
        self._is_running = True
        logger.info("Job scheduler started", jobs=len(config.enabled_jobs), timezone=config.timezone)

    async def stop(self) -> None:
        if not self._scheduler:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        self._is_running = False
        logger.info("Job scheduler stopped")

    def _wrap_callable(self, func: JobCallable, job: JobDefinition) -> Callable[[], Awaitable[None]]:
        async def _runner() -> None:
            self._observability.record_dispatch(job.id, job.task)
            started_at = time.perf_counter()
            max_attempts = max(job.max_attempts, 1)

            for attempt in range(1, max_attempts + 1):
                try:
                    await func(session_factory=self._session_factory, **job.kwargs)
                except Exception as exc:
                    error_message = str(exc)
                    self._observability.record_attempt_failure(job.id, job.task, attempts=attempt, error=error_message)
                    if attempt >= max_attempts:
                        self._observability.record_run_failure(
                            job.id,
                            job.task,
                            runtime_seconds=time.perf_counter() - started_at,
                            attempts=attempt,
                            error=error_message,
                        )
                        logger.exception(
                            "Scheduled job failed after retries",
                            job_id=job.id,
                            attempts=attempt,
                            error=error_message,
                        )
                        return

                    delay = backoff_delay(job, attempt)
                    self._observability.record_retry(job.id, job.task, delay_seconds=delay, attempts=attempt + 1)
                    logger.warning("Scheduled job retrying", job_id=job.id, attempt=attempt + 1, delay_seconds=delay)
                    if delay:
                        await asyncio.sleep(delay)
                    continue

                runtime_seconds = time.perf_counter() - started_at
                self._observability.record_success(
                    job.id,
                    job.task,
                    runtime_seconds=runtime_seconds,
                    attempts=attempt,
                )
                logger.info(
                    "Scheduled job completed",
                    job_id=job.id,
                    attempts=attempt,
                    runtime_seconds=runtime_seconds,
                )
                return

        return _runner

    def health(self) -> dict[str, object]:
        snapshot = self._observability.snapshot()
        configured = self._config.enabled_jobs if self._config else []
        jobs = []
        for job in configured:
            metrics = snapshot.jobs.get(job.id)
            jobs.append(
                {
                    "id": job.id,
                    "task": job.task,
                    "cron": job.cron,
                    "max_attempts": job.max_attempts,
                    "metrics": metrics.as_dict() if metrics else None,
                }
            )
        return {
            "running": self._is_running,
            "configured_jobs": len(configured),
            "totals": snapshot.totals,
            "jobs": jobs,
        }


__all__ = ["JobScheduler", "backoff_delay", "resolve_task"]
