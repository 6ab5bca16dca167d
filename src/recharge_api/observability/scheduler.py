"""Observability store for cron job runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class JobMetrics:
    job_id: str
    task: str
    runs: int = 0
    success: int = 0
    run_failures: int = 0
    attempt_failures: int = 0
    retries: int = 0
    consecutive_failures: int = 0
    total_runtime_seconds: float = 0.0
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_attempts: int = 0
    last_retry_delay_seconds: float | None = None

    @property
    def totals(self) -> Dict[str, int]:
        return {
            "runs": self.runs,
            "success": self.success,
            "run_failures": self.run_failures,
            "attempt_failures": self.attempt_failures,
            "retries": self.retries,
            "consecutive_failures": self.consecutive_failures,
        }

    def as_dict(self) -> Dict[str, object]:
        return {
            "job_id": self.job_id,
            "task": self.task,
            "totals": self.totals,
            "total_runtime_seconds": self.total_runtime_seconds,
            "last_started_at": _iso(self.last_started_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error_at": _iso(self.last_error_at),
            "last_error": self.last_error,
            "last_attempts": self.last_attempts,
            "last_retry_delay_seconds": self.last_retry_delay_seconds,
        }


@dataclass
class SchedulerSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, JobMetrics]

    def as_dict(self) -> Dict[str, object]:
        return {"totals": self.totals, "jobs": {job_id: job.as_dict() for job_id, job in self.jobs.items()}}


class JobSchedulerObservabilityStore:
    """Tracks dispatches, retries and failures per scheduled job."""

    def __init__(self) -> None:
        self._lock: Lock = Lock()
        self._jobs: Dict[str, JobMetrics] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _metrics(self, job_id: str, task: str) -> JobMetrics:
        metrics = self._jobs.get(job_id)
        if metrics is None:
            metrics = self._jobs[job_id] = JobMetrics(job_id=job_id, task=task)
        return metrics

    def record_dispatch(self, job_id: str, task: str) -> None:
        with self._lock:
            metrics = self._metrics(job_id, task)
            metrics.runs += 1
            metrics.last_started_at = _utcnow()
            metrics.last_attempts = 0
            metrics.last_retry_delay_seconds = None

    def record_attempt_failure(self, job_id: str, task: str, *, attempts: int, error: str) -> None:
        with self._lock:
            metrics = self._metrics(job_id, task)
            metrics.attempt_failures += 1
            metrics.consecutive_failures += 1
            metrics.last_error = error
            metrics.last_error_at = _utcnow()
            metrics.last_attempts = attempts

    def record_retry(self, job_id: str, task: str, *, delay_seconds: float, attempts: int) -> None:
        with self._lock:
            metrics = self._metrics(job_id, task)
            metrics.retries += 1
            metrics.last_retry_delay_seconds = delay_seconds
            metrics.last_attempts = attempts

    def record_success(self, job_id: str, task: str, *, runtime_seconds: float, attempts: int) -> None:
        with self._lock:
            metrics = self._metrics(job_id, task)
            metrics.success += 1
            metrics.total_runtime_seconds += runtime_seconds
            metrics.last_success_at = _utcnow()
            metrics.last_attempts = attempts
            metrics.consecutive_failures = 0
            metrics.last_error = None
            metrics.last_error_at = None

    def record_run_failure(self, job_id: str, task: str, *, runtime_seconds: float, attempts: int, error: str) -> None:
        with self._lock:
            metrics = self._metrics(job_id, task)
            metrics.run_failures += 1
            metrics.total_runtime_seconds += runtime_seconds
            metrics.last_error = error
            metrics.last_error_at = _utcnow()
            metrics.last_attempts = attempts

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            jobs = {job_id: JobMetrics(**vars(metrics)) for job_id, metrics in self._jobs.items()}
        totals = {
            key: sum(job.totals[key] for job in jobs.values())
            for key in ("runs", "success", "run_failures", "attempt_failures", "retries")
        }
        return SchedulerSnapshot(totals=totals, jobs=jobs)


_SCHEDULER_STORE = JobSchedulerObservabilityStore()


def get_job_scheduler_store() -> JobSchedulerObservabilityStore:
    return _SCHEDULER_STORE


__all__ = ["JobMetrics", "JobSchedulerObservabilityStore", "SchedulerSnapshot", "get_job_scheduler_store"]
