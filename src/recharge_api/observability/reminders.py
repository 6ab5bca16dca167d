"""Observability store for expiry reminder sweeps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReminderSnapshot:
    """Serializable snapshot of reminder metrics."""

    totals: Dict[str, int]
    dispatches: Dict[str, Dict[str, int]]
    last_sweep_at: datetime | None
    last_sweep_summary: Dict[str, object] | None
    last_error: str | None

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": self.totals,
            "dispatches": self.dispatches,
            "last_sweep_at": self.last_sweep_at.isoformat() if self.last_sweep_at else None,
            "last_sweep_summary": self.last_sweep_summary,
            "last_error": self.last_error,
        }


@dataclass
class _StageCounters:
    sent: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"sent": self.sent, "failed": self.failed}


@dataclass
class _ReminderState:
    sweeps: int = 0
    overlaps: int = 0
    sweep_failures: int = 0
    stages: Dict[str, _StageCounters] = field(default_factory=dict)
    last_sweep_at: datetime | None = None
    last_sweep_summary: Dict[str, object] | None = None
    last_error: str | None = None


class ReminderObservabilityStore:
    """Tracks sweep and per-stage dispatch counts in memory."""

    def __init__(self) -> None:
        self._lock: Lock = Lock()
        self._state = _ReminderState()

    def reset(self) -> None:
        with self._lock:
            self._state = _ReminderState()

    def record_sweep(self, summary: Dict[str, object]) -> None:
        with self._lock:
            self._state.sweeps += 1
            self._state.last_sweep_at = _utcnow()
            self._state.last_sweep_summary = dict(summary)

    def record_overlap(self) -> None:
        with self._lock:
            self._state.overlaps += 1

    def record_sweep_failure(self, error: str) -> None:
        with self._lock:
            self._state.sweep_failures += 1
            self._state.last_error = error

    def record_dispatch(self, stage: str, *, success: bool, error: str | None = None) -> None:
        with self._lock:
            counters = self._state.stages.setdefault(stage, _StageCounters())
            if success:
                counters.sent += 1
            else:
                counters.failed += 1
                self._state.last_error = error

    def snapshot(self) -> ReminderSnapshot:
        with self._lock:
            stages = {stage: counters.as_dict() for stage, counters in self._state.stages.items()}
            totals = {
                "sweeps": self._state.sweeps,
                "overlaps": self._state.overlaps,
                "sweep_failures": self._state.sweep_failures,
                "sent": sum(counters.sent for counters in self._state.stages.values()),
                "failed": sum(counters.failed for counters in self._state.stages.values()),
            }
            return ReminderSnapshot(
                totals=totals,
                dispatches=stages,
                last_sweep_at=self._state.last_sweep_at,
                last_sweep_summary=self._state.last_sweep_summary,
                last_error=self._state.last_error,
            )


_REMINDER_STORE = ReminderObservabilityStore()


def get_reminder_store() -> ReminderObservabilityStore:
    return _REMINDER_STORE


__all__ = ["ReminderObservabilityStore", "ReminderSnapshot", "get_reminder_store"]
