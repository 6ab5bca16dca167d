"""Audit trail of expiry reminder sweeps."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from recharge_api.db.base import Base


class ExpiryReminderRun(Base):
    """One execution of the reminder sweep, whatever triggered it."""

    __tablename__ = "expiry_reminder_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    triggered_by = Column(String, nullable=False)
    status = Column(String, nullable=False, default="running")
    candidate_count = Column(Integer, nullable=False, default=0)
    sent_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    skipped_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
