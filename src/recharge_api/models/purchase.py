from __future__ import annotations

from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from recharge_api.db.base import Base, enum_values


class PurchaseStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    PENDING_CODE_DELIVERY = "pending_code_delivery"


class PaymentMethodEnum(str, Enum):
    CREDIT_CARD = "credit_card"
    PIX = "pix"


class ReminderStage(str, Enum):
    """Keys of the per-purchase reminder ledger."""

    THREE_DAYS = "reminder3Days"
    ONE_DAY = "reminder1Day"
    TODAY = "reminderToday"


NO_AVAILABLE_CODES = "no_available_codes"


def default_expiry_reminders() -> Dict[str, Dict[str, Any]]:
    return {stage.value: {"sent": False} for stage in ReminderStage}


class Purchase(Base):
    """A paid sale, either delivered (approved) or awaiting a code."""

    __tablename__ = "purchases"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(String, nullable=False, index=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("plans.id", ondelete="RESTRICT"), nullable=False, index=True)
    reseller_id = Column(String, nullable=False, default="system")
    recharge_code = Column(String, nullable=False, default="")
    assigned_code_id = Column(
        UUID(as_uuid=True),
        ForeignKey("recharge_codes.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(
        SqlEnum(PaymentMethodEnum, name="payment_method_enum", values_callable=enum_values),
        nullable=False,
        default=PaymentMethodEnum.CREDIT_CARD,
    )
    payment_id = Column(String, nullable=False)
    status = Column(
        SqlEnum(PurchaseStatusEnum, name="purchase_status_enum", values_callable=enum_values),
        nullable=False,
        default=PurchaseStatusEnum.PENDING,
        index=True,
    )
    code_delivery_failure_reason = Column(String, nullable=True)
    customer_data = Column(JSON, nullable=False, default=dict)
    # Reassign the whole dict when flipping a stage; JSON columns do not track in-place mutation.
    expiry_reminders = Column(JSON, nullable=False, default=default_expiry_reminders)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
