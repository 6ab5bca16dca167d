"""SQLAlchemy models package."""

from .plan import Plan, PlanCategoryEnum  # noqa: F401
from .recharge_code import RechargeCode, RechargeCodeStatusEnum  # noqa: F401
from .purchase import (  # noqa: F401
    NO_AVAILABLE_CODES,
    PaymentMethodEnum,
    Purchase,
    PurchaseStatusEnum,
    ReminderStage,
    default_expiry_reminders,
)
from .expiry_reminder_run import ExpiryReminderRun  # noqa: F401

__all__ = [
    "ExpiryReminderRun",
    "NO_AVAILABLE_CODES",
    "PaymentMethodEnum",
    "Plan",
    "PlanCategoryEnum",
    "Purchase",
    "PurchaseStatusEnum",
    "RechargeCode",
    "RechargeCodeStatusEnum",
    "ReminderStage",
    "default_expiry_reminders",
]
