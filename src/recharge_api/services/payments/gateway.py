"""Payment gateway protocol consumed by checkout."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Protocol
from uuid import UUID, uuid4

from recharge_api.models.purchase import PaymentMethodEnum


@dataclass(slots=True)
class PaymentRequest:
    plan_id: UUID
    amount: Decimal
    payment_method: PaymentMethodEnum
    customer_name: str
    customer_email: str = ""


@dataclass(slots=True)
class PaymentDecision:
    """Gateway verdict; only ``approved`` matters to the sale flow."""

    approved: bool
    payment_id: str
    error_code: str | None = None


class PaymentGateway(Protocol):
    async def authorize(self, request: PaymentRequest) -> PaymentDecision:
        ...


class StaticPaymentGateway:
    """Gateway stand-in that answers every request the same way."""

    def __init__(self, *, approve: bool = True, error_code: str = "CARD_DECLINED") -> None:
        self.approve = approve
        self.error_code = error_code
        self.requests: List[PaymentRequest] = []

    async def authorize(self, request: PaymentRequest) -> PaymentDecision:
        self.requests.append(request)
        payment_id = f"pay_{uuid4().hex[:16]}"
        if self.approve:
            return PaymentDecision(approved=True, payment_id=payment_id)
        return PaymentDecision(approved=False, payment_id=payment_id, error_code=self.error_code)
