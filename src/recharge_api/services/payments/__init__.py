"""Payment collaborator interface."""

from .gateway import PaymentDecision, PaymentGateway, PaymentRequest, StaticPaymentGateway

__all__ = ["PaymentDecision", "PaymentGateway", "PaymentRequest", "StaticPaymentGateway"]
