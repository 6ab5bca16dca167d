"""Injectable external collaborators; tests override these via ``dependency_overrides``."""

from fastapi import HTTPException, status
from loguru import logger

from recharge_api.core.settings import settings
from recharge_api.services.notifications import MessagingBackend, build_messaging_backend
from recharge_api.services.payments import PaymentGateway, StaticPaymentGateway


def get_messaging_backend() -> MessagingBackend:
    return build_messaging_backend(settings)


def get_payment_gateway() -> PaymentGateway:
    """Auto-approving gateway in development; other environments must override this dependency."""

    if settings.environment == "development":
        return StaticPaymentGateway(approve=True)

    logger.error("Checkout requested without a payment gateway", environment=settings.environment)
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Payment gateway not configured",
    )
