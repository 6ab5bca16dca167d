"""Plain-text message bodies for customer notifications."""

from __future__ import annotations

from datetime import date, datetime


def _first_name(customer_name: str | None) -> str:
    name = (customer_name or "").strip()
    return name.split()[0] if name else "there"


def render_purchase_confirmation(
    *,
    customer_name: str | None,
    plan_name: str,
    recharge_code: str,
    expires_at: datetime,
    company_name: str,
) -> str:
    return "\n".join(
        [
            f"Hi {_first_name(customer_name)}! Your purchase is confirmed.",
            "",
            f"*Plan:* {plan_name}",
            f"*Recharge code:* {recharge_code}",
            f"*Valid until:* {expires_at.strftime('%d/%m/%Y')}",
            "",
            f"Thank you for choosing {company_name}.",
        ]
    )


def render_pending_code(*, customer_name: str | None, plan_name: str, company_name: str) -> str:
    return "\n".join(
        [
            f"Hi {_first_name(customer_name)}! Your payment for {plan_name} was approved.",
            "",
            "Your recharge code is being prepared and will be sent to you shortly.",
            "",
            f"{company_name}",
        ]
    )


def render_expiry_reminder(
    *,
    customer_name: str | None,
    plan_name: str,
    days_until_expiry: int,
    expires_on: date,
    company_name: str,
) -> str:
    if days_until_expiry <= 0:
        when = "expires *TODAY*"
    elif days_until_expiry == 1:
        when = "expires in 1 day"
    else:
        when = f"expires in {days_until_expiry} days"

    urgency = "URGENT" if days_until_expiry <= 1 else "HEADS UP"
    return "\n".join(
        [
            f"*{urgency}* Hi {_first_name(customer_name)}!",
            "",
            f"Your {plan_name} plan {when} ({expires_on.strftime('%d/%m/%Y')}).",
            "Renew now to keep your service active.",
            "",
            f"{company_name}",
        ]
    )


__all__ = ["render_expiry_reminder", "render_pending_code", "render_purchase_confirmation"]
