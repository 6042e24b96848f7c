# Overview: Outbound customer notifications rendered from email templates.

from __future__ import annotations

from flask import current_app, render_template

from ..extensions import mailer
from ..errors import DependencyFailureError, ValidationError


def format_cents(value) -> str:
    """Jinja filter: 12345 -> '123.45'."""
    cents = int(value or 0)
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def send_order_confirmation(email: str, customer_name: str, order_details: dict) -> None:
    """
    Send the order confirmation for a completed checkout.

    order_details keys: report_id, date, items [{name, quantity, unit_price_cents}],
    subtotal_cents, discount_cents, total_cents, payment_method, payment_status,
    amount_paid_cents, remaining_balance_cents, customer {phone, address},
    and optionally debt_id / due_date.

    Raises:
        ValidationError: email, customer name or details missing
        DependencyFailureError: rendering or delivery failed
    """
    if not email or not customer_name or not order_details:
        raise ValidationError("Email, customer name, and order details are required")

    try:
        html = render_template(
            "email/order_confirmation.html",
            customer_name=customer_name,
            customer_email=email,
            order=order_details,
            website_link=current_app.config.get("WEBSITE_LINK"),
        )
        mailer.send(email, "Your Order Confirmation - Bilkro", html)
    except Exception as exc:
        raise DependencyFailureError(
            "Failed to send the order confirmation email",
            details={"reason": str(exc)},
        ) from exc


def send_debt_reminder(email: str, debt_details: dict) -> None:
    """
    Remind a customer of an outstanding balance.

    debt_details keys: username, debt_id, report_id, remaining_amount_cents, due_date.
    """
    if not email or not debt_details:
        raise ValidationError("Email and debt details are required")

    try:
        html = render_template(
            "email/debt_reminder.html",
            debt=debt_details,
            website_link=current_app.config.get("WEBSITE_LINK"),
        )
        mailer.send(email, "Payment Reminder - Bilkro", html)
    except Exception as exc:
        raise DependencyFailureError(
            "Failed to send reminder email",
            details={"reason": str(exc)},
        ) from exc
