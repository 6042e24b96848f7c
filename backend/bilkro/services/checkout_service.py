# Overview: Checkout orchestration; turns the active cart into a report, stock decrements and an optional debt.

"""
Checkout Orchestrator

One checkout is one database transaction:

    load cart -> availability check -> conditional stock decrements
    -> report -> debt (if a balance remains) -> cart converted -> commit

Any failure before the commit rolls everything back, including decrements
already applied for earlier lines. The conditional decrement is the
authoritative stock guard; the availability check only produces a friendlier
error listing every short line up front.

The confirmation email is sent after the commit and never fails the checkout.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select

from ..extensions import db
from ..models import Product
from ..models.cart import CART_STATUS_CONVERTED
from ..models.reports import (
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_UNPAID,
    PAYMENT_STATUSES,
)
from ..errors import (
    CartNotFoundError,
    DependencyFailureError,
    EmptyCartError,
    ItemsUnavailableError,
    ValidationError,
)
from ..time_utils import to_utc_z, utcnow
from . import cart_service, debt_service, notification_service, products_service, report_service
from .concurrency import run_with_retry


@dataclass(frozen=True)
class PaymentFigures:
    amount_paid_cents: int
    remaining_balance_cents: int
    payment_status: str


@dataclass
class CheckoutResult:
    report: object
    debt: object | None
    cart: object
    notification: dict

    def to_dict(self) -> dict:
        return {
            "report_id": self.report.id,
            "report": self.report.to_dict(),
            "cart": self.cart.to_dict(),
            "amount_paid_cents": self.report.amount_paid_cents,
            "remaining_balance_cents": self.report.remaining_balance_cents,
            "payment_status": self.report.payment_status,
            "debt": {
                "debt_id": self.debt.id,
                "due_date": to_utc_z(self.debt.due_date),
                "status": self.debt.status,
            } if self.debt else None,
            "notification": self.notification,
        }


def compute_payment_figures(
    total_cents: int,
    amount_paid_cents: int | None = None,
    remaining_balance_cents: int | None = None,
    payment_status: str | None = None,
) -> PaymentFigures:
    """
    paid = amount_paid or 0 (never negative)
    remaining = explicit value, else max(0, total - paid)
    status = explicit value, else unpaid / partial / paid from paid vs total
    """
    paid = max(0, amount_paid_cents or 0)

    if remaining_balance_cents is not None:
        if remaining_balance_cents < 0:
            raise ValidationError("remaining_balance_cents must be >= 0")
        remaining = remaining_balance_cents
    else:
        remaining = max(0, total_cents - paid)

    if payment_status is not None:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(
                "Invalid payment_status",
                details={"allowed": list(PAYMENT_STATUSES)},
            )
        status = payment_status
    elif paid <= 0:
        status = PAYMENT_STATUS_UNPAID
    elif paid < total_cents:
        status = PAYMENT_STATUS_PARTIAL
    else:
        status = PAYMENT_STATUS_PAID

    return PaymentFigures(amount_paid_cents=paid, remaining_balance_cents=remaining, payment_status=status)


def find_unavailable_items(cart) -> list[dict]:
    """Lines whose product is gone or holds less stock than requested."""
    unavailable = []
    for item in cart.items:
        product = db.session.get(Product, item.product_id) if item.product_id else None
        available = product.quantity if product else 0
        if product is None or available < item.quantity:
            unavailable.append({
                "item_id": item.id,
                "product_id": item.product_id,
                "name": item.product_name,
                "requested": item.quantity,
                "available": available,
            })
    return unavailable


def _live_quantity(product_id: int) -> int:
    value = db.session.execute(select(Product.quantity).where(Product.id == product_id)).scalar()
    return value or 0


def _decrement_all(cart) -> list[tuple]:
    """Apply the conditional decrement line by line; abort on the first refusal."""
    lines = []
    for item in cart.items:
        if not products_service.decrement_stock(item.product_id, item.quantity):
            raise ItemsUnavailableError([{
                "item_id": item.id,
                "product_id": item.product_id,
                "name": item.product_name,
                "requested": item.quantity,
                "available": _live_quantity(item.product_id),
            }])

        product = db.session.get(Product, item.product_id)
        db.session.expire(product, ["quantity"])
        lines.append((item, product))
    return lines


def _order_details(cart, report, debt, figures: PaymentFigures, customer: dict) -> dict:
    return {
        "report_id": report.id,
        "date": report.date.strftime("%Y-%m-%d %H:%M"),
        "items": [
            {"name": item.product_name, "quantity": item.quantity, "unit_price_cents": item.unit_price_cents}
            for item in cart.items
        ],
        "subtotal_cents": cart.subtotal_cents,
        "discount_cents": cart.discount_cents,
        "total_cents": cart.total_cents,
        "payment_method": report.payment_method,
        "payment_status": figures.payment_status,
        "amount_paid_cents": figures.amount_paid_cents,
        "remaining_balance_cents": figures.remaining_balance_cents,
        "customer": {"phone": customer.get("phone"), "address": customer.get("address")},
        "debt_id": debt.id if debt else None,
        "due_date": debt.due_date.date().isoformat() if debt else None,
    }


def _notify(user, cart, report, debt, figures: PaymentFigures, customer: dict) -> dict:
    customer_name = customer.get("name")
    if not user.email or not customer_name:
        current_app.logger.warning(
            "Skipping order confirmation for report %s: missing email or customer name", report.id
        )
        return {"sent": False, "error": None}

    try:
        notification_service.send_order_confirmation(
            user.email,
            customer_name,
            _order_details(cart, report, debt, figures, customer),
        )
    except DependencyFailureError as exc:
        current_app.logger.exception("Failed to send order confirmation for report %s", report.id)
        return {"sent": False, "error": exc.message}

    return {"sent": True, "error": None}


def checkout(
    user,
    *,
    payment_method: str,
    customer_info: dict | None = None,
    payment_status: str | None = None,
    amount_paid_cents: int | None = None,
    remaining_balance_cents: int | None = None,
) -> CheckoutResult:
    """
    Settle the user's active cart.

    Raises:
        ValidationError: missing payment method or bad payment figures
        CartNotFoundError: no active cart
        EmptyCartError: active cart has no lines
        ItemsUnavailableError: stock fell short, nothing was written
    """
    if not payment_method:
        raise ValidationError("payment_method is required")
    customer = dict(customer_info or {})

    def _op():
        cart = cart_service.get_active_cart(user.id)
        if cart is None:
            raise CartNotFoundError("Cart not found")
        if not cart.items:
            raise EmptyCartError("Cannot checkout an empty cart")

        unavailable = find_unavailable_items(cart)
        if unavailable:
            raise ItemsUnavailableError(unavailable)

        cart_service.recalculate_cart(cart)
        figures = compute_payment_figures(
            cart.total_cents,
            amount_paid_cents=amount_paid_cents,
            remaining_balance_cents=remaining_balance_cents,
            payment_status=payment_status,
        )

        now = utcnow()
        settlement = report_service.build_settlement_lines(_decrement_all(cart))

        report = report_service.create_sale_report(
            user_id=user.id,
            settlement=settlement,
            total_revenue_cents=cart.total_cents,
            discount_cents=cart.discount_cents,
            payment_method=payment_method,
            payment_status=figures.payment_status,
            amount_paid_cents=figures.amount_paid_cents,
            remaining_balance_cents=figures.remaining_balance_cents,
            customer=customer,
            now=now,
        )

        debt = None
        if figures.remaining_balance_cents > 0:
            debt = debt_service.create_debt_record(
                user_id=user.id,
                report_id=report.id,
                original_amount_cents=cart.total_cents,
                amount_paid_cents=figures.amount_paid_cents,
                remaining_amount_cents=figures.remaining_balance_cents,
                now=now,
            )

        cart.status = CART_STATUS_CONVERTED
        cart.converted_at = now
        cart.updated_at = now
        cart.payment_status = figures.payment_status
        cart.amount_paid_cents = figures.amount_paid_cents
        cart.remaining_balance_cents = figures.remaining_balance_cents

        db.session.commit()
        return cart, report, debt, figures

    cart, report, debt, figures = run_with_retry(_op)
    current_app.logger.info(
        "Checkout completed: report=%s user=%s total=%s remaining=%s",
        report.id, user.id, cart.total_cents, figures.remaining_balance_cents,
    )

    notification = _notify(user, cart, report, debt, figures, customer)
    return CheckoutResult(report=report, debt=debt, cart=cart, notification=notification)
