# Overview: Service-layer operations for carts; encapsulates business logic and database work.

"""
Cart Service

One active cart per user, created lazily on first access. Every mutation
recomputes the derived totals and commits immediately.

Price policy: the unit price is snapshotted when a product is first added to
the cart. Merging more units into an existing line keeps the first price.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Cart, CartItem, Product
from ..models.cart import CART_STATUS_ACTIVE, CART_STATUS_ABANDONED
from ..errors import (
    CartNotFoundError,
    ItemNotFoundError,
    OutOfStockError,
    ProductNotFoundError,
    ValidationError,
)
from ..time_utils import days_from, utcnow
from .concurrency import run_with_retry


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    item_count: int
    total_cents: int


def compute_cart_totals(items, discount_cents: int) -> CartTotals:
    """subtotal = sum(price x qty); item_count = sum(qty); total = subtotal - discount."""
    subtotal = sum(item.unit_price_cents * item.quantity for item in items)
    item_count = sum(item.quantity for item in items)
    return CartTotals(
        subtotal_cents=subtotal,
        item_count=item_count,
        total_cents=subtotal - (discount_cents or 0),
    )


def recalculate_cart(cart: Cart) -> Cart:
    """Recompute derived totals; a discount never exceeds the current subtotal."""
    subtotal = compute_cart_totals(cart.items, 0).subtotal_cents
    if (cart.discount_cents or 0) > subtotal:
        cart.discount_cents = subtotal
    totals = compute_cart_totals(cart.items, cart.discount_cents)
    cart.subtotal_cents = totals.subtotal_cents
    cart.item_count = totals.item_count
    cart.total_cents = totals.total_cents
    cart.updated_at = utcnow()
    return cart


def _ttl_cutoff(ttl_days: int | None = None) -> datetime:
    days = ttl_days if ttl_days is not None else current_app.config.get("CART_TTL_DAYS", 7)
    return days_from(utcnow(), -days)


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Valid quantity is required", details={"quantity": quantity})
    return quantity


def get_active_cart(user_id: int) -> Cart | None:
    """The user's active cart, or None. Expired carts are marked abandoned on the way."""
    cart = db.session.query(Cart).filter_by(user_id=user_id, status=CART_STATUS_ACTIVE).first()
    if cart is None:
        return None

    if cart.updated_at and cart.updated_at < _ttl_cutoff():
        cart.status = CART_STATUS_ABANDONED
        db.session.commit()
        return None

    return cart


def _get_or_create(user_id: int) -> Cart:
    cart = get_active_cart(user_id)
    if cart is not None:
        return cart

    cart = Cart(user_id=user_id, status=CART_STATUS_ACTIVE)
    db.session.add(cart)
    try:
        db.session.commit()
    except IntegrityError:
        # Another request created the active cart first
        db.session.rollback()
        cart = get_active_cart(user_id)
        if cart is None:
            raise
    return cart


def _require_active_cart(user_id: int) -> Cart:
    cart = get_active_cart(user_id)
    if cart is None:
        raise CartNotFoundError("Cart not found")
    return cart


def reconcile_cart(cart: Cart) -> bool:
    """
    Match cart lines to live stock.

    Lines whose product is gone or out of stock are dropped; lines holding
    more than the available stock are clamped. Returns True if anything
    changed (caller persists).
    """
    changed = False
    for item in list(reversed(cart.items)):
        product = db.session.get(Product, item.product_id) if item.product_id else None

        if product is None or product.quantity <= 0:
            cart.items.remove(item)
            changed = True
            continue

        if item.quantity > product.quantity:
            item.quantity = product.quantity
            changed = True

    return changed


def get_or_create_active_cart(user_id: int) -> Cart:
    """Return the user's active cart (creating it if absent), reconciled against stock."""
    def _op():
        cart = _get_or_create(user_id)
        if reconcile_cart(cart):
            recalculate_cart(cart)
            db.session.commit()
        return cart

    return run_with_retry(_op)


def add_item(user_id: int, product_id: int, quantity: int = 1) -> Cart:
    """
    Add a product to the active cart, merging into an existing line.

    Raises:
        ProductNotFoundError: unknown product
        OutOfStockError: merged quantity exceeds live stock
    """
    quantity = _validate_quantity(quantity)

    def _op():
        cart = _get_or_create(user_id)

        product = db.session.get(Product, product_id)
        if not product:
            raise ProductNotFoundError("Product not found")

        existing = cart.find_item_for_product(product.id)
        requested = quantity + (existing.quantity if existing else 0)

        if product.quantity < requested:
            raise OutOfStockError(product.quantity)

        if existing:
            existing.quantity = requested
        else:
            cart.items.append(CartItem(
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=product.selling_price_cents,
                product_name=product.name,
                sku=product.sku,
                image_url=product.image_url,
                unit=product.unit,
            ))

        recalculate_cart(cart)
        db.session.commit()
        return cart

    return run_with_retry(_op)


def update_item_quantity(user_id: int, item_id: int, quantity: int) -> Cart:
    quantity = _validate_quantity(quantity)

    def _op():
        cart = _require_active_cart(user_id)

        item = cart.find_item(item_id)
        if item is None:
            raise ItemNotFoundError("Item not found in cart")

        product = db.session.get(Product, item.product_id) if item.product_id else None
        if product is None:
            raise ProductNotFoundError("Product not found")

        if product.quantity < quantity:
            raise OutOfStockError(product.quantity)

        item.quantity = quantity
        recalculate_cart(cart)
        db.session.commit()
        return cart

    return run_with_retry(_op)


def remove_item(user_id: int, item_id: int) -> Cart:
    def _op():
        cart = _require_active_cart(user_id)

        item = cart.find_item(item_id)
        if item is None:
            raise ItemNotFoundError("Item not found in cart")

        cart.items.remove(item)
        recalculate_cart(cart)
        db.session.commit()
        return cart

    return run_with_retry(_op)


def clear_cart(user_id: int) -> Cart:
    """Empty the cart and reset discount and coupon."""
    def _op():
        cart = _require_active_cart(user_id)
        cart.items.clear()
        cart.discount_cents = 0
        cart.coupon_code = None
        recalculate_cart(cart)
        db.session.commit()
        return cart

    return run_with_retry(_op)


def update_cart_details(
    user_id: int,
    *,
    note: str | None = None,
    coupon_code: str | None = None,
    discount_cents: int | None = None,
) -> Cart:
    """Set note, coupon code and/or discount (0 <= discount <= subtotal)."""
    def _op():
        cart = _get_or_create(user_id)

        if note is not None:
            cart.note = note
        if coupon_code is not None:
            cart.coupon_code = coupon_code or None
        if discount_cents is not None:
            subtotal = compute_cart_totals(cart.items, 0).subtotal_cents
            if discount_cents < 0 or discount_cents > subtotal:
                raise ValidationError(
                    "discount_cents must be between 0 and the cart subtotal",
                    details={"subtotal_cents": subtotal},
                )
            cart.discount_cents = discount_cents

        recalculate_cart(cart)
        db.session.commit()
        return cart

    return run_with_retry(_op)


def list_carts(*, status: str = CART_STATUS_ACTIVE, page: int = 1, per_page: int = 10) -> dict:
    per_page = min(max(per_page, 1), 100)
    page = max(page, 1)

    query = db.session.query(Cart).filter_by(status=status)
    total = query.count()
    carts = query.order_by(Cart.updated_at.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [cart.to_dict() for cart in carts],
        "count": len(carts),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page if total > 0 else 1,
        },
    }


def expire_stale_carts(*, ttl_days: int | None = None) -> int:
    """Mark active carts untouched for longer than the TTL as abandoned."""
    cutoff = _ttl_cutoff(ttl_days)
    count = db.session.query(Cart).filter(
        Cart.status == CART_STATUS_ACTIVE,
        Cart.updated_at < cutoff,
    ).update(
        {"status": CART_STATUS_ABANDONED, "version_id": Cart.version_id + 1},
        synchronize_session=False,
    )
    db.session.commit()
    current_app.logger.info("Marked %s stale cart(s) abandoned", count)
    return count
