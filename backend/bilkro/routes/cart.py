# Overview: Flask API routes for cart and checkout operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import cart_service, checkout_service
from ..errors import ServiceError, ValidationError
from ..models.cart import CART_STATUSES, CART_STATUS_ACTIVE
from ..validation import to_cents, to_choice, to_int, to_text
from ..decorators import require_auth, require_admin


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    """Active cart, created if absent and reconciled against live stock."""
    try:
        cart = cart_service.get_or_create_active_cart(g.current_user.id)
        return jsonify({"cart": cart.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/items")
@require_auth
def add_item_route():
    """
    Add a product to the cart.

    Body: {"product_id": int, "quantity": int (default 1)}
    409 with details.available_quantity when stock is short.
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = to_int(data.get("product_id"), "product_id")
        if product_id is None:
            raise ValidationError("product_id required")
        quantity = to_int(data.get("quantity"), "quantity", default=1, minimum=1)

        cart = cart_service.add_item(g.current_user.id, product_id, quantity)
        return jsonify({"cart": cart.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add item to cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.put("/items/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        quantity = to_int(data.get("quantity"), "quantity", minimum=1)
        if quantity is None:
            raise ValidationError("Valid quantity is required")

        cart = cart_service.update_item_quantity(g.current_user.id, item_id, quantity)
        return jsonify({"cart": cart.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:item_id>")
@require_auth
def remove_item_route(item_id: int):
    try:
        cart = cart_service.remove_item(g.current_user.id, item_id)
        return jsonify({"cart": cart.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@require_auth
def clear_cart_route():
    try:
        cart = cart_service.clear_cart(g.current_user.id)
        return jsonify({"cart": cart.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.patch("")
@require_auth
def update_cart_route():
    """Body: any of {"note", "coupon_code", "discount_cents"}."""
    try:
        data = request.get_json(silent=True) or {}
        note = data.get("note")
        if note is not None:
            note = to_text(note, "note", max_length=1000) or ""
        coupon_code = None
        if "coupon_code" in data:
            coupon_code = to_text(data.get("coupon_code"), "coupon_code", max_length=64) or ""

        cart = cart_service.update_cart_details(
            g.current_user.id,
            note=note,
            coupon_code=coupon_code,
            discount_cents=to_cents(data.get("discount_cents"), "discount_cents"),
        )
        return jsonify({"cart": cart.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/checkout")
@require_auth
def checkout_route():
    """
    Settle the active cart.

    Body:
    {
        "payment_method": "cash",                 // required
        "customer_info": {"name", "email", "phone", "address"},
        "amount_paid_cents": 4000,                // optional, default 0
        "remaining_balance_cents": 6000,          // optional override
        "payment_status": "partial"               // optional override
    }

    Returns the report, payment figures, the debt (if a balance remains) and
    the notification outcome. A failed email never fails the checkout.
    """
    try:
        data = request.get_json(silent=True) or {}
        customer_info = data.get("customer_info") or {}
        if not isinstance(customer_info, dict):
            raise ValidationError("customer_info must be an object")

        result = checkout_service.checkout(
            g.current_user,
            payment_method=to_text(data.get("payment_method"), "payment_method", required=True, max_length=32),
            customer_info={
                key: to_text(customer_info.get(key), key, max_length=512)
                for key in ("name", "email", "phone", "address")
            },
            payment_status=data.get("payment_status") or None,
            amount_paid_cents=to_cents(data.get("amount_paid_cents"), "amount_paid_cents"),
            remaining_balance_cents=to_cents(data.get("remaining_balance_cents"), "remaining_balance_cents"),
        )
        return jsonify({"message": "Checkout completed successfully", **result.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete checkout")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.get("/all")
@require_auth
@require_admin
def list_carts_route():
    try:
        status = to_choice(request.args.get("status"), "status", CART_STATUSES, default=CART_STATUS_ACTIVE)
        return jsonify(cart_service.list_carts(
            status=status,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 10, type=int),
        )), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
