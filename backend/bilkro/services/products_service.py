# Overview: Service-layer operations for products; encapsulates business logic and database work.

"""
Products Service

Product CRUD plus the storage-level stock guard used by checkout.
"""
from __future__ import annotations

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..models.inventory import PRODUCT_CATEGORIES, PRODUCT_UNITS
from ..errors import DuplicateError, ProductNotFoundError, ValidationError
from ..validation import MAX_PRICE_CENTS, to_cents, to_choice, to_int, to_text
from ..time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "category", "buying_price_cents", "selling_price_cents",
    "quantity", "unit", "reorder_level", "image_url", "supplier_name", "supplier_contact",
}
PRODUCT_REQUIRED_ON_CREATE = {"sku", "name", "category", "buying_price_cents", "selling_price_cents", "quantity"}


def validate_product_payload(payload: dict, *, partial: bool) -> dict:
    """
    Coerce and validate a product payload into a patch dict.

    Unknown fields are ignored; on create every required field must be present.
    """
    if not partial:
        missing = sorted(f for f in PRODUCT_REQUIRED_ON_CREATE if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    patch: dict = {}
    for key in PRODUCT_MUTABLE_FIELDS & set(payload):
        value = payload[key]
        if key in {"buying_price_cents", "selling_price_cents"}:
            cents = to_cents(value, key)
            if cents is None or cents < 0:
                raise ValidationError(f"{key} must be a non-negative integer")
            patch[key] = cents
        elif key == "quantity":
            patch[key] = to_int(value, key, minimum=0)
            if patch[key] is None:
                raise ValidationError("quantity required")
        elif key == "reorder_level":
            patch[key] = to_int(value, key, minimum=0)
        elif key == "category":
            patch[key] = to_choice(value, key, PRODUCT_CATEGORIES, default="other")
        elif key == "unit":
            patch[key] = to_choice(value, key, PRODUCT_UNITS, default="pcs")
        elif key == "description":
            patch[key] = to_text(value, key, max_length=5000)
        elif key in {"sku", "name"}:
            patch[key] = to_text(value, key, required=True)
        else:
            patch[key] = to_text(value, key, max_length=512)

    for price_key in ("buying_price_cents", "selling_price_cents"):
        if patch.get(price_key, 0) > MAX_PRICE_CENTS:
            raise ValidationError(f"{price_key} exceeds maximum")

    return patch


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFoundError("Product not found")
    return product


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional text search, category filter and pagination.

    Without ``page`` every matching product is returned.
    """
    base_query = db.session.query(Product)

    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.description.ilike(pattern),
        ))
    if category:
        base_query = base_query.filter(Product.category == category)

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict) -> Product:
    """
    Create product from a validated patch dict.

    Raises:
        DuplicateError: If SKU already exists
    """
    if db.session.query(Product).filter_by(sku=patch["sku"]).first():
        raise DuplicateError(f"SKU '{patch['sku']}' already exists")

    product = Product(**patch)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError(f"SKU '{patch['sku']}' already exists")
    return product


def update_product(product_id: int, *, patch: dict) -> Product:
    product = get_product(product_id)

    new_sku = patch.get("sku")
    if new_sku and new_sku != product.sku:
        if db.session.query(Product).filter(Product.sku == new_sku, Product.id != product_id).first():
            raise DuplicateError(f"SKU '{new_sku}' already exists")

    for key, value in patch.items():
        if key in PRODUCT_MUTABLE_FIELDS:
            setattr(product, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateError(f"SKU '{new_sku}' already exists")
    return product


def delete_product(product_id: int) -> None:
    """
    Delete a product.

    Cart lines pointing at it are dropped on the next cart read; report items
    keep their snapshot fields.
    """
    product = get_product(product_id)
    db.session.delete(product)
    db.session.commit()


def list_low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.reorder_level > 0, Product.quantity <= Product.reorder_level)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )


def decrement_stock(product_id: int, quantity: int) -> bool:
    """
    Conditionally take ``quantity`` units out of stock.

    Single UPDATE guarded by ``quantity >= :qty``, so two concurrent
    decrements can never drive stock below zero. Returns False when the
    guard rejects the update. Does not commit.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be positive")

    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity >= quantity)
        .values(quantity=Product.quantity - quantity, updated_at=utcnow()),
        execution_options={"synchronize_session": False},
    )
    return result.rowcount == 1
