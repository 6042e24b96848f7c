from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

CART_STATUS_ACTIVE = "active"
CART_STATUS_CHECKOUT = "checkout"
CART_STATUS_ABANDONED = "abandoned"
CART_STATUS_CONVERTED = "converted"

CART_STATUSES = (
    CART_STATUS_ACTIVE,
    CART_STATUS_CHECKOUT,
    CART_STATUS_ABANDONED,
    CART_STATUS_CONVERTED,
)


class Cart(db.Model):
    """
    Shopping cart owned by one user.

    At most one cart per user may be ``active``; the partial unique index
    enforces it at the storage layer. ``converted`` and ``abandoned`` are
    terminal.

    subtotal_cents, item_count and total_cents are derived values written by
    cart_service on every mutation, never edited directly.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.Index(
            "uq_carts_user_active",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_carts_status_updated", "status", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=CART_STATUS_ACTIVE, index=True)

    coupon_code = db.Column(db.String(64), nullable=True)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.String(1000), nullable=False, default="")

    # Derived totals
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    item_count = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Payment snapshot written at checkout
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("carts", lazy=True))
    items = db.relationship(
        "CartItem",
        backref="cart",
        lazy=True,
        order_by="CartItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def find_item(self, item_id: int):
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_item_for_product(self, product_id: int):
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "item_count": self.item_count,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "coupon_code": self.coupon_code,
            "note": self.note,
            "payment_status": self.payment_status,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "converted_at": to_utc_z(self.converted_at) if self.converted_at else None,
        }


class CartItem(db.Model):
    """
    Line item on a cart.

    unit_price_cents and the display fields are snapshots taken when the
    product is first added; merging more units into the line keeps them.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    image_url = db.Column(db.String(512), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "product_name": self.product_name,
            "sku": self.sku,
            "image_url": self.image_url,
            "unit": self.unit,
        }
