from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

REPORT_TYPE_SALE = "sale"
REPORT_TYPE_EXPENDITURE = "expenditure"
REPORT_TYPE_MIXED = "mixed"

PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_UNPAID = "unpaid"

PAYMENT_STATUSES = (PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_UNPAID)


class Report(db.Model):
    """
    Financial facts of one settlement.

    Written once by checkout. Afterwards only two side channels touch it:
    expenditure posting (expenditure rows and totals) and debt payments
    (amount_paid_cents, remaining_balance_cents, payment_status).

    INVARIANT: total_profit_cents == sum(item.profit_cents)
    INVARIANT: net_profit_cents == total_profit_cents - total_expenditures_cents

    total_revenue_cents is the cart total after discount.
    """
    __tablename__ = "reports"
    __table_args__ = (
        db.Index("ix_reports_date", "date"),
        db.Index("ix_reports_payment_method_date", "payment_method", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    report_type = db.Column(db.String(16), nullable=False, default=REPORT_TYPE_SALE, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_profit_cents = db.Column(db.Integer, nullable=False, default=0)
    total_expenditures_cents = db.Column(db.Integer, nullable=False, default=0)
    net_profit_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PAID, index=True)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Customer snapshot
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_address = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("reports", lazy=True))
    items = db.relationship(
        "ReportItem", backref="report", lazy=True, order_by="ReportItem.id", cascade="all, delete-orphan"
    )
    categories = db.relationship(
        "ReportCategory", backref="report", lazy=True, order_by="ReportCategory.category", cascade="all, delete-orphan"
    )
    expenditures = db.relationship(
        "ReportExpenditure", backref="report", lazy=True, order_by="ReportExpenditure.id", cascade="all, delete-orphan"
    )
    __mapper_args__ = {"version_id_col": version_id}

    def category_breakdown(self) -> dict:
        return {
            c.category: {"count": c.count, "revenue_cents": c.revenue_cents, "profit_cents": c.profit_cents}
            for c in self.categories
        }

    def expenditure_breakdown(self) -> dict:
        breakdown: dict[str, dict] = {}
        for exp in self.expenditures:
            entry = breakdown.setdefault(exp.category, {"count": 0, "amount_cents": 0})
            entry["count"] += 1
            entry["amount_cents"] += exp.amount_cents
        return breakdown

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "date": to_utc_z(self.date),
            "report_type": self.report_type,
            "user_id": self.user_id,
            "discount_cents": self.discount_cents,
            "total_revenue_cents": self.total_revenue_cents,
            "total_cost_cents": self.total_cost_cents,
            "total_profit_cents": self.total_profit_cents,
            "total_expenditures_cents": self.total_expenditures_cents,
            "net_profit_cents": self.net_profit_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "customer": {
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
                "address": self.customer_address,
            },
            "categories": self.category_breakdown(),
            "expenditure_categories": self.expenditure_breakdown(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["expenditures"] = [exp.to_dict() for exp in self.expenditures]
        return data


class ReportItem(db.Model):
    """One sold line, priced and costed at checkout time."""
    __tablename__ = "report_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    category = db.Column(db.String(32), nullable=False, index=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    quantity = db.Column(db.Integer, nullable=False)
    buying_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    cost_cents = db.Column(db.Integer, nullable=False)
    revenue_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "category": self.category,
            "unit": self.unit,
            "quantity": self.quantity,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "cost_cents": self.cost_cents,
            "revenue_cents": self.revenue_cents,
            "profit_cents": self.profit_cents,
        }


class ReportCategory(db.Model):
    """Per-category rollup within one report."""
    __tablename__ = "report_categories"
    __table_args__ = (
        db.UniqueConstraint("report_id", "category", name="uq_report_categories_report_category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    category = db.Column(db.String(32), nullable=False)

    count = db.Column(db.Integer, nullable=False, default=0)
    revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False, default=0)


class ReportExpenditure(db.Model):
    """Expenditure posted onto a report by the completion side channel."""
    __tablename__ = "report_expenditures"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    expenditure_id = db.Column(db.Integer, db.ForeignKey("expenditures.id", ondelete="SET NULL"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    employee_name = db.Column(db.String(255), nullable=False)

    posted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expenditure_id": self.expenditure_id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "category": self.category,
            "employee_name": self.employee_name,
            "posted_at": to_utc_z(self.posted_at),
        }
