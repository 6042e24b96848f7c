from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

DEBT_STATUS_CURRENT = "current"
DEBT_STATUS_OVERDUE = "overdue"
DEBT_STATUS_PAID = "paid"

DEBT_STATUSES = (DEBT_STATUS_CURRENT, DEBT_STATUS_OVERDUE, DEBT_STATUS_PAID)


class Debt(db.Model):
    """
    Outstanding balance left by an underpaid settlement.

    INVARIANT: remaining_amount_cents >= 0
    INVARIANT: status == "paid" whenever remaining_amount_cents == 0
    STATE MACHINE: current -> overdue (due date passed), current|overdue -> paid.
    Nothing leaves "paid".

    The owning report has no pointer back; look debts up by report_id.
    """
    __tablename__ = "debts"
    __table_args__ = (
        db.CheckConstraint("remaining_amount_cents >= 0", name="ck_debts_remaining_non_negative"),
        db.Index("ix_debts_status_due_date", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    report_id = db.Column(db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)

    original_amount_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False)

    due_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=DEBT_STATUS_CURRENT, index=True)
    notes = db.Column(db.String(1000), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("debts", lazy=True))
    report = db.relationship("Report")
    payments = db.relationship(
        "DebtPayment", backref="debt", lazy=True, order_by="DebtPayment.id", cascade="all, delete-orphan"
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def payment_status(self) -> str:
        if self.remaining_amount_cents <= 0:
            return "paid"
        if self.amount_paid_cents > 0:
            return "partial"
        return "unpaid"

    def to_dict(self, include_payments: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "report_id": self.report_id,
            "original_amount_cents": self.original_amount_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_payments:
            data["payment_history"] = [p.to_dict() for p in self.payments]
        return data


class DebtPayment(db.Model):
    """
    Append-only payment history for a debt.

    IMMUTABLE: rows are never updated; one row per recorded payment.
    """
    __tablename__ = "debt_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    debt_id = db.Column(db.Integer, db.ForeignKey("debts.id", ondelete="CASCADE"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    payment_method = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.String(1000), nullable=True)

    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "debt_id": self.debt_id,
            "amount_cents": self.amount_cents,
            "paid_at": to_utc_z(self.paid_at),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "recorded_by_user_id": self.recorded_by_user_id,
        }
