from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

EXPENDITURE_CATEGORIES = ("salary", "supplies", "utilities", "maintenance", "miscellaneous")

EXPENDITURE_STATUS_PENDING = "pending"
EXPENDITURE_STATUS_APPROVED = "approved"
EXPENDITURE_STATUS_REJECTED = "rejected"
EXPENDITURE_STATUS_COMPLETED = "completed"


class Expenditure(db.Model):
    """
    Business expense awaiting approval and posting.

    LIFECYCLE: pending -> approved -> completed, or pending -> rejected.
    Completion posts the amount onto the most recent report.
    """
    __tablename__ = "expenditures"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenditures_amount_positive"),
        db.Index("ix_expenditures_employee_date", "employee_id", "date"),
        db.Index("ix_expenditures_category_date", "category", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.String(1000), nullable=True)
    receipt_image_url = db.Column(db.String(512), nullable=True)

    employee_name = db.Column(db.String(255), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    status = db.Column(db.String(16), nullable=False, default=EXPENDITURE_STATUS_PENDING, index=True)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    manually_approved = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    report_id = db.Column(db.Integer, db.ForeignKey("reports.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    employee = db.relationship("User", foreign_keys=[employee_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "category": self.category,
            "notes": self.notes,
            "receipt_image_url": self.receipt_image_url,
            "employee_name": self.employee_name,
            "employee_id": self.employee_id,
            "date": to_utc_z(self.date),
            "status": self.status,
            "approved_by_user_id": self.approved_by_user_id,
            "approval_date": to_utc_z(self.approval_date) if self.approval_date else None,
            "manually_approved": self.manually_approved,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "report_id": self.report_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
