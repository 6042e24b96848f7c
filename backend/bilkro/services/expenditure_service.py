# Overview: Service-layer operations for expenditures; approval workflow and posting onto reports.

"""
Expenditure Service

LIFECYCLE: pending -> approved -> completed, or pending -> rejected.

Amounts at or below EXPENDITURE_AUTO_APPROVE_LIMIT_CENTS are approved on
creation. An amount edit re-applies the rule unless an admin approved the
expenditure by hand. Completion posts the amount onto the latest report.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Expenditure
from ..models.expenditures import (
    EXPENDITURE_CATEGORIES,
    EXPENDITURE_STATUS_APPROVED,
    EXPENDITURE_STATUS_COMPLETED,
    EXPENDITURE_STATUS_PENDING,
    EXPENDITURE_STATUS_REJECTED,
)
from ..errors import (
    ExpenditureNotFoundError,
    ExpenditureStateError,
    ForbiddenError,
    ValidationError,
)
from ..validation import to_cents, to_choice, to_text
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from . import report_service

# Approved and completed expenditures both count as spent money
SPENT_STATUSES = (EXPENDITURE_STATUS_APPROVED, EXPENDITURE_STATUS_COMPLETED)


def _auto_approve_limit() -> int:
    return current_app.config.get("EXPENDITURE_AUTO_APPROVE_LIMIT_CENTS", 10000)


def qualifies_for_auto_approval(amount_cents: int) -> bool:
    return amount_cents <= _auto_approve_limit()


def _validate_amount(value) -> int:
    amount = to_cents(value, "amount_cents")
    if amount is None or amount <= 0:
        raise ValidationError("amount_cents must be a positive integer")
    return amount


def _get_locked(expenditure_id: int) -> Expenditure:
    expenditure = lock_for_update(db.session.query(Expenditure).filter_by(id=expenditure_id)).first()
    if not expenditure:
        raise ExpenditureNotFoundError("Expenditure not found")
    return expenditure


def _require_owner_or_admin(expenditure: Expenditure, user) -> None:
    if expenditure.employee_id != user.id and not user.is_admin:
        raise ForbiddenError("You are not authorized to modify this expenditure")


def create_expenditure(payload: dict, *, user) -> Expenditure:
    missing = sorted(
        f for f in ("amount_cents", "description", "employee_name", "category")
        if payload.get(f) in (None, "")
    )
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    amount = _validate_amount(payload.get("amount_cents"))
    now = utcnow()

    expenditure = Expenditure(
        amount_cents=amount,
        description=to_text(payload.get("description"), "description", required=True, max_length=500),
        employee_name=to_text(payload.get("employee_name"), "employee_name", required=True),
        employee_id=user.id,
        category=to_choice(payload.get("category"), "category", EXPENDITURE_CATEGORIES),
        notes=to_text(payload.get("notes"), "notes", max_length=1000) or "",
        receipt_image_url=to_text(payload.get("receipt_image_url"), "receipt_image_url", max_length=512),
        date=now,
        status=EXPENDITURE_STATUS_PENDING,
    )

    if qualifies_for_auto_approval(amount):
        expenditure.status = EXPENDITURE_STATUS_APPROVED
        expenditure.approved_by_user_id = user.id
        expenditure.approval_date = now

    db.session.add(expenditure)
    db.session.commit()
    return expenditure


def get_expenditure(expenditure_id: int) -> Expenditure:
    expenditure = db.session.get(Expenditure, expenditure_id)
    if not expenditure:
        raise ExpenditureNotFoundError("Expenditure not found")
    return expenditure


def _filtered(query, *, start=None, end=None, status=None, category=None, employee_id=None):
    if start:
        query = query.filter(Expenditure.date >= start)
    if end:
        query = query.filter(Expenditure.date <= end)
    if status:
        query = query.filter(Expenditure.status == status)
    if category:
        query = query.filter(Expenditure.category == category)
    if employee_id:
        query = query.filter(Expenditure.employee_id == employee_id)
    return query


def list_expenditures(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    status: str | None = None,
    category: str | None = None,
    employee_id: int | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    per_page = min(max(per_page, 1), 100)
    page = max(page, 1)

    query = _filtered(
        db.session.query(Expenditure),
        start=start, end=end, status=status, category=category, employee_id=employee_id,
    )
    total = query.count()
    expenditures = (
        query.order_by(Expenditure.date.desc(), Expenditure.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [e.to_dict() for e in expenditures],
        "count": len(expenditures),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page if total > 0 else 1,
        },
    }


def update_expenditure(expenditure_id: int, payload: dict, *, user) -> Expenditure:
    """Edit amount/description/category/notes. Status moves only through approve/reject/complete."""
    def _op():
        expenditure = _get_locked(expenditure_id)
        _require_owner_or_admin(expenditure, user)

        if expenditure.status in (EXPENDITURE_STATUS_COMPLETED, EXPENDITURE_STATUS_REJECTED):
            raise ExpenditureStateError(f"Cannot update a {expenditure.status} expenditure")

        if payload.get("amount_cents") not in (None, ""):
            expenditure.amount_cents = _validate_amount(payload["amount_cents"])
        if payload.get("description"):
            expenditure.description = to_text(payload["description"], "description", max_length=500)
        if payload.get("category"):
            expenditure.category = to_choice(payload["category"], "category", EXPENDITURE_CATEGORIES)
        if "notes" in payload:
            expenditure.notes = to_text(payload.get("notes"), "notes", max_length=1000) or ""
        if "receipt_image_url" in payload:
            expenditure.receipt_image_url = to_text(payload.get("receipt_image_url"), "receipt_image_url", max_length=512)

        # Re-apply auto approval against the new amount
        if not expenditure.manually_approved:
            auto = qualifies_for_auto_approval(expenditure.amount_cents)
            if auto and expenditure.status == EXPENDITURE_STATUS_PENDING:
                expenditure.status = EXPENDITURE_STATUS_APPROVED
                expenditure.approved_by_user_id = user.id
                expenditure.approval_date = utcnow()
            elif not auto and expenditure.status == EXPENDITURE_STATUS_APPROVED:
                expenditure.status = EXPENDITURE_STATUS_PENDING
                expenditure.approved_by_user_id = None
                expenditure.approval_date = None

        db.session.commit()
        return expenditure

    return run_with_retry(_op)


def delete_expenditure(expenditure_id: int, *, user) -> None:
    def _op():
        expenditure = _get_locked(expenditure_id)
        _require_owner_or_admin(expenditure, user)
        if expenditure.status == EXPENDITURE_STATUS_COMPLETED:
            raise ExpenditureStateError("Cannot delete a completed expenditure")
        db.session.delete(expenditure)
        db.session.commit()

    run_with_retry(_op)


def approve_expenditure(expenditure_id: int, *, admin) -> Expenditure:
    def _op():
        expenditure = _get_locked(expenditure_id)
        if expenditure.status != EXPENDITURE_STATUS_PENDING:
            raise ExpenditureStateError(f"Expenditure is already {expenditure.status}")

        expenditure.status = EXPENDITURE_STATUS_APPROVED
        expenditure.approved_by_user_id = admin.id
        expenditure.approval_date = utcnow()
        expenditure.manually_approved = True
        db.session.commit()
        return expenditure

    return run_with_retry(_op)


def reject_expenditure(expenditure_id: int, *, admin, reason: str | None = None) -> Expenditure:
    def _op():
        expenditure = _get_locked(expenditure_id)
        if expenditure.status != EXPENDITURE_STATUS_PENDING:
            raise ExpenditureStateError(f"Expenditure is already {expenditure.status}")

        expenditure.status = EXPENDITURE_STATUS_REJECTED
        expenditure.approved_by_user_id = admin.id
        expenditure.approval_date = utcnow()
        if reason:
            expenditure.notes = f"{expenditure.notes}\nRejected: {reason}".strip()
        db.session.commit()
        return expenditure

    return run_with_retry(_op)


def complete_expenditure(expenditure_id: int, *, admin) -> Expenditure:
    """Mark an approved expenditure completed and post it onto the latest report."""
    def _op():
        expenditure = _get_locked(expenditure_id)
        if expenditure.status != EXPENDITURE_STATUS_APPROVED:
            raise ExpenditureStateError("Expenditure must be approved before it can be completed")

        report = report_service.post_expenditure(expenditure, user_id=admin.id)

        expenditure.status = EXPENDITURE_STATUS_COMPLETED
        expenditure.completed_at = utcnow()
        expenditure.report_id = report.id
        db.session.commit()
        return expenditure

    expenditure = run_with_retry(_op)
    current_app.logger.info(
        "Expenditure %s posted to report %s", expenditure.id, expenditure.report_id
    )
    return expenditure


def get_expenditure_statistics(*, start: datetime | None = None, end: datetime | None = None) -> dict:
    spent = _filtered(db.session.query(Expenditure), start=start, end=end).filter(
        Expenditure.status.in_(SPENT_STATUSES)
    )

    total = spent.with_entities(func.coalesce(func.sum(Expenditure.amount_cents), 0)).scalar()

    by_category = [
        {"category": category, "count": int(count), "amount_cents": int(amount)}
        for category, count, amount in spent.with_entities(
            Expenditure.category,
            func.count(Expenditure.id),
            func.sum(Expenditure.amount_cents),
        ).group_by(Expenditure.category).order_by(func.sum(Expenditure.amount_cents).desc()).all()
    ]

    by_employee = [
        {"employee_id": employee_id, "employee_name": name, "count": int(count), "amount_cents": int(amount)}
        for employee_id, name, count, amount in spent.with_entities(
            Expenditure.employee_id,
            Expenditure.employee_name,
            func.count(Expenditure.id),
            func.sum(Expenditure.amount_cents),
        ).group_by(Expenditure.employee_id, Expenditure.employee_name)
        .order_by(func.sum(Expenditure.amount_cents).desc()).all()
    ]

    pending = (
        db.session.query(Expenditure)
        .filter(Expenditure.status == EXPENDITURE_STATUS_PENDING)
        .order_by(Expenditure.date.desc())
    )

    auto_approved_count = db.session.query(func.count(Expenditure.id)).filter(
        Expenditure.status == EXPENDITURE_STATUS_APPROVED,
        Expenditure.manually_approved.is_(False),
    ).scalar()

    return {
        "total_amount_cents": int(total or 0),
        "by_category": by_category,
        "by_employee": by_employee,
        "pending_count": pending.count(),
        "pending": [e.to_dict() for e in pending.limit(10).all()],
        "auto_approved_count": int(auto_approved_count or 0),
    }
