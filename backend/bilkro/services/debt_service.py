# Overview: Service-layer operations for the debt ledger; encapsulates business logic and database work.

"""
Debt Ledger

A debt is opened by checkout when a settlement leaves a balance, then moved
only by recorded payments and the overdue sweep.

STATE MACHINE:
    current -> overdue   (due date passed, balance outstanding)
    current|overdue -> paid   (remaining reaches 0)
    paid is terminal.

"Outstanding" everywhere means remaining_amount_cents > 0 AND status != paid.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import Debt, DebtPayment, Report
from ..models.debts import DEBT_STATUS_CURRENT, DEBT_STATUS_OVERDUE, DEBT_STATUS_PAID
from ..models.reports import PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL
from ..errors import (
    DebtAlreadyPaidError,
    DebtNotFoundError,
    InvalidAmountError,
    OverPaymentError,
    ValidationError,
)
from ..time_utils import days_from, utcnow, whole_days_between
from .concurrency import lock_for_update, run_with_retry
from . import notification_service

INITIAL_PAYMENT_METHOD = "initial payment"
INITIAL_PAYMENT_NOTES = "Payment at checkout"

DEBT_SORT_FIELDS = {
    "due_date": Debt.due_date,
    "created_at": Debt.created_at,
    "remaining_amount_cents": Debt.remaining_amount_cents,
    "original_amount_cents": Debt.original_amount_cents,
}

AGING_BUCKETS = (("1-30", 30), ("31-60", 60), ("61-90", 90), ("90+", None))


def derive_debt_status(remaining_amount_cents: int, due_date: datetime, now: datetime | None = None) -> str:
    """paid if nothing remains, else overdue once the due date has passed, else current."""
    if remaining_amount_cents <= 0:
        return DEBT_STATUS_PAID
    now = now or utcnow()
    if due_date < now:
        return DEBT_STATUS_OVERDUE
    return DEBT_STATUS_CURRENT


def _outstanding_filter():
    return (Debt.remaining_amount_cents > 0, Debt.status != DEBT_STATUS_PAID)


def create_debt_record(
    *,
    user_id: int,
    report_id: int,
    original_amount_cents: int,
    amount_paid_cents: int,
    remaining_amount_cents: int,
    now: datetime | None = None,
) -> Debt:
    """
    Open a debt for a settlement. Does not commit; checkout owns the transaction.

    The payment history is seeded with the amount paid at checkout, even when
    nothing was paid.
    """
    now = now or utcnow()
    term_days = current_app.config.get("DEBT_TERM_DAYS", 30)

    debt = Debt(
        user_id=user_id,
        report_id=report_id,
        original_amount_cents=original_amount_cents,
        amount_paid_cents=amount_paid_cents,
        remaining_amount_cents=max(0, remaining_amount_cents),
        due_date=days_from(now, term_days),
        status=DEBT_STATUS_PAID if remaining_amount_cents <= 0 else DEBT_STATUS_CURRENT,
        created_at=now,
        updated_at=now,
    )
    debt.payments.append(DebtPayment(
        amount_cents=amount_paid_cents,
        paid_at=now,
        payment_method=INITIAL_PAYMENT_METHOD,
        notes=INITIAL_PAYMENT_NOTES,
        recorded_by_user_id=user_id,
    ))
    db.session.add(debt)
    db.session.flush()
    return debt


def get_debt(debt_id: int, *, user=None) -> Debt:
    """Fetch a debt. Non-admin users only see their own."""
    debt = db.session.get(Debt, debt_id)
    if not debt:
        raise DebtNotFoundError("Debt record not found")
    if user is not None and not user.is_admin and debt.user_id != user.id:
        raise DebtNotFoundError("Debt record not found")
    return debt


def find_debt_for_report(report_id: int) -> Debt | None:
    return db.session.query(Debt).filter_by(report_id=report_id).first()


def list_user_debts(user_id: int, *, status: str | None = None) -> list[Debt]:
    query = db.session.query(Debt).filter_by(user_id=user_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Debt.due_date.asc(), Debt.id.asc()).all()


def list_debts(
    *,
    status: str | None = None,
    page: int = 1,
    per_page: int = 10,
    sort_by: str = "due_date",
    sort_order: str = "asc",
) -> dict:
    """Admin listing with status filter, paging and sort."""
    if sort_by not in DEBT_SORT_FIELDS:
        raise ValidationError(
            "Invalid sort field",
            details={"sort_by": sort_by, "allowed": sorted(DEBT_SORT_FIELDS)},
        )
    per_page = min(max(per_page, 1), 100)
    page = max(page, 1)

    query = db.session.query(Debt)
    if status:
        query = query.filter(Debt.status == status)

    column = DEBT_SORT_FIELDS[sort_by]
    order = column.desc() if sort_order == "desc" else column.asc()

    total = query.count()
    debts = query.order_by(order, Debt.id.asc()).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [debt.to_dict(include_payments=False) for debt in debts],
        "count": len(debts),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page if total > 0 else 1,
        },
    }


def _sync_report(debt: Debt) -> None:
    report = db.session.get(Report, debt.report_id)
    if report is None:
        return
    report.amount_paid_cents = debt.amount_paid_cents
    report.remaining_balance_cents = debt.remaining_amount_cents
    report.payment_status = PAYMENT_STATUS_PAID if debt.status == DEBT_STATUS_PAID else PAYMENT_STATUS_PARTIAL


def record_payment(
    debt_id: int,
    amount_cents: int,
    *,
    payment_method: str = "cash",
    notes: str | None = None,
    user=None,
) -> Debt:
    """
    Apply a payment to a debt and mirror the new figures onto its report.

    Raises:
        InvalidAmountError: amount <= 0
        DebtNotFoundError: unknown debt, or not visible to ``user``
        DebtAlreadyPaidError: nothing left to pay
        OverPaymentError: amount exceeds the remaining balance
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidAmountError("Valid payment amount is required")

    def _op():
        debt = lock_for_update(db.session.query(Debt).filter_by(id=debt_id)).first()
        if not debt:
            raise DebtNotFoundError("Debt record not found")
        if user is not None and not user.is_admin and debt.user_id != user.id:
            raise DebtNotFoundError("Debt record not found")

        if debt.status == DEBT_STATUS_PAID or debt.remaining_amount_cents <= 0:
            raise DebtAlreadyPaidError("This debt has already been fully paid")

        if amount_cents > debt.remaining_amount_cents:
            raise OverPaymentError(
                "Payment amount exceeds remaining balance",
                details={"remaining_amount_cents": debt.remaining_amount_cents},
            )

        now = utcnow()
        debt.payments.append(DebtPayment(
            amount_cents=amount_cents,
            paid_at=now,
            payment_method=payment_method,
            notes=notes,
            recorded_by_user_id=user.id if user is not None else None,
        ))
        debt.amount_paid_cents += amount_cents
        debt.remaining_amount_cents = max(0, debt.remaining_amount_cents - amount_cents)
        debt.status = derive_debt_status(debt.remaining_amount_cents, debt.due_date, now)
        debt.updated_at = now

        _sync_report(debt)

        db.session.commit()
        return debt

    return run_with_retry(_op)


def sweep_overdue_debts(now: datetime | None = None) -> int:
    """
    Flip current debts past their due date to overdue.

    One conditional UPDATE: the balance and status are checked again by the
    database at write time, so a debt paid during the sweep stays paid.
    version_id is bumped so an in-flight payment on the same row retries.
    """
    now = now or utcnow()

    def _op():
        result = db.session.execute(
            update(Debt)
            .where(
                Debt.status == DEBT_STATUS_CURRENT,
                Debt.due_date < now,
                Debt.remaining_amount_cents > 0,
            )
            .values(status=DEBT_STATUS_OVERDUE, updated_at=now, version_id=Debt.version_id + 1),
            execution_options={"synchronize_session": False},
        )
        db.session.commit()
        return result.rowcount or 0

    count = run_with_retry(_op)
    current_app.logger.info("Overdue sweep flagged %s debt(s)", count)
    return count


def recompute_debt_statuses(now: datetime | None = None) -> dict:
    """
    Re-derive status for every debt from its figures.

    Repairs rows whose status disagrees with their balance (e.g. paid
    balances still marked current). Never moves a debt out of paid.
    """
    now = now or utcnow()
    changes = {"checked": 0, "updated": 0}

    def _op():
        changes["checked"] = 0
        changes["updated"] = 0
        for debt in db.session.query(Debt).order_by(Debt.id.asc()).all():
            changes["checked"] += 1
            if debt.status == DEBT_STATUS_PAID:
                continue

            status = derive_debt_status(debt.remaining_amount_cents, debt.due_date, now)
            if status != debt.status:
                debt.status = status
                debt.updated_at = now
                changes["updated"] += 1
        db.session.commit()
        return dict(changes)

    result = run_with_retry(_op)
    current_app.logger.info("Recomputed debt statuses: %s", result)
    return result


def get_debt_statistics(*, user_id: int | None = None, now: datetime | None = None) -> dict:
    """Totals over outstanding debts, optionally scoped to one user."""
    now = now or utcnow()

    def _scoped(query):
        if user_id is not None:
            query = query.filter(Debt.user_id == user_id)
        return query

    outstanding = _scoped(db.session.query(
        func.count(Debt.id),
        func.coalesce(func.sum(Debt.remaining_amount_cents), 0),
    ).filter(*_outstanding_filter())).one()

    overdue = _scoped(db.session.query(
        func.count(Debt.id),
        func.coalesce(func.sum(Debt.remaining_amount_cents), 0),
    ).filter(*_outstanding_filter(), Debt.due_date < now)).one()

    counts_by_status = dict(
        _scoped(db.session.query(Debt.status, func.count(Debt.id)))
        .group_by(Debt.status)
        .all()
    )

    total_debt = int(outstanding[1])
    overdue_amount = int(overdue[1])

    return {
        "total_debt_cents": total_debt,
        "active_debt_count": int(outstanding[0]),
        "overdue_amount_cents": overdue_amount,
        "overdue_count": int(overdue[0]),
        "overdue_percentage": round(overdue_amount / total_debt * 100, 2) if total_debt > 0 else 0.0,
        "counts_by_status": {
            status: int(counts_by_status.get(status, 0))
            for status in (DEBT_STATUS_CURRENT, DEBT_STATUS_OVERDUE, DEBT_STATUS_PAID)
        },
    }


def get_overdue_report(now: datetime | None = None) -> dict:
    """Outstanding debts past due, grouped into aging buckets by days overdue."""
    now = now or utcnow()

    debts = (
        db.session.query(Debt)
        .filter(*_outstanding_filter(), Debt.due_date < now)
        .order_by(Debt.due_date.asc(), Debt.id.asc())
        .all()
    )

    groups = {label: {"count": 0, "amount_cents": 0} for label, _ in AGING_BUCKETS}
    for debt in debts:
        days_overdue = whole_days_between(debt.due_date, now)
        for label, upper in AGING_BUCKETS:
            if upper is None or days_overdue <= upper:
                groups[label]["count"] += 1
                groups[label]["amount_cents"] += debt.remaining_amount_cents
                break

    return {
        "count": len(debts),
        "total_overdue_cents": sum(d.remaining_amount_cents for d in debts),
        "groups": groups,
        "items": [debt.to_dict(include_payments=False) for debt in debts],
    }


def update_debt(debt_id: int, *, due_date: datetime | None = None, notes: str | None = None) -> Debt:
    """Admin edit of due date and notes; status follows the new due date."""
    def _op():
        debt = lock_for_update(db.session.query(Debt).filter_by(id=debt_id)).first()
        if not debt:
            raise DebtNotFoundError("Debt record not found")

        if due_date is not None:
            debt.due_date = due_date
            if debt.status != DEBT_STATUS_PAID:
                debt.status = derive_debt_status(debt.remaining_amount_cents, debt.due_date)
        if notes is not None:
            debt.notes = notes

        debt.updated_at = utcnow()
        db.session.commit()
        return debt

    return run_with_retry(_op)


def delete_all_debts() -> int:
    """Admin bulk delete. Payment history goes with the debts."""
    def _op():
        db.session.query(DebtPayment).delete(synchronize_session=False)
        count = db.session.query(Debt).delete(synchronize_session=False)
        db.session.commit()
        return count

    return run_with_retry(_op)


def send_reminder(debt_id: int) -> Debt:
    """
    Email the debtor a reminder.

    Raises:
        DebtNotFoundError
        DebtAlreadyPaidError: nothing outstanding
        DependencyFailureError: the mail collaborator failed
    """
    debt = get_debt(debt_id)
    if debt.status == DEBT_STATUS_PAID or debt.remaining_amount_cents <= 0:
        raise DebtAlreadyPaidError("This debt has already been fully paid")

    notification_service.send_debt_reminder(debt.user.email, {
        "username": debt.user.username,
        "debt_id": debt.id,
        "report_id": debt.report_id,
        "remaining_amount_cents": debt.remaining_amount_cents,
        "due_date": debt.due_date.date().isoformat(),
    })
    current_app.logger.info("Sent payment reminder for debt %s", debt.id)
    return debt
