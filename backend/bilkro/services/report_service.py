# Overview: Service-layer operations for settlement reports; encapsulates business logic and database work.

"""
Report Aggregate (write side)

A report is written once by checkout. Afterwards it moves only through two
side channels: expenditure posting (this module) and debt payments
(debt_service mirrors paid/remaining/status back onto the report).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import select

from ..extensions import db
from ..models import Debt, DebtPayment, Report, ReportCategory, ReportExpenditure, ReportItem
from ..models.reports import REPORT_TYPE_EXPENDITURE, REPORT_TYPE_MIXED, REPORT_TYPE_SALE
from ..errors import ReportNotFoundError, ValidationError
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry

EXPENDITURE_PAYMENT_METHOD = "expenditure"


@dataclass
class SettlementLines:
    """Priced and costed lines of one settlement, with their rollups."""
    items: list[ReportItem] = field(default_factory=list)
    categories: dict[str, dict] = field(default_factory=dict)
    total_cost_cents: int = 0
    total_profit_cents: int = 0


def build_settlement_lines(lines) -> SettlementLines:
    """
    Cost every (cart_item, product) pair.

    cost = buying price x qty, revenue = snapshotted unit price x qty,
    profit = revenue - cost. Category rollups count units.
    """
    result = SettlementLines()
    for cart_item, product in lines:
        quantity = cart_item.quantity
        cost = product.buying_price_cents * quantity
        revenue = cart_item.unit_price_cents * quantity
        profit = revenue - cost

        result.items.append(ReportItem(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            category=product.category,
            unit=product.unit,
            quantity=quantity,
            buying_price_cents=product.buying_price_cents,
            selling_price_cents=cart_item.unit_price_cents,
            cost_cents=cost,
            revenue_cents=revenue,
            profit_cents=profit,
        ))

        bucket = result.categories.setdefault(
            product.category, {"count": 0, "revenue_cents": 0, "profit_cents": 0}
        )
        bucket["count"] += quantity
        bucket["revenue_cents"] += revenue
        bucket["profit_cents"] += profit

        result.total_cost_cents += cost
        result.total_profit_cents += profit
    return result


def create_sale_report(
    *,
    user_id: int,
    settlement: SettlementLines,
    total_revenue_cents: int,
    discount_cents: int,
    payment_method: str,
    payment_status: str,
    amount_paid_cents: int,
    remaining_balance_cents: int,
    customer: dict | None = None,
    now: datetime | None = None,
) -> Report:
    """Stage a sale report. Flushes for an id; the caller commits."""
    now = now or utcnow()
    customer = customer or {}

    report = Report(
        date=now,
        report_type=REPORT_TYPE_SALE,
        user_id=user_id,
        discount_cents=discount_cents,
        total_revenue_cents=total_revenue_cents,
        total_cost_cents=settlement.total_cost_cents,
        total_profit_cents=settlement.total_profit_cents,
        total_expenditures_cents=0,
        net_profit_cents=settlement.total_profit_cents,
        payment_method=payment_method,
        payment_status=payment_status,
        amount_paid_cents=amount_paid_cents,
        remaining_balance_cents=remaining_balance_cents,
        customer_name=customer.get("name"),
        customer_email=customer.get("email"),
        customer_phone=customer.get("phone"),
        customer_address=customer.get("address"),
        created_at=now,
    )
    report.items.extend(settlement.items)
    for category, figures in settlement.categories.items():
        report.categories.append(ReportCategory(category=category, **figures))

    db.session.add(report)
    db.session.flush()
    return report


def _latest_report():
    return lock_for_update(
        db.session.query(Report).order_by(Report.date.desc(), Report.id.desc())
    ).first()


def post_expenditure(expenditure, *, user_id: int | None = None) -> Report:
    """
    Append a completed expenditure to the most recent report.

    Creates an expenditure-type report when none exists. Revenue is left
    alone unless EXPENDITURES_REDUCE_REVENUE is set. Does not commit.
    """
    reduce_revenue = current_app.config.get("EXPENDITURES_REDUCE_REVENUE", False)
    now = utcnow()

    report = _latest_report()
    if report is None:
        report = Report(
            date=now,
            report_type=REPORT_TYPE_EXPENDITURE,
            user_id=user_id,
            payment_method=EXPENDITURE_PAYMENT_METHOD,
            created_at=now,
        )
        db.session.add(report)
    elif report.report_type == REPORT_TYPE_SALE:
        report.report_type = REPORT_TYPE_MIXED

    report.expenditures.append(ReportExpenditure(
        expenditure_id=expenditure.id,
        amount_cents=expenditure.amount_cents,
        description=expenditure.description,
        category=expenditure.category,
        employee_name=expenditure.employee_name,
        posted_at=now,
    ))

    report.total_expenditures_cents = (report.total_expenditures_cents or 0) + expenditure.amount_cents
    if reduce_revenue:
        report.total_revenue_cents = (report.total_revenue_cents or 0) - expenditure.amount_cents
    report.net_profit_cents = (report.total_profit_cents or 0) - report.total_expenditures_cents

    db.session.flush()
    return report


def get_report(report_id: int) -> Report:
    report = db.session.get(Report, report_id)
    if not report:
        raise ReportNotFoundError("Report not found")
    return report


def list_reports(
    *,
    report_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    if start and end and start > end:
        raise ValidationError("start must be before end")
    per_page = min(max(per_page, 1), 100)
    page = max(page, 1)

    query = db.session.query(Report)
    if report_type:
        query = query.filter(Report.report_type == report_type)
    if start:
        query = query.filter(Report.date >= start)
    if end:
        query = query.filter(Report.date <= end)

    total = query.count()
    reports = (
        query.order_by(Report.date.desc(), Report.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [report.to_dict(include_items=False) for report in reports],
        "count": len(reports),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page if total > 0 else 1,
        },
    }


def _delete_debts_for(report_ids) -> None:
    debt_ids = select(Debt.id).where(Debt.report_id.in_(report_ids))
    db.session.query(DebtPayment).filter(DebtPayment.debt_id.in_(debt_ids)).delete(synchronize_session=False)
    db.session.query(Debt).filter(Debt.report_id.in_(report_ids)).delete(synchronize_session=False)


def delete_report(report_id: int) -> None:
    """Delete one report together with the debt it spawned."""
    def _op():
        report = get_report(report_id)
        _delete_debts_for([report.id])
        db.session.delete(report)
        db.session.commit()

    run_with_retry(_op)


def delete_all_reports() -> int:
    def _op():
        reports = db.session.query(Report).all()
        if reports:
            _delete_debts_for([r.id for r in reports])
        for report in reports:
            db.session.delete(report)
        db.session.commit()
        return len(reports)

    count = run_with_retry(_op)
    current_app.logger.info("Deleted %s report(s)", count)
    return count
