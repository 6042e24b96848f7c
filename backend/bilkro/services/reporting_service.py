# Overview: Read-side aggregations over reports, expenditures and stock for the dashboard.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func

from ..extensions import db
from ..models import Product, Report, ReportItem
from ..models.reports import REPORT_TYPE_EXPENDITURE
from ..errors import ValidationError
from ..time_utils import parse_iso_datetime, to_utc_z

PERIOD_FORMATS = {
    "daily": "%Y-%m-%d",
    "weekly": "%Y-W%W",
    "monthly": "%Y-%m",
    "yearly": "%Y",
}


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates")
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _period_expr(period: str):
    fmt = PERIOD_FORMATS.get(period)
    if fmt is None:
        raise ValidationError(f"period must be one of {', '.join(PERIOD_FORMATS)}")
    return func.strftime(fmt, Report.date)


def _in_range(query, start_dt, end_dt):
    if start_dt:
        query = query.filter(Report.date >= start_dt)
    if end_dt:
        query = query.filter(Report.date <= end_dt)
    return query


def _pct(numerator: int, denominator: int) -> float:
    return round(numerator / denominator * 100, 2) if denominator else 0.0


def _range_echo(start_dt, end_dt) -> dict:
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
    }


def sales_by_period(*, start: str | None = None, end: str | None = None, period: str = "daily") -> dict:
    start_dt, end_dt = _parse_range(start, end)
    period_expr = _period_expr(period)

    query = db.session.query(
        period_expr.label("period"),
        func.coalesce(func.sum(Report.total_revenue_cents), 0).label("revenue_cents"),
        func.coalesce(func.sum(Report.total_cost_cents), 0).label("cost_cents"),
        func.coalesce(func.sum(Report.total_profit_cents), 0).label("profit_cents"),
        func.coalesce(func.sum(Report.total_expenditures_cents), 0).label("expenditures_cents"),
        func.coalesce(func.sum(Report.net_profit_cents), 0).label("net_profit_cents"),
        func.sum(case((Report.report_type != REPORT_TYPE_EXPENDITURE, 1), else_=0)).label("order_count"),
    )
    rows = _in_range(query, start_dt, end_dt).group_by("period").order_by("period").all()

    return {
        "period": period,
        **_range_echo(start_dt, end_dt),
        "rows": [
            {
                "period": row.period,
                "revenue_cents": int(row.revenue_cents or 0),
                "cost_cents": int(row.cost_cents or 0),
                "profit_cents": int(row.profit_cents or 0),
                "expenditures_cents": int(row.expenditures_cents or 0),
                "net_profit_cents": int(row.net_profit_cents or 0),
                "order_count": int(row.order_count or 0),
            }
            for row in rows
        ],
    }


def _product_totals(start_dt, end_dt) -> dict[int | None, dict]:
    query = db.session.query(
        ReportItem.product_id,
        ReportItem.product_name,
        ReportItem.sku,
        ReportItem.category,
        func.sum(ReportItem.quantity).label("quantity"),
        func.sum(ReportItem.revenue_cents).label("revenue_cents"),
        func.sum(ReportItem.profit_cents).label("profit_cents"),
    ).join(Report, Report.id == ReportItem.report_id)
    query = _in_range(query, start_dt, end_dt).group_by(
        ReportItem.product_id, ReportItem.product_name, ReportItem.sku, ReportItem.category
    )

    totals: dict = {}
    for row in query.all():
        entry = totals.setdefault(row.product_id or row.sku, {
            "product_id": row.product_id,
            "name": row.product_name,
            "sku": row.sku,
            "category": row.category,
            "quantity": 0,
            "revenue_cents": 0,
            "profit_cents": 0,
        })
        entry["quantity"] += int(row.quantity or 0)
        entry["revenue_cents"] += int(row.revenue_cents or 0)
        entry["profit_cents"] += int(row.profit_cents or 0)
    return totals


def product_performance(
    *,
    start: str | None = None,
    end: str | None = None,
    limit: int = 10,
    sort_by: str = "revenue_cents",
) -> dict:
    """
    Top products by revenue, quantity or profit.

    growth_rate compares revenue with the preceding window of equal length;
    it is None without a closed range or when the product had no prior sales.
    """
    if sort_by not in {"revenue_cents", "quantity", "profit_cents"}:
        raise ValidationError("sort_by must be revenue_cents, quantity or profit_cents")
    start_dt, end_dt = _parse_range(start, end)

    current = _product_totals(start_dt, end_dt)
    previous: dict = {}
    if start_dt and end_dt:
        previous = _product_totals(start_dt - (end_dt - start_dt), start_dt)

    ranked = sorted(current.values(), key=lambda e: e[sort_by], reverse=True)[: max(limit, 1)]

    product_ids = [e["product_id"] for e in ranked if e["product_id"]]
    stock = dict(
        db.session.query(Product.id, Product.quantity).filter(Product.id.in_(product_ids)).all()
    ) if product_ids else {}

    rows = []
    for entry in ranked:
        key = entry["product_id"] or entry["sku"]
        prior = previous.get(key)
        growth = None
        if prior and prior["revenue_cents"]:
            growth = _pct(entry["revenue_cents"] - prior["revenue_cents"], prior["revenue_cents"])
        rows.append({
            **entry,
            "current_stock": stock.get(entry["product_id"]),
            "margin_pct": _pct(entry["profit_cents"], entry["revenue_cents"]),
            "growth_rate": growth,
        })

    return {**_range_echo(start_dt, end_dt), "sort_by": sort_by, "rows": rows}


def category_performance(*, start: str | None = None, end: str | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)

    query = db.session.query(
        ReportItem.category,
        func.sum(ReportItem.quantity).label("count"),
        func.sum(ReportItem.revenue_cents).label("revenue_cents"),
        func.sum(ReportItem.profit_cents).label("profit_cents"),
    ).join(Report, Report.id == ReportItem.report_id)
    rows = (
        _in_range(query, start_dt, end_dt)
        .group_by(ReportItem.category)
        .order_by(func.sum(ReportItem.revenue_cents).desc())
        .all()
    )

    total_revenue = sum(int(r.revenue_cents or 0) for r in rows)
    return {
        **_range_echo(start_dt, end_dt),
        "rows": [
            {
                "category": row.category,
                "count": int(row.count or 0),
                "revenue_cents": int(row.revenue_cents or 0),
                "profit_cents": int(row.profit_cents or 0),
                "margin_pct": _pct(int(row.profit_cents or 0), int(row.revenue_cents or 0)),
                "share_pct": _pct(int(row.revenue_cents or 0), total_revenue),
            }
            for row in rows
        ],
    }


def payment_methods(*, start: str | None = None, end: str | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)

    query = db.session.query(
        Report.payment_method,
        func.count(Report.id).label("count"),
        func.coalesce(func.sum(Report.total_revenue_cents), 0).label("revenue_cents"),
        func.coalesce(func.sum(Report.total_profit_cents), 0).label("profit_cents"),
    ).filter(Report.report_type != REPORT_TYPE_EXPENDITURE)
    rows = (
        _in_range(query, start_dt, end_dt)
        .group_by(Report.payment_method)
        .order_by(func.count(Report.id).desc())
        .all()
    )

    return {
        **_range_echo(start_dt, end_dt),
        "rows": [
            {
                "payment_method": row.payment_method,
                "count": int(row.count),
                "revenue_cents": int(row.revenue_cents),
                "profit_cents": int(row.profit_cents),
                "average_order_cents": int(row.revenue_cents) // int(row.count) if row.count else 0,
            }
            for row in rows
        ],
    }


def inventory_valuation() -> dict:
    """Stock valued at buying price, with retail value and a category breakdown."""
    products = db.session.query(Product).order_by(Product.category.asc(), Product.name.asc()).all()

    categories: dict[str, dict] = {}
    totals = {"quantity": 0, "value_cents": 0, "retail_value_cents": 0}
    low_stock = 0
    out_of_stock = 0

    for product in products:
        value = product.quantity * product.buying_price_cents
        retail = product.quantity * product.selling_price_cents

        bucket = categories.setdefault(
            product.category, {"product_count": 0, "quantity": 0, "value_cents": 0, "retail_value_cents": 0}
        )
        bucket["product_count"] += 1
        bucket["quantity"] += product.quantity
        bucket["value_cents"] += value
        bucket["retail_value_cents"] += retail

        totals["quantity"] += product.quantity
        totals["value_cents"] += value
        totals["retail_value_cents"] += retail

        if product.quantity <= 0:
            out_of_stock += 1
        elif product.needs_reordering:
            low_stock += 1

    return {
        "product_count": len(products),
        "total_quantity": totals["quantity"],
        "total_value_cents": totals["value_cents"],
        "total_retail_value_cents": totals["retail_value_cents"],
        "potential_profit_cents": totals["retail_value_cents"] - totals["value_cents"],
        "low_stock_count": low_stock,
        "out_of_stock_count": out_of_stock,
        "categories": categories,
    }


def profit_and_loss(*, start: str | None = None, end: str | None = None, period: str = "monthly") -> dict:
    sales = sales_by_period(start=start, end=end, period=period)

    rows = []
    summary = {"revenue_cents": 0, "cost_cents": 0, "gross_profit_cents": 0, "expenditures_cents": 0, "net_profit_cents": 0}
    for row in sales["rows"]:
        gross = row["profit_cents"]
        net = gross - row["expenditures_cents"]
        rows.append({
            "period": row["period"],
            "revenue_cents": row["revenue_cents"],
            "cost_cents": row["cost_cents"],
            "gross_profit_cents": gross,
            "expenditures_cents": row["expenditures_cents"],
            "net_profit_cents": net,
            "gross_margin_pct": _pct(gross, row["revenue_cents"]),
            "net_margin_pct": _pct(net, row["revenue_cents"]),
        })
        summary["revenue_cents"] += row["revenue_cents"]
        summary["cost_cents"] += row["cost_cents"]
        summary["gross_profit_cents"] += gross
        summary["expenditures_cents"] += row["expenditures_cents"]
        summary["net_profit_cents"] += net

    summary["gross_margin_pct"] = _pct(summary["gross_profit_cents"], summary["revenue_cents"])
    summary["net_margin_pct"] = _pct(summary["net_profit_cents"], summary["revenue_cents"])

    return {
        "period": period,
        "start": sales["start"],
        "end": sales["end"],
        "rows": rows,
        "summary": summary,
    }
