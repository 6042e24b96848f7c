# Overview: Flask API routes for reports and dashboard analytics; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import report_service, reporting_service
from ..errors import ServiceError, ValidationError
from ..models.reports import REPORT_TYPE_EXPENDITURE, REPORT_TYPE_MIXED, REPORT_TYPE_SALE
from ..validation import to_choice
from ..time_utils import parse_iso_datetime
from ..decorators import require_auth, require_admin


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args() -> dict:
    return {"start": request.args.get("start"), "end": request.args.get("end")}


@reports_bp.get("")
@require_auth
@require_admin
def list_reports_route():
    try:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            raise ValidationError("start and end must be ISO-8601 dates")

        return jsonify(report_service.list_reports(
            report_type=to_choice(
                request.args.get("type"), "type",
                (REPORT_TYPE_SALE, REPORT_TYPE_EXPENDITURE, REPORT_TYPE_MIXED),
            ),
            start=start,
            end=end,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/<int:report_id>")
@require_auth
@require_admin
def get_report_route(report_id: int):
    try:
        return jsonify({"report": report_service.get_report(report_id).to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.delete("/<int:report_id>")
@require_auth
@require_admin
def delete_report_route(report_id: int):
    try:
        report_service.delete_report(report_id)
        return jsonify({"ok": True}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.delete("")
@require_auth
@require_admin
def delete_all_reports_route():
    try:
        count = report_service.delete_all_reports()
        return jsonify({"message": f"Successfully deleted {count} reports", "deleted_count": count}), 200
    except Exception:
        current_app.logger.exception("Failed to delete reports")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/sales")
@require_auth
@require_admin
def sales_route():
    """Query params: start, end (ISO-8601), period (daily|weekly|monthly|yearly)."""
    try:
        return jsonify(reporting_service.sales_by_period(
            **_range_args(), period=request.args.get("period", "daily"),
        )), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/products")
@require_auth
@require_admin
def products_route():
    try:
        return jsonify(reporting_service.product_performance(
            **_range_args(),
            limit=request.args.get("limit", 10, type=int),
            sort_by=request.args.get("sort_by", "revenue_cents"),
        )), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/categories")
@require_auth
@require_admin
def categories_route():
    try:
        return jsonify(reporting_service.category_performance(**_range_args())), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/payment-methods")
@require_auth
@require_admin
def payment_methods_route():
    try:
        return jsonify(reporting_service.payment_methods(**_range_args())), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/inventory")
@require_auth
@require_admin
def inventory_route():
    return jsonify(reporting_service.inventory_valuation()), 200


@reports_bp.get("/profit-loss")
@require_auth
@require_admin
def profit_loss_route():
    try:
        return jsonify(reporting_service.profit_and_loss(
            **_range_args(), period=request.args.get("period", "monthly"),
        )), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
