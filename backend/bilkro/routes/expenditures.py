# Overview: Flask API routes for expenditure operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import expenditure_service
from ..errors import ServiceError, ValidationError
from ..models.expenditures import (
    EXPENDITURE_CATEGORIES,
    EXPENDITURE_STATUS_APPROVED,
    EXPENDITURE_STATUS_COMPLETED,
    EXPENDITURE_STATUS_PENDING,
    EXPENDITURE_STATUS_REJECTED,
)
from ..validation import to_choice, to_int, to_text
from ..time_utils import parse_iso_datetime
from ..decorators import require_auth, require_admin


expenditures_bp = Blueprint("expenditures", __name__, url_prefix="/api/expenditures")

EXPENDITURE_STATUSES = (
    EXPENDITURE_STATUS_PENDING,
    EXPENDITURE_STATUS_APPROVED,
    EXPENDITURE_STATUS_REJECTED,
    EXPENDITURE_STATUS_COMPLETED,
)


def _date_range():
    try:
        return parse_iso_datetime(request.args.get("start")), parse_iso_datetime(request.args.get("end"))
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates")


@expenditures_bp.post("")
@require_auth
def create_expenditure_route():
    """
    Body: {"amount_cents", "description", "employee_name", "category", "notes", "receipt_image_url"}

    Amounts at or below the auto-approve limit come back already approved.
    """
    try:
        expenditure = expenditure_service.create_expenditure(
            request.get_json(silent=True) or {}, user=g.current_user
        )
        auto = expenditure.status == EXPENDITURE_STATUS_APPROVED
        return jsonify({
            "message": "Expenditure created and automatically approved" if auto else "Expenditure created successfully",
            "expenditure": expenditure.to_dict(),
        }), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create expenditure")
        return jsonify({"error": "Internal server error"}), 500


@expenditures_bp.get("")
@require_auth
def list_expenditures_route():
    try:
        start, end = _date_range()
        return jsonify(expenditure_service.list_expenditures(
            start=start,
            end=end,
            status=to_choice(request.args.get("status"), "status", EXPENDITURE_STATUSES),
            category=to_choice(request.args.get("category"), "category", EXPENDITURE_CATEGORIES),
            employee_id=to_int(request.args.get("employee_id"), "employee_id"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 10, type=int),
        )), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@expenditures_bp.get("/statistics")
@require_auth
@require_admin
def expenditure_statistics_route():
    try:
        start, end = _date_range()
        return jsonify(expenditure_service.get_expenditure_statistics(start=start, end=end)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@expenditures_bp.get("/<int:expenditure_id>")
@require_auth
def get_expenditure_route(expenditure_id: int):
    try:
        return jsonify({"expenditure": expenditure_service.get_expenditure(expenditure_id).to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@expenditures_bp.put("/<int:expenditure_id>")
@require_auth
def update_expenditure_route(expenditure_id: int):
    try:
        expenditure = expenditure_service.update_expenditure(
            expenditure_id, request.get_json(silent=True) or {}, user=g.current_user
        )
        return jsonify({"expenditure": expenditure.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update expenditure")
        return jsonify({"error": "Internal server error"}), 500


@expenditures_bp.delete("/<int:expenditure_id>")
@require_auth
def delete_expenditure_route(expenditure_id: int):
    try:
        expenditure_service.delete_expenditure(expenditure_id, user=g.current_user)
        return jsonify({"message": "Expenditure deleted successfully"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete expenditure")
        return jsonify({"error": "Internal server error"}), 500


@expenditures_bp.post("/<int:expenditure_id>/approve")
@require_auth
@require_admin
def approve_expenditure_route(expenditure_id: int):
    try:
        expenditure = expenditure_service.approve_expenditure(expenditure_id, admin=g.current_user)
        return jsonify({"expenditure": expenditure.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve expenditure")
        return jsonify({"error": "Internal server error"}), 500


@expenditures_bp.post("/<int:expenditure_id>/reject")
@require_auth
@require_admin
def reject_expenditure_route(expenditure_id: int):
    try:
        data = request.get_json(silent=True) or {}
        expenditure = expenditure_service.reject_expenditure(
            expenditure_id,
            admin=g.current_user,
            reason=to_text(data.get("reason"), "reason", max_length=500),
        )
        return jsonify({"expenditure": expenditure.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject expenditure")
        return jsonify({"error": "Internal server error"}), 500


@expenditures_bp.post("/<int:expenditure_id>/complete")
@require_auth
@require_admin
def complete_expenditure_route(expenditure_id: int):
    try:
        expenditure = expenditure_service.complete_expenditure(expenditure_id, admin=g.current_user)
        return jsonify({
            "message": "Expenditure completed and added to reports successfully",
            "expenditure": expenditure.to_dict(),
        }), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete expenditure")
        return jsonify({"error": "Internal server error"}), 500
