# Overview: Flask API routes for debt ledger operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import debt_service
from ..errors import InvalidAmountError, ServiceError, ValidationError
from ..models.debts import DEBT_STATUSES
from ..validation import to_cents, to_choice, to_text
from ..time_utils import parse_iso_datetime
from ..decorators import require_auth, require_admin


debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.get("")
@require_auth
def list_my_debts_route():
    try:
        status = to_choice(request.args.get("status"), "status", DEBT_STATUSES)
        debts = debt_service.list_user_debts(g.current_user.id, status=status)
        return jsonify({"items": [d.to_dict() for d in debts], "count": len(debts)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@debts_bp.get("/statistics")
@require_auth
def debt_statistics_route():
    """Outstanding totals. Admins see the whole ledger, others their own debts."""
    user = g.current_user
    stats = debt_service.get_debt_statistics(user_id=None if user.is_admin else user.id)
    return jsonify(stats), 200


@debts_bp.get("/all")
@require_auth
@require_admin
def list_all_debts_route():
    """
    Query params: status, page, per_page, sort_by (due_date, created_at,
    remaining_amount_cents, original_amount_cents), sort_order (asc|desc).
    """
    try:
        return jsonify(debt_service.list_debts(
            status=to_choice(request.args.get("status"), "status", DEBT_STATUSES),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 10, type=int),
            sort_by=request.args.get("sort_by", "due_date"),
            sort_order=request.args.get("sort_order", "asc"),
        )), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@debts_bp.get("/overdue")
@require_auth
@require_admin
def overdue_debts_route():
    return jsonify(debt_service.get_overdue_report()), 200


@debts_bp.get("/<int:debt_id>")
@require_auth
def get_debt_route(debt_id: int):
    try:
        debt = debt_service.get_debt(debt_id, user=g.current_user)
        return jsonify({"debt": debt.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@debts_bp.post("/<int:debt_id>/payments")
@require_auth
def record_payment_route(debt_id: int):
    """
    Body: {"amount_cents": int, "payment_method": str, "notes": str}

    400 non-positive amount, 404 unknown debt, 409 overpayment or already paid.
    """
    try:
        data = request.get_json(silent=True) or {}
        try:
            amount = to_cents(data.get("amount_cents"), "amount_cents")
        except ValidationError:
            raise InvalidAmountError("Valid payment amount is required")

        debt = debt_service.record_payment(
            debt_id,
            amount,
            payment_method=to_text(data.get("payment_method"), "payment_method", max_length=64) or "cash",
            notes=to_text(data.get("notes"), "notes", max_length=1000),
            user=g.current_user,
        )
        return jsonify({"message": "Payment recorded successfully", "debt": debt.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record debt payment")
        return jsonify({"error": "Internal server error"}), 500


@debts_bp.patch("/<int:debt_id>")
@require_auth
@require_admin
def update_debt_route(debt_id: int):
    """Body: {"due_date": ISO-8601, "notes": str}."""
    try:
        data = request.get_json(silent=True) or {}
        try:
            due_date = parse_iso_datetime(data.get("due_date")) if data.get("due_date") else None
        except ValueError:
            raise ValidationError("due_date must be an ISO-8601 date")

        debt = debt_service.update_debt(
            debt_id,
            due_date=due_date,
            notes=to_text(data.get("notes"), "notes", max_length=1000) if "notes" in data else None,
        )
        return jsonify({"debt": debt.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update debt")
        return jsonify({"error": "Internal server error"}), 500


@debts_bp.post("/<int:debt_id>/remind")
@require_auth
@require_admin
def send_reminder_route(debt_id: int):
    try:
        debt_service.send_reminder(debt_id)
        return jsonify({"message": "Payment reminder sent successfully"}), 200
    except ServiceError as e:
        if e.status_code >= 500:
            current_app.logger.exception("Failed to send reminder for debt %s", debt_id)
        return jsonify(e.to_dict()), e.status_code


@debts_bp.delete("")
@require_auth
@require_admin
def delete_all_debts_route():
    try:
        count = debt_service.delete_all_debts()
        return jsonify({"message": f"Successfully deleted {count} debt records", "deleted_count": count}), 200
    except Exception:
        current_app.logger.exception("Failed to delete debt records")
        return jsonify({"error": "Internal server error"}), 500
