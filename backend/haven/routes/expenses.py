# Overview: Flask API routes for expense operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import expense_service
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_permission
from haven.time_utils import parse_iso_datetime


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _date_args():
    return (
        parse_iso_datetime(request.args.get("start_date")),
        parse_iso_datetime(request.args.get("end_date"), end_of_day=True),
    )


@expenses_bp.get("")
@require_auth
@require_permission("read", "expenses")
def list_expenses_route():
    try:
        start, end = _date_args()
    except ValueError:
        return jsonify({"error": "Dates must be ISO-8601"}), 400

    expenses = expense_service.list_expenses(
        category=request.args.get("category"), start=start, end=end
    )
    return jsonify({"expenses": [e.to_dict() for e in expenses]})


@expenses_bp.get("/stats")
@require_auth
@require_permission("read", "expenses")
def expense_stats_route():
    try:
        start, end = _date_args()
    except ValueError:
        return jsonify({"error": "Dates must be ISO-8601"}), 400

    return jsonify(expense_service.expense_stats(start, end))


@expenses_bp.post("")
@require_auth
@require_permission("create", "expenses")
def create_expense_route():
    payload = request.get_json(silent=True) or {}

    try:
        expense = expense_service.create_expense(payload, g.current_user.id)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Created expense %s", expense.id)
    return jsonify({"expense": expense.to_dict()}), 201


@expenses_bp.put("/<int:expense_id>")
@require_auth
@require_permission("update", "expenses")
def update_expense_route(expense_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        expense = expense_service.update_expense(expense_id, payload)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"expense": expense.to_dict()})


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_permission("delete", "expenses")
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(expense_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    current_app.logger.info("Deleted expense %s", expense_id)
    return "", 204
