# Overview: Flask API routes for reports; parses input and returns JSON responses.

"""
Read-only aggregate reports. All require (read, reports).

Dated reports take start_date and end_date (ISO-8601, both required,
inclusive).
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..decorators import require_auth, require_permission


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range():
    return reporting_service.parse_range(
        request.args.get("start_date"),
        request.args.get("end_date"),
    )


@reports_bp.get("/sales-summary")
@require_auth
@require_permission("read", "reports")
def sales_summary_route():
    try:
        start, end = _range()
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(reporting_service.sales_summary(start, end))


@reports_bp.get("/profit-analysis")
@require_auth
@require_permission("read", "reports")
def profit_analysis_route():
    try:
        start, end = _range()
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(reporting_service.profit_analysis(start, end))


@reports_bp.get("/inventory-value")
@require_auth
@require_permission("read", "reports")
def inventory_value_route():
    threshold = request.args.get("threshold", type=int)
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    return jsonify(reporting_service.inventory_value(threshold))


@reports_bp.get("/expense-summary")
@require_auth
@require_permission("read", "reports")
def expense_summary_route():
    try:
        start, end = _range()
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(reporting_service.expense_summary(start, end))
