# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import sales_service
from ..services.sales_service import (
    SaleError,
    ItemNotFoundError,
    InsufficientStockError,
    TransactionConflictError,
)
from ..services.reporting_service import ReportError, parse_range
from ..validation import ValidationError
from ..decorators import require_auth, require_permission
from haven.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_permission("create", "sales")
def create_sale_route():
    """
    Sell an inventory item.

    Body: item_id, quantity, selling_price_cents. The attendant is the
    authenticated caller. Below-cost and low-margin sales succeed and carry
    warnings.
    """
    data = request.get_json(silent=True) or {}
    item_id = data.get("item_id")

    if item_id is None:
        return jsonify({"error": "item_id is required", "field": "item_id"}), 400
    if not isinstance(item_id, int) or isinstance(item_id, bool):
        return jsonify({"error": "item_id must be an integer", "field": "item_id"}), 400

    try:
        sale = sales_service.create_sale(
            item_id,
            data.get("quantity"),
            data.get("selling_price_cents"),
            g.current_user.id,
            attempts=current_app.config["SALE_COMMIT_ATTEMPTS"],
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except ItemNotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except TransactionConflictError as e:
        current_app.logger.warning("Sale conflict on item %s", item_id)
        return jsonify({"error": str(e), "details": e.details}), 409
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    warnings = sales_service.margin_warnings(sale, current_app.config["LOW_MARGIN_PERCENT"])
    current_app.logger.info("Created sale %s", sale.id)
    return jsonify({"sale": sale.to_dict(), "warnings": warnings}), 201


@sales_bp.get("")
@require_auth
@require_permission("read", "reports")
def list_sales_route():
    try:
        start = parse_iso_datetime(request.args.get("start_date"))
        end = parse_iso_datetime(request.args.get("end_date"), end_of_day=True)
    except ValueError:
        return jsonify({"error": "Dates must be ISO-8601"}), 400

    sales = sales_service.list_sales(start, end)
    return jsonify({"sales": [s.to_dict() for s in sales]})


@sales_bp.get("/date-range")
@require_auth
@require_permission("read", "reports")
def sales_by_date_range_route():
    """Both start_date and end_date are required; the range is inclusive."""
    try:
        start, end = parse_range(request.args.get("start_date"), request.args.get("end_date"))
    except ReportError as e:
        return jsonify({"error": str(e)}), 400

    sales = sales_service.list_sales(start, end)
    return jsonify({"sales": [s.to_dict() for s in sales]})


@sales_bp.get("/stats")
@require_auth
@require_permission("read", "reports")
def sales_stats_route():
    try:
        start = parse_iso_datetime(request.args.get("start_date"))
        end = parse_iso_datetime(request.args.get("end_date"), end_of_day=True)
    except ValueError:
        return jsonify({"error": "Dates must be ISO-8601"}), 400

    return jsonify(sales_service.sale_stats(start, end))
