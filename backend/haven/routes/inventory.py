# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Inventory item routes.

SECURITY: All routes require authentication.
- Listing and lookups require (read, inventory)
- Stats require (read, reports)
- Create/update/delete require the matching action on inventory

Quantity is never lowered here; only sales decrement stock.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..services import inventory_service
from ..validation import ConflictError, ValidationError, NotFoundError
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_permission("read", "inventory")
def list_inventory_route():
    category = request.args.get("category")
    items = inventory_service.list_items(category)
    return jsonify({"items": [item.to_dict() for item in items]})


@inventory_bp.get("/low-stock")
@require_auth
@require_permission("read", "inventory")
def low_stock_route():
    threshold = request.args.get("threshold", type=int)
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    items = inventory_service.low_stock_items(threshold)
    return jsonify({
        "threshold": threshold,
        "items": [item.to_dict() for item in items],
    })


@inventory_bp.get("/stats")
@require_auth
@require_permission("read", "reports")
def inventory_stats_route():
    return jsonify(inventory_service.inventory_stats())


@inventory_bp.get("/<int:item_id>")
@require_auth
@require_permission("read", "inventory")
def get_inventory_route(item_id: int):
    try:
        item = inventory_service.get_item(item_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"item": item.to_dict()})


@inventory_bp.post("")
@require_auth
@require_permission("create", "inventory")
def create_inventory_route():
    payload = request.get_json(silent=True) or {}

    try:
        item = inventory_service.create_item(payload, g.current_user.id)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to create inventory item")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Created inventory item %s", item.id)
    return jsonify({"item": item.to_dict()}), 201


@inventory_bp.put("/<int:item_id>")
@require_auth
@require_permission("update", "inventory")
def update_inventory_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        item = inventory_service.update_item(item_id, payload, g.current_user.id)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        current_app.logger.warning("Inventory update conflict on item %s", item_id)
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update inventory item")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Updated inventory item %s", item.id)
    return jsonify({"item": item.to_dict()})


@inventory_bp.delete("/<int:item_id>")
@require_auth
@require_permission("delete", "inventory")
def delete_inventory_route(item_id: int):
    try:
        inventory_service.delete_item(item_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        current_app.logger.warning("Inventory delete conflict on item %s", item_id)
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete inventory item")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Deleted inventory item %s", item_id)
    return "", 204
