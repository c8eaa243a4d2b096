# Overview: Flask API routes for notifications; parses input and returns JSON responses.

"""
Notification routes.

Reading, marking read and preferences only require a session; what a caller
sees is filtered by the role claim. Creating and deleting notifications
requires (manage, notifications).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import notification_service
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_permission


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    items = notification_service.list_notifications(
        user_id=g.current_user.id,
        role=g.role,
        notification_type=request.args.get("type"),
        priority=request.args.get("priority"),
        unread_only=unread_only,
    )
    return jsonify({
        "notifications": [n.to_dict(for_user_id=g.current_user.id) for n in items]
    })


@notifications_bp.post("")
@require_auth
@require_permission("manage", "notifications")
def create_notification_route():
    payload = request.get_json(silent=True) or {}

    try:
        notification = notification_service.create_notification(payload, g.current_user.id)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to create notification")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"notification": notification.to_dict()}), 201


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_as_read(notification_id, g.current_user.id, g.role)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"notification": notification.to_dict(for_user_id=g.current_user.id)})


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    count = notification_service.mark_all_as_read(g.current_user.id, g.role)
    return jsonify({"marked": count})


@notifications_bp.delete("/<int:notification_id>")
@require_auth
@require_permission("manage", "notifications")
def delete_notification_route(notification_id: int):
    try:
        notification_service.delete_notification(notification_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return "", 204


@notifications_bp.get("/preferences")
@require_auth
def get_preferences_route():
    prefs = notification_service.get_preferences(g.current_user.id)
    return jsonify({"preferences": prefs.to_dict()})


@notifications_bp.put("/preferences")
@require_auth
def update_preferences_route():
    payload = request.get_json(silent=True) or {}

    try:
        prefs = notification_service.update_preferences(g.current_user.id, payload)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    return jsonify({"preferences": prefs.to_dict()})
