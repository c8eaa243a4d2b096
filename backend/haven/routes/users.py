# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User administration routes.

SECURITY: Every route requires (manage, users), which only ADMIN holds.
Role changes, password changes and deactivation revoke the target user's
sessions and are written to the security audit trail.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import user_service, permission_service
from ..services.auth_service import PasswordValidationError
from ..validation import ValidationError, NotFoundError, ConflictError
from ..decorators import require_auth, require_permission


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _audit(event_type: str, target_id: int, reason: str | None = None) -> None:
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type=event_type,
        success=True,
        resource=request.path,
        action=f"user:{target_id}",
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


@users_bp.get("")
@require_auth
@require_permission("manage", "users")
def list_users_route():
    users = user_service.list_users()
    return jsonify({"users": [u.to_dict() for u in users]})


@users_bp.post("")
@require_auth
@require_permission("manage", "users")
def create_user_route():
    payload = request.get_json(silent=True) or {}

    try:
        user = user_service.create_user(payload)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except PasswordValidationError as e:
        return jsonify({"error": str(e), "field": "password"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    _audit("USER_CREATED", user.id, reason=f"role={user.role}")
    current_app.logger.info("Created user %s", user.id)
    return jsonify({"user": user.to_dict()}), 201


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("manage", "users")
def get_user_route(user_id: int):
    try:
        return jsonify({"user": user_service.get_user_detail(user_id)})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@users_bp.get("/<int:user_id>/stats")
@require_auth
@require_permission("manage", "users")
def user_stats_route(user_id: int):
    try:
        return jsonify(user_service.user_stats(user_id))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("manage", "users")
def update_user_route(user_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        previous_role = user_service.get_user(user_id).role
        user = user_service.update_user(user_id, payload)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except PasswordValidationError as e:
        return jsonify({"error": str(e), "field": "password"}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500

    if user.role != previous_role:
        _audit("ROLE_CHANGED", user.id, reason=f"{previous_role} -> {user.role}")
    return jsonify({"user": user.to_dict()})


@users_bp.post("/<int:user_id>/deactivate")
@require_auth
@require_permission("manage", "users")
def deactivate_user_route(user_id: int):
    if user_id == g.current_user.id:
        return jsonify({"error": "Cannot deactivate your own account"}), 400

    try:
        user = user_service.deactivate_user(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    _audit("USER_DEACTIVATED", user.id)
    current_app.logger.info("Deactivated user %s", user.id)
    return jsonify({"user": user.to_dict()})
