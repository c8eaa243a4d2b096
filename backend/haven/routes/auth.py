# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Login throttling to prevent brute-force attacks
- Account lockout after repeated failed attempts
- Session management with opaque token-based auth

There is no self-registration; accounts are created by an ADMIN through
/api/users or with `flask users create`.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import login_throttle_service
from ..services import permission_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info, the role's grants and the session token on success.
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("email") or data.get("username") or data.get("identifier")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({"error": "email/username and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(identifier)
        if is_locked:
            minutes_remaining = (seconds_remaining // 60) + 1 if seconds_remaining else 15
            return jsonify({
                "error": "Account temporarily locked due to too many failed login attempts",
                "locked": True,
                "retry_after_seconds": seconds_remaining,
                "retry_after_minutes": minutes_remaining,
            }), 429

        user = auth_service.authenticate(identifier, password)

        if not user:
            failed_count = login_throttle_service.record_failed_attempt(
                identifier=identifier,
                ip_address=ip_address,
                user_agent=user_agent,
                reason="Invalid credentials"
            )

            remaining = login_throttle_service.MAX_FAILED_ATTEMPTS - failed_count

            if remaining <= 0:
                return jsonify({
                    "error": "Account locked due to too many failed login attempts",
                    "locked": True,
                    "retry_after_minutes": 15,
                }), 429
            elif remaining <= 3:
                return jsonify({
                    "error": "Invalid credentials",
                    "warning": f"{remaining} attempts remaining before account lockout"
                }), 401
            else:
                return jsonify({"error": "Invalid credentials"}), 401

        login_throttle_service.record_successful_login(
            user_id=user.id,
            identifier=identifier,
            ip_address=ip_address,
            user_agent=user_agent
        )

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )

        current_app.logger.info("User %s logged in", user.id)
        return jsonify({
            "user": user.to_dict(),
            "grants": permission_service.describe_grants(session.role),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session behind the presented token."""
    token = request.headers["Authorization"].split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")

    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="LOGOUT",
        success=True,
        resource=request.path,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "role": g.role,
        "grants": permission_service.describe_grants(g.role),
        "session": g.session_context.session.to_dict(),
    })


@auth_bp.get("/lockout-status/<identifier>")
def lockout_status_route(identifier: str):
    """
    Check lockout status for an account.

    Public so a locked-out user can see when to retry.
    """
    status = login_throttle_service.get_lockout_status(identifier)
    return jsonify(status)
