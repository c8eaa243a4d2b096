# Overview: Service-layer operations for permission checks; wraps the static policy with audit logging.

"""
Permission Checking and Security Event Logging

WHY: permissions.can() is the pure decision; this module adds the audit
trail. Denials are written to security_events, grants are not.
"""

from ..extensions import db
from ..models import SecurityEvent
from ..permissions import can, grants_for
from haven.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when a role lacks the (action, subject) grant."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append a row to the security audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED / LOGIN_SUCCESS
    - LOGOUT
    - USER_CREATED / USER_DEACTIVATED / ROLE_CHANGED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def require_permission(
    *,
    user_id: int | None,
    role: str | None,
    action: str,
    subject: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Raise PermissionDeniedError (after logging it) unless ``role`` may
    perform ``action`` on ``subject``.
    """
    if can(role, action, subject):
        return

    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=f"{action}:{subject}",
        reason=f"Role {role or 'NONE'} lacks {action} on {subject}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(f"Permission denied: {action} {subject}")


def describe_grants(role: str | None) -> list[dict]:
    return [grant.to_dict() for grant in grants_for(role)]
