"""
Login Throttling Service

WHY: Prevent brute-force password attacks by limiting failed login attempts.
After too many failures, the account is temporarily locked and login
returns 429.

- Tracks failed attempts per username/email in security_events
- Lockout after MAX_FAILED_ATTEMPTS failures within LOCKOUT_WINDOW
- Lockout lasts LOCKOUT_DURATION from the most recent failure
"""

from datetime import timedelta
from ..extensions import db
from ..models import SecurityEvent, User
from haven.time_utils import utcnow


MAX_FAILED_ATTEMPTS = 10  # Lock after 10 failed attempts
LOCKOUT_WINDOW = timedelta(minutes=15)  # Within 15 minutes
LOCKOUT_DURATION = timedelta(minutes=15)  # Lockout for 15 minutes

LOGIN_RESOURCE = "/api/auth/login"


def get_recent_failed_attempts(identifier: str) -> int:
    """Count LOGIN_FAILED events for this identifier within LOCKOUT_WINDOW."""
    cutoff = utcnow() - LOCKOUT_WINDOW

    # The identifier is stored in the 'action' field of security events
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == identifier,
        SecurityEvent.occurred_at >= cutoff
    ).count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    if get_recent_failed_attempts(identifier) < MAX_FAILED_ATTEMPTS:
        return False, None

    most_recent = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == identifier
    ).order_by(SecurityEvent.occurred_at.desc()).first()

    if most_recent:
        lockout_end = most_recent.occurred_at + LOCKOUT_DURATION
        now = utcnow()
        if now < lockout_end:
            return True, int((lockout_end - now).total_seconds())

    return False, None


def record_failed_attempt(
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials"
) -> int:
    """Record a failed login attempt; returns the recent failure count."""
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier)
    ).first()

    db.session.add(SecurityEvent(
        user_id=user.id if user else None,
        event_type="LOGIN_FAILED",
        resource=LOGIN_RESOURCE,
        action=identifier,
        success=False,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    ))
    db.session.commit()

    return get_recent_failed_attempts(identifier)


def record_successful_login(
    user_id: int,
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None
) -> None:
    db.session.add(SecurityEvent(
        user_id=user_id,
        event_type="LOGIN_SUCCESS",
        resource=LOGIN_RESOURCE,
        action=identifier,
        success=True,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    ))
    db.session.commit()


def get_lockout_status(identifier: str) -> dict:
    failed_count = get_recent_failed_attempts(identifier)
    is_locked, seconds_remaining = is_account_locked(identifier)

    return {
        "locked": is_locked,
        "failed_attempts": failed_count,
        "max_attempts": MAX_FAILED_ATTEMPTS,
        "seconds_until_unlock": seconds_remaining,
        "lockout_window_minutes": int(LOCKOUT_WINDOW.total_seconds() / 60),
        "lockout_duration_minutes": int(LOCKOUT_DURATION.total_seconds() / 60),
    }
