# Overview: Retention sweeps for the audit trail and dead sessions; shop data is never swept.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import SecurityEvent
from . import login_throttle_service, session_service
from haven.time_utils import utcnow


# Failed logins this recent still decide lockouts.
LOCKOUT_SPAN = login_throttle_service.LOCKOUT_WINDOW + login_throttle_service.LOCKOUT_DURATION


def _check_window(days: int, label: str, floor: timedelta = timedelta(days=1)) -> None:
    if days < 1 or timedelta(days=days) < floor:
        raise ValueError(f"{label} retention must be at least one day")


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """
    Delete security events older than retention_days.

    The window must cover LOCKOUT_SPAN; raises ValueError otherwise.
    """
    _check_window(retention_days, "Security event", LOCKOUT_SPAN)

    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_sessions(*, older_than_days: int = 30) -> int:
    _check_window(older_than_days, "Session")
    return session_service.cleanup_expired_sessions(older_than_days=older_than_days)


def run_all(*, session_days: int = 30, event_days: int = 90) -> dict:
    """Both sweeps; returns deleted row counts keyed by table."""
    return {
        "sessions": cleanup_sessions(older_than_days=session_days),
        "security_events": cleanup_security_events(retention_days=event_days),
    }
