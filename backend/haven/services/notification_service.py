# Overview: Service-layer operations for notifications and per-user preferences.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Notification, NotificationPreferences, User
from ..models.notifications import default_notification_types
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    validate_payload,
    enforce_rules_notification,
    enforce_rules_preferences,
)


NOTIFICATION_POLICY = ModelValidationPolicy(
    writable_fields={"type", "title", "message", "priority", "link", "role_access"},
    required_on_create={"type", "title", "message", "priority"},
)

PREFERENCES_POLICY = ModelValidationPolicy(
    writable_fields={"enable_email_notifications", "notification_types", "summary_frequency"},
)


def create_notification(payload: dict, user_id: int) -> Notification:
    patch = validate_payload(model=Notification, payload=payload, policy=NOTIFICATION_POLICY, partial=False)
    patch.setdefault("role_access", [])
    enforce_rules_notification(patch)

    notification = Notification(**patch, created_by_user_id=user_id)
    db.session.add(notification)
    db.session.commit()
    return notification


def _visible(role: str) -> list[Notification]:
    # role_access is JSON; filter in Python to stay portable
    rows = db.session.query(Notification).order_by(
        Notification.created_at.desc(), Notification.id.desc()
    ).all()
    return [n for n in rows if n.visible_to(role)]


def list_notifications(
    *,
    user_id: int,
    role: str,
    notification_type: str | None = None,
    priority: str | None = None,
    unread_only: bool = False,
) -> list[Notification]:
    items = _visible(role)
    if notification_type:
        items = [n for n in items if n.type == notification_type.upper()]
    if priority:
        items = [n for n in items if n.priority == priority.upper()]
    if unread_only:
        items = [n for n in items if all(u.id != user_id for u in n.read_by)]
    return items


def _get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def mark_as_read(notification_id: int, user_id: int, role: str) -> Notification:
    notification = db.session.query(Notification).filter_by(id=notification_id).first()
    if not notification or not notification.visible_to(role):
        raise NotFoundError("Notification not found")

    user = _get_user(user_id)
    if user not in notification.read_by:
        notification.read_by.append(user)
    db.session.commit()
    return notification


def mark_all_as_read(user_id: int, role: str) -> int:
    """
    Connect the user to every notification visible to their role, read or
    not. Idempotent. Returns the number of visible notifications.
    """
    user = _get_user(user_id)
    visible = _visible(role)
    for notification in visible:
        if user not in notification.read_by:
            notification.read_by.append(user)
    db.session.commit()
    return len(visible)


def delete_notification(notification_id: int) -> None:
    notification = db.session.query(Notification).filter_by(id=notification_id).first()
    if not notification:
        raise NotFoundError("Notification not found")
    notification.read_by.clear()
    db.session.delete(notification)
    db.session.commit()


def get_preferences(user_id: int) -> NotificationPreferences:
    """Preferences for the user, created with defaults on first access."""
    prefs = db.session.query(NotificationPreferences).filter_by(user_id=user_id).first()
    if prefs:
        return prefs
    return update_preferences(user_id, {})


def update_preferences(user_id: int, payload: dict) -> NotificationPreferences:
    """
    Upsert: exactly one row per user, holding the latest values.

    A concurrent insert for the same user loses on the unique constraint and
    falls back to updating the winner's row.
    """
    patch = validate_payload(
        model=NotificationPreferences, payload=payload, policy=PREFERENCES_POLICY, partial=True
    )
    enforce_rules_preferences(patch)
    _get_user(user_id)

    prefs = db.session.query(NotificationPreferences).filter_by(user_id=user_id).first()
    if prefs is None:
        fields = dict(patch)
        if "notification_types" in fields:
            fields["notification_types"] = {**default_notification_types(), **fields["notification_types"]}
        prefs = NotificationPreferences(user_id=user_id, **fields)
        db.session.add(prefs)
        try:
            db.session.commit()
            return prefs
        except IntegrityError:
            db.session.rollback()
            prefs = db.session.query(NotificationPreferences).filter_by(user_id=user_id).one()

    for key, value in patch.items():
        if key == "notification_types":
            # Partial maps merge into the stored one
            merged = dict(prefs.notification_types or {})
            merged.update(value)
            value = merged
        setattr(prefs, key, value)
    db.session.commit()
    return prefs
