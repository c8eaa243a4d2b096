from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


NOTIFICATION_TYPES = ("SYSTEM", "INVENTORY", "SALES", "USER", "EXPENSE")
NOTIFICATION_PRIORITIES = ("LOW", "MEDIUM", "HIGH")
SUMMARY_FREQUENCIES = ("daily", "weekly", "never")


# Which users have read which notifications
notification_reads = db.Table(
    "notification_reads",
    db.Column("notification_id", db.Integer, db.ForeignKey("notifications.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Notification(db.Model):
    """
    In-app notification.

    role_access lists the roles allowed to see it; an empty list means every
    role. Visibility is resolved in notification_service, not in SQL, so the
    JSON column stays portable across SQLite and Postgres.
    """
    __tablename__ = "notifications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(16), nullable=False, default="MEDIUM")
    link = db.Column(db.String(512), nullable=True)
    role_access = db.Column(db.JSON, nullable=False, default=list)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    creator = db.relationship("User", foreign_keys=[created_by_user_id])
    read_by = db.relationship(
        "User",
        secondary=notification_reads,
        lazy="selectin",
        backref=db.backref("read_notifications", lazy=True),
    )

    def visible_to(self, role: str) -> bool:
        access = self.role_access or []
        return not access or role in access

    def to_dict(self, *, for_user_id: int | None = None) -> dict:
        reader_ids = [u.id for u in self.read_by]
        data = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "link": self.link,
            "role_access": list(self.role_access or []),
            "created_by": self.creator.to_summary() if self.creator else None,
            "created_at": to_utc_z(self.created_at),
            "read_by": reader_ids,
        }
        if for_user_id is not None:
            data["read"] = for_user_id in reader_ids
        return data


def default_notification_types() -> dict:
    return {t: True for t in NOTIFICATION_TYPES}


class NotificationPreferences(db.Model):
    """Per-user notification settings, one row per user (upserted)."""
    __tablename__ = "notification_preferences"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_notification_preferences_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    enable_email_notifications = db.Column(db.Boolean, nullable=False, default=True)
    notification_types = db.Column(db.JSON, nullable=False, default=default_notification_types)
    summary_frequency = db.Column(db.String(16), nullable=False, default="daily")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "enable_email_notifications": self.enable_email_notifications,
            "notification_types": dict(self.notification_types or {}),
            "summary_frequency": self.summary_frequency,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
