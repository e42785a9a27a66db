"""
QA Hub
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from qahub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = ("bug_created", "bug_status_changed", "comment_added")


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. subject_bug_id is a plain column so
    the notification outlives the bug it mentions.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_user_id = db.Column(db.String(64), nullable=False, index=True)
    type = db.Column(db.String(30), nullable=False)
    subject_bug_id = db.Column(db.Integer, nullable=True)
    subject_title = db.Column(db.String(300), default="")
    message = db.Column(db.Text, nullable=False)

    # Read tracking
    read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_user_id": self.recipient_user_id,
            "type": self.type,
            "subject_bug_id": self.subject_bug_id,
            "subject_title": self.subject_title,
            "message": self.message,
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type} → {self.recipient_user_id}>"
