"""
QA Hub
Collaboration models — comments and project notes.

Models:
    - Comment:  threaded (one level) comment on a Bug or a Task
    - Note:     project note, plain text or key/value
"""

from datetime import datetime, timezone

from qahub.models import db


# ── Constants ────────────────────────────────────────────────────────────

COMMENT_SUBJECT_TYPES = ("Bug", "Task")

NOTE_TYPES = ("simple", "kv")


def _utcnow():
    return datetime.now(timezone.utc)


class Comment(db.Model):
    """
    Comment on a single subject (Bug or Task).

    parent_id points at a top-level comment of the same subject; replies to
    replies are rejected by comment_service.
    """

    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    subject_type = db.Column(db.String(10), nullable=False, comment="Bug | Task")
    subject_id = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    user_name = db.Column(db.String(150), nullable=False)
    content = db.Column(db.Text, nullable=False)
    parent_id = db.Column(
        db.Integer, db.ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    resolved = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.Index("ix_comments_subject", "subject_type", "subject_id"),
    )

    replies = db.relationship(
        "Comment", backref=db.backref("parent", remote_side="Comment.id"),
        cascade="all, delete-orphan", order_by="Comment.id",
    )

    def to_dict(self, replies=None):
        d = {
            "id": self.id,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "content": self.content,
            "parent_id": self.parent_id,
            "resolved": self.resolved,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if replies is not None:
            d["replies"] = [r.to_dict() for r in replies]
        return d

    def __repr__(self):
        return f"<Comment {self.id}: {self.subject_type}#{self.subject_id} by {self.user_id}>"


class Note(db.Model):
    """Project note. Hidden notes are only listed for QA members."""

    __tablename__ = "notes"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    type = db.Column(db.String(10), nullable=False, default="simple", comment="simple | kv")
    label = db.Column(db.String(200), nullable=True)
    content = db.Column(db.Text, nullable=False)
    pinned = db.Column(db.Boolean, nullable=False, default=False)
    hidden = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "label": self.label,
            "content": self.content,
            "pinned": self.pinned,
            "hidden": self.hidden,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Note {self.id}: {self.type} project#{self.project_id}>"
