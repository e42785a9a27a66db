"""
QA Hub
Task domain models.

Models:
    - Task:         work item with optional parent (subtask) and board status
    - TaskLink:     one-directional reference from a Task to a Task/Bug/TestCase
    - BugTaskLink:  symmetric Bug ↔ Task relation created from the bug side

Two relation styles coexist on purpose:
    Task.links          recorded on the Task only; targets do not list them back
    bug_task_links      one row per pair, visible from both Bug and Task
"""

from datetime import datetime, timezone

from qahub.models import db


# ── Constants ────────────────────────────────────────────────────────────

TASK_STATUSES = ("Backlog", "ToDo", "InProgress", "Done", "Archived")

TASK_PRIORITIES = ("Low", "Medium", "High")

LINK_TARGET_TYPES = ("Task", "Bug", "TestCase")


def _utcnow():
    return datetime.now(timezone.utc)


class Task(db.Model):
    """
    Board task. parent_id makes it a subtask; a task some other task points
    at is a parent and gets its own swimlane on the board.
    """

    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    friendly_id = db.Column(db.String(20), default="", comment="TASK-<n>, per project")

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(20), default="ToDo",
        comment="Backlog | ToDo | InProgress | Done | Archived",
    )
    priority = db.Column(db.String(10), default="Medium")
    tags = db.Column(db.JSON, default=list)
    additional_info = db.Column(db.Text, nullable=True)
    attachments = db.Column(db.JSON, default=list)

    parent_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    assigned_to = db.Column(db.String(64), nullable=True)
    reporter = db.Column(db.String(64), nullable=True)

    created_by = db.Column(db.String(64), default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships
    parent = db.relationship(
        "Task", remote_side="Task.id", foreign_keys=[parent_id], uselist=False,
    )
    links = db.relationship(
        "TaskLink", backref="task", lazy="select",
        cascade="all, delete-orphan", order_by="TaskLink.position",
    )
    bug_links = db.relationship(
        "BugTaskLink", backref="task", lazy="select",
        cascade="all, delete-orphan", order_by="BugTaskLink.created_at",
    )

    @property
    def linked_bug_ids(self):
        return [link.bug_id for link in self.bug_links]

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "friendly_id": self.friendly_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "tags": list(self.tags or []),
            "additional_info": self.additional_info,
            "attachments": list(self.attachments or []),
            "parent_id": self.parent_id,
            "assigned_to": self.assigned_to,
            "reporter": self.reporter,
            "links": [link.to_dict() for link in self.links],
            "linked_bug_ids": self.linked_bug_ids,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.friendly_id or self.title[:30]}>"


class TaskLink(db.Model):
    """
    One-directional link record kept on the Task.

    target_id is not a FK because the target table depends on target_type;
    referential integrity is enforced by link_service and the delete cascade.
    """

    __tablename__ = "task_links"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    target_type = db.Column(db.String(20), nullable=False, comment="Task | Bug | TestCase")
    target_id = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.String(64), default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("task_id", "target_type", "target_id", name="uq_task_link"),
        db.Index("ix_task_links_target", "target_type", "target_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "target_type": self.target_type,
            "target_id": self.target_id,
        }

    def __repr__(self):
        return f"<TaskLink task#{self.task_id} → {self.target_type}#{self.target_id}>"


class BugTaskLink(db.Model):
    """Symmetric Bug ↔ Task relation. One row per pair."""

    __tablename__ = "bug_task_links"

    bug_id = db.Column(
        db.Integer, db.ForeignKey("bugs.id", ondelete="CASCADE"), primary_key=True,
    )
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True,
        index=True,
    )
    created_by = db.Column(db.String(64), default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<BugTaskLink bug#{self.bug_id} ↔ task#{self.task_id}>"
