"""
QA Hub
Project domain models.

Models:
    - Project:            container for test cases, bugs, tasks and notes
    - ProjectMember:      ordered member list entry (QA or DEV)
    - ProjectPermission:  per-project DEV permission overrides (1:1)
    - BoardColumn:        ordered task board column configuration
    - FriendlyIdSequence: per-project counters behind TC-/BUG-/TASK-/RUN- ids

Project ──1:N──▶ ProjectMember
Project ──1:1──▶ ProjectPermission
Project ──1:N──▶ BoardColumn
Project ──1:N──▶ TestCase / Bug / Task / Note / Comment / TestRun
"""

from datetime import datetime, timezone

from qahub.models import db


# ── Constants ────────────────────────────────────────────────────────────

MEMBER_ROLES = {"QA", "DEV"}

# Ordered list of DEV override flags; QA is never gated by these.
PERMISSION_FLAGS = (
    "view_test_cases",
    "create_test_cases",
    "edit_test_cases",
    "view_bugs",
    "create_bugs",
    "edit_bugs",
    "edit_bug_status_only",
    "view_notes",
    "view_tasks",
    "create_tasks",
    "edit_tasks",
)

DEFAULT_DEV_PERMISSIONS = {
    "view_test_cases": True,
    "create_test_cases": False,
    "edit_test_cases": False,
    "view_bugs": True,
    "create_bugs": False,
    "edit_bugs": False,
    "edit_bug_status_only": True,
    "view_notes": False,
    "view_tasks": True,
    "create_tasks": False,
    "edit_tasks": False,
}

# Legacy payload names accepted on input ("devCanEditBugs" → "edit_bugs").
LEGACY_PERMISSION_KEYS = {
    "devCanViewTestCases": "view_test_cases",
    "devCanCreateTestCases": "create_test_cases",
    "devCanEditTestCases": "edit_test_cases",
    "devCanViewBugs": "view_bugs",
    "devCanCreateBugs": "create_bugs",
    "devCanEditBugs": "edit_bugs",
    "devCanEditBugStatusOnly": "edit_bug_status_only",
    "devCanViewNotes": "view_notes",
    "devCanViewTasks": "view_tasks",
    "devCanCreateTasks": "create_tasks",
    "devCanEditTasks": "edit_tasks",
}

DEFAULT_BOARD_COLUMNS = (
    {"id": "todo", "title": "To Do", "status": "ToDo"},
    {"id": "doing", "title": "Doing", "status": "InProgress"},
    {"id": "done", "title": "Done", "status": "Done"},
)


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# PROJECT
# ═════════════════════════════════════════════════════════════════════════════

class Project(db.Model):
    """A QA workspace. Every listing in the platform is scoped by project."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    creator_id = db.Column(
        db.String(64), nullable=False, index=True,
        comment="External actor id of the creator (always a member)",
    )
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships
    members = db.relationship(
        "ProjectMember", backref="project", lazy="select",
        cascade="all, delete-orphan", order_by="ProjectMember.position",
    )
    permissions = db.relationship(
        "ProjectPermission", backref="project", uselist=False,
        cascade="all, delete-orphan",
    )
    board_columns = db.relationship(
        "BoardColumn", backref="project", lazy="select",
        cascade="all, delete-orphan", order_by="BoardColumn.position",
    )
    sequences = db.relationship(
        "FriendlyIdSequence", lazy="dynamic", cascade="all, delete-orphan",
    )
    test_cases = db.relationship(
        "TestCase", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )
    bugs = db.relationship(
        "Bug", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )
    tasks = db.relationship(
        "Task", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )
    notes = db.relationship(
        "Note", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )
    comments = db.relationship(
        "Comment", lazy="dynamic", cascade="all, delete-orphan",
    )
    test_runs = db.relationship(
        "TestRun", lazy="dynamic", cascade="all, delete-orphan",
    )

    def find_member(self, member_id):
        """Return the ProjectMember with this external id, or None."""
        member_id = str(member_id)
        for member in self.members:
            if member.member_id == member_id:
                return member
        return None

    def to_dict(self, include_members=True):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "creator_id": self.creator_id,
            "permissions": (
                self.permissions.to_dict() if self.permissions
                else dict(DEFAULT_DEV_PERMISSIONS)
            ),
            "board_columns": [c.to_dict() for c in self.board_columns],
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_members:
            d["members"] = [m.to_dict() for m in self.members]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.name[:30]}>"


class ProjectMember(db.Model):
    """Member list entry. Position keeps the list in insertion order."""

    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    member_id = db.Column(db.String(64), nullable=False, comment="External actor id")
    display_name = db.Column(db.String(150), nullable=False)
    login_handle = db.Column(db.String(100), default="")
    role = db.Column(db.String(10), nullable=False, comment="QA | DEV")
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("project_id", "member_id", name="uq_project_member"),
    )

    def to_dict(self):
        return {
            "member_id": self.member_id,
            "display_name": self.display_name,
            "login_handle": self.login_handle,
            "role": self.role,
        }

    def __repr__(self):
        return f"<ProjectMember {self.member_id} [{self.role}] project#{self.project_id}>"


class ProjectPermission(db.Model):
    """DEV permission overrides for one project."""

    __tablename__ = "project_permissions"

    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True,
    )
    view_test_cases = db.Column(db.Boolean, nullable=False, default=True)
    create_test_cases = db.Column(db.Boolean, nullable=False, default=False)
    edit_test_cases = db.Column(db.Boolean, nullable=False, default=False)
    view_bugs = db.Column(db.Boolean, nullable=False, default=True)
    create_bugs = db.Column(db.Boolean, nullable=False, default=False)
    edit_bugs = db.Column(db.Boolean, nullable=False, default=False)
    edit_bug_status_only = db.Column(db.Boolean, nullable=False, default=True)
    view_notes = db.Column(db.Boolean, nullable=False, default=False)
    view_tasks = db.Column(db.Boolean, nullable=False, default=True)
    create_tasks = db.Column(db.Boolean, nullable=False, default=False)
    edit_tasks = db.Column(db.Boolean, nullable=False, default=False)

    def as_flags(self) -> dict[str, bool]:
        return {flag: bool(getattr(self, flag)) for flag in PERMISSION_FLAGS}

    def to_dict(self):
        return self.as_flags()

    def __repr__(self):
        return f"<ProjectPermission project#{self.project_id}>"


class BoardColumn(db.Model):
    """One column of the task board: a display title bound to a status value."""

    __tablename__ = "board_columns"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    column_key = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(30), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("project_id", "column_key", name="uq_board_column_key"),
    )

    def to_dict(self):
        return {"id": self.column_key, "title": self.title, "status": self.status}

    def __repr__(self):
        return f"<BoardColumn {self.column_key} → {self.status}>"


class FriendlyIdSequence(db.Model):
    """Monotonic counter per (project, prefix). Numbers are never reused."""

    __tablename__ = "friendly_id_sequences"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    prefix = db.Column(db.String(10), nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("project_id", "prefix", name="uq_friendly_id_sequence"),
    )

    def __repr__(self):
        return f"<FriendlyIdSequence {self.prefix} project#{self.project_id}={self.last_value}>"
