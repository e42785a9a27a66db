"""
QA Hub
Testing domain models.

Models:
    - TestCase:         individual test case in a project's catalog
    - Bug:              defect raised against a project
    - TestCaseBugLink:  symmetric TestCase ↔ Bug relation (one row per pair)
    - TestRun:          Pass/Fail execution record of a test case

Architecture ref:
    Project ──1:N──▶ TestCase ──N:M──▶ Bug        (test_case_bug_links)
    Project ──1:N──▶ Bug      ──N:M──▶ Task       (bug_task_links, see models/task.py)
    TestCase ──1:N──▶ TestRun

The N:M relations are stored once, as association rows, so
``bug.id in test_case.linked_bug_ids`` and
``test_case.id in bug.linked_test_case_ids`` read the same row and cannot
disagree.
"""

from datetime import datetime, timezone

from qahub.models import db


# ── Constants ────────────────────────────────────────────────────────────

PRIORITIES = ("Low", "Medium", "High")

TEST_CASE_STATUSES = ("Draft", "Todo", "InProgress", "Pass", "Fail")

BUG_SEVERITIES = ("Low", "Medium", "High", "Critical")

BUG_STATUSES = ("Draft", "Opened", "Fixed", "Closed")

RUN_STATUSES = ("Pass", "Fail")

DRAFT_STATUS = "Draft"

# Fields that must be non-empty before an entity may leave Draft.
REQUIRED_FIELDS = {
    "TestCase": ("title", "steps", "expected_result"),
    "Bug": ("title", "steps_to_reproduce"),
}


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE
# ═════════════════════════════════════════════════════════════════════════════

class TestCase(db.Model):
    """
    Individual test case in the project catalog.

    Linked to bugs through TestCaseBugLink. friendly_id (TC-<n>) is assigned
    once per project and never reused.
    """

    __tablename__ = "test_cases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    friendly_id = db.Column(db.String(20), default="", comment="TC-<n>, per project")

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    preconditions = db.Column(db.Text, nullable=True)
    steps = db.Column(db.Text, default="", comment="Step-by-step test procedure")
    expected_result = db.Column(db.Text, default="")

    priority = db.Column(db.String(10), default="Medium", comment="Low | Medium | High")
    status = db.Column(
        db.String(20), default=DRAFT_STATUS,
        comment="Draft | Todo | InProgress | Pass | Fail",
    )
    tags = db.Column(db.JSON, default=list)

    created_by = db.Column(db.String(64), default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships
    bug_links = db.relationship(
        "TestCaseBugLink", backref="test_case", lazy="select",
        cascade="all, delete-orphan", order_by="TestCaseBugLink.created_at",
    )
    runs = db.relationship(
        "TestRun", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
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
            "preconditions": self.preconditions,
            "steps": self.steps,
            "expected_result": self.expected_result,
            "priority": self.priority,
            "status": self.status,
            "tags": list(self.tags or []),
            "linked_bug_ids": self.linked_bug_ids,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }

    def __repr__(self):
        return f"<TestCase {self.id}: {self.friendly_id or self.title[:30]}>"


# ═════════════════════════════════════════════════════════════════════════════
# BUG
# ═════════════════════════════════════════════════════════════════════════════

class Bug(db.Model):
    """
    Bug raised in a project.

    Lifecycle: Draft → Opened → Fixed → Closed (any move allowed once the
    required fields are filled; see workflow_service).
    """

    __tablename__ = "bugs"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    friendly_id = db.Column(db.String(20), default="", comment="BUG-<n>, per project")

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    steps_to_reproduce = db.Column(db.Text, default="")
    test_data = db.Column(db.Text, nullable=True)
    expected_result = db.Column(db.Text, nullable=True)
    actual_result = db.Column(db.Text, nullable=True)

    severity = db.Column(
        db.String(10), default="Medium", comment="Low | Medium | High | Critical",
    )
    status = db.Column(
        db.String(20), default=DRAFT_STATUS, comment="Draft | Opened | Fixed | Closed",
    )
    tags = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list, comment="Ordered list of URLs")

    created_by = db.Column(db.String(64), default="", index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships
    test_case_links = db.relationship(
        "TestCaseBugLink", backref="bug", lazy="select",
        cascade="all, delete-orphan", order_by="TestCaseBugLink.created_at",
    )
    task_links = db.relationship(
        "BugTaskLink", backref="bug", lazy="select",
        cascade="all, delete-orphan", order_by="BugTaskLink.created_at",
    )

    @property
    def linked_test_case_ids(self):
        return [link.test_case_id for link in self.test_case_links]

    @property
    def linked_task_ids(self):
        return [link.task_id for link in self.task_links]

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "friendly_id": self.friendly_id,
            "title": self.title,
            "description": self.description,
            "steps_to_reproduce": self.steps_to_reproduce,
            "test_data": self.test_data,
            "expected_result": self.expected_result,
            "actual_result": self.actual_result,
            "severity": self.severity,
            "status": self.status,
            "tags": list(self.tags or []),
            "attachments": list(self.attachments or []),
            "linked_test_case_ids": self.linked_test_case_ids,
            "linked_task_ids": self.linked_task_ids,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }

    def __repr__(self):
        return f"<Bug {self.id}: [{self.severity}] {self.friendly_id or self.title[:30]}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE ↔ BUG LINK
# ═════════════════════════════════════════════════════════════════════════════

class TestCaseBugLink(db.Model):
    """
    Symmetric TestCase ↔ Bug relation.

    The composite primary key makes a duplicate pair impossible at the store
    level; link_service treats a second link attempt as a no-op.
    """

    __tablename__ = "test_case_bug_links"

    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), primary_key=True,
    )
    bug_id = db.Column(
        db.Integer, db.ForeignKey("bugs.id", ondelete="CASCADE"), primary_key=True,
        index=True,
    )
    created_by = db.Column(db.String(64), default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "test_case_id": self.test_case_id,
            "bug_id": self.bug_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TestCaseBugLink tc#{self.test_case_id} ↔ bug#{self.bug_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST RUN
# ═════════════════════════════════════════════════════════════════════════════

class TestRun(db.Model):
    """Pass/Fail execution record; run_id is RUN-<nnn> per project."""

    __tablename__ = "test_runs"

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.String(20), nullable=False)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(db.String(10), nullable=False, comment="Pass | Fail")
    executed_by = db.Column(db.String(64), nullable=False)
    run_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("project_id", "run_id", name="uq_test_run_id"),
        db.Index("ix_test_runs_case_run_at", "test_case_id", "run_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "run_id": self.run_id,
            "test_case_id": self.test_case_id,
            "project_id": self.project_id,
            "status": self.status,
            "executed_by": self.executed_by,
            "run_at": self.run_at.isoformat() if self.run_at else None,
        }

    def __repr__(self):
        return f"<TestRun {self.run_id}: tc#{self.test_case_id} {self.status}>"
