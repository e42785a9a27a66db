"""
QA Hub
Task service — task CRUD, hierarchy queries and the board projection.

Board layout:
    one "standalone" group  (no parent, no subtasks)
    one group per parent    (its direct subtasks only)
Each group has one cell per configured column plus an ``unmapped`` bucket
for tasks whose status no column shows.

Moving a card targets ``"<scope_key>:<status>"`` and only ever changes the
task status; the parent is never touched by a move.
"""

import logging
from dataclasses import dataclass, field

from qahub.core.exceptions import ConflictError, ValidationError
from qahub.models import db
from qahub.models.task import TASK_PRIORITIES, Task
from qahub.services import comment_service, link_service, permission_service, workflow_service
from qahub.services.project_service import load_context
from qahub.services.store import get_scoped, next_friendly_id, touch, unit_of_work
from qahub.utils.helpers import coerce_str_list, parse_int

logger = logging.getLogger(__name__)

STANDALONE_SCOPE = "standalone"

TASK_FIELDS = (
    "title", "description", "priority", "tags", "additional_info", "attachments",
    "assigned_to", "reporter",
)


def _clean_fields(data):
    values = {}
    for name in TASK_FIELDS:
        if name not in data:
            continue
        raw = data[name]
        if name in ("tags", "attachments"):
            values[name] = coerce_str_list(raw, name, unique=(name == "tags"))
        elif name == "priority":
            if raw not in TASK_PRIORITIES:
                raise ValidationError(f"Invalid priority: {raw!r}",
                                      details={name: f"one of {list(TASK_PRIORITIES)}"})
            values[name] = raw
        elif name in ("assigned_to", "reporter"):
            values[name] = str(raw) if raw not in (None, "") else None
        else:
            if raw is not None and not isinstance(raw, str):
                raise ValidationError(f"{name} must be a string", details={name: "string"})
            values[name] = raw
    if "title" in values:
        values["title"] = (values["title"] or "").strip()
        if not values["title"]:
            raise ValidationError("title is required", details={"title": "required"})
    return values


# ═════════════════════════════════════════════════════════════════════════════
# HIERARCHY QUERIES
# ═════════════════════════════════════════════════════════════════════════════

def subtasks_of(task):
    return Task.query.filter_by(parent_id=task.id).order_by(Task.id).all()


def is_parent(task):
    return db.session.query(Task.query.filter_by(parent_id=task.id).exists()).scalar()


def is_standalone(task):
    return task.parent_id is None and not is_parent(task)


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════

def list_tasks(actor, project_id, status=None, parent_id=None, assigned_to=None):
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, "can_view_tasks", "view tasks", actor)
    q = Task.query.filter_by(project_id=project.id)
    if status:
        q = q.filter_by(status=workflow_service.normalize_status("Task", status))
    if parent_id is not None:
        q = q.filter_by(parent_id=parse_int(parent_id, "parent_id"))
    if assigned_to:
        q = q.filter_by(assigned_to=str(assigned_to))
    return q.order_by(Task.id.desc()).all()


def get_task(actor, project_id, task_id):
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, "can_view_tasks", "view task", actor)
    return get_scoped(Task, task_id, project.id)


def create_task(actor, project_id, data):
    values = _clean_fields(data)
    if "title" not in values:
        raise ValidationError("title is required", details={"title": "required"})
    status = workflow_service.normalize_status("Task", data.get("status") or "ToDo")

    with unit_of_work("create task"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_create_tasks", "create task", actor)
        task = Task(
            project_id=project.id,
            friendly_id=next_friendly_id(project.id, "TASK"),
            status=status,
            created_by=str(actor.id),
            reporter=values.pop("reporter", None) or str(actor.id),
            **values,
        )
        db.session.add(task)
        db.session.flush()
        if data.get("parent_id") is not None:
            link_service.assign_parent(task, data["parent_id"], project.id)

    logger.info("Task %s created in project %s by %s", task.friendly_id, project_id, actor.id)
    return task


def update_task(actor, project_id, task_id, data):
    values = _clean_fields(data)
    with unit_of_work("update task"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_tasks", "edit task", actor)
        task = get_scoped(Task, task_id, project.id)
        expected = data.get("version")
        if expected is not None and parse_int(expected, "version") != task.version:
            raise ConflictError("Task", "version", data["version"],
                                message=f"Task {task.id} was modified, reload and retry")

        for name, value in values.items():
            if getattr(task, name) != value:
                setattr(task, name, value)
        if data.get("status") is not None:
            workflow_service.apply_task_status(task, data["status"])
        if "parent_id" in data and data["parent_id"] != task.parent_id:
            link_service.assign_parent(task, data["parent_id"], project.id)
            touch(task)
    return task


def delete_task(actor, project_id, task_id):
    """Delete a task; subtasks become standalone, references are dropped."""
    with unit_of_work("delete task"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_tasks", "delete task", actor)
        task = get_scoped(Task, task_id, project.id)
        link_service.detach_everywhere("Task", task)
        comment_service.delete_for_subject("Task", task.id)
        db.session.delete(task)
    logger.info("Task %s deleted by %s", task_id, actor.id)


# ═════════════════════════════════════════════════════════════════════════════
# BOARD
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class BoardGroup:
    key: str
    parent: Task | None
    cells: dict[str, list[Task]] = field(default_factory=dict)
    unmapped: list[Task] = field(default_factory=list)

    def to_dict(self):
        return {
            "key": self.key,
            "parent": self.parent.to_dict() if self.parent else None,
            "cells": {col: [t.to_dict() for t in tasks] for col, tasks in self.cells.items()},
            "unmapped": [t.to_dict() for t in self.unmapped],
        }


def _place(group, columns, task):
    for col in columns:
        if col.status == task.status:
            group.cells[col.column_key].append(task)
            return
    group.unmapped.append(task)


def board(actor, project_id):
    """Project the project's tasks onto its board columns.

    Returns (columns, groups): the standalone group first, then one group per
    parent task in id order.
    """
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, "can_view_tasks", "view board", actor)
    columns = list(project.board_columns)
    tasks = Task.query.filter_by(project_id=project.id).order_by(Task.id).all()

    parent_ids = {t.parent_id for t in tasks if t.parent_id is not None}

    def new_group(key, parent):
        return BoardGroup(key=key, parent=parent, cells={c.column_key: [] for c in columns})

    standalone = new_group(STANDALONE_SCOPE, None)
    lanes = {t.id: new_group(str(t.id), t) for t in tasks if t.id in parent_ids}

    for task in tasks:
        if task.parent_id is not None:
            lane = lanes.get(task.parent_id)
            if lane is not None:
                _place(lane, columns, task)
        elif task.id not in parent_ids:
            _place(standalone, columns, task)

    return columns, [standalone, *lanes.values()]


def parse_destination(destination):
    """Split ``"<scope_key>:<status>"`` on the last colon."""
    if not isinstance(destination, str) or ":" not in destination:
        raise ValidationError("destination must look like '<scope>:<status>'",
                              details={"destination": "invalid"})
    scope_key, status = destination.rsplit(":", 1)
    if scope_key != STANDALONE_SCOPE:
        parse_int(scope_key, "destination")
    return scope_key, workflow_service.normalize_status("Task", status)


def move_card(actor, project_id, task_id, destination):
    """Change a task's status from a board drop; the parent never changes."""
    scope_key, status = parse_destination(destination)
    with unit_of_work("move card"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_tasks", "move card", actor)
        task = get_scoped(Task, task_id, project.id)
        workflow_service.apply_task_status(task, status)
    logger.debug("Card %s moved to %s:%s", task.friendly_id, scope_key, status)
    return task
