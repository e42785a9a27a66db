"""
QA Hub
Project service — projects, members, DEV permission overrides, board columns.

Transaction policy: every public function runs in one unit_of_work.

Every other service starts with ``load_context(actor, project_id)`` to get
the project and the actor's CapabilitySet in one call.
"""

import logging

from flask import current_app

from qahub.core.actor import ROLE_QA
from qahub.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from qahub.models import db
from qahub.models.project import (
    DEFAULT_BOARD_COLUMNS,
    DEFAULT_DEV_PERMISSIONS,
    MEMBER_ROLES,
    BoardColumn,
    Project,
    ProjectMember,
    ProjectPermission,
)
from qahub.models.task import TASK_STATUSES
from qahub.services import permission_service
from qahub.services.store import get_scoped, touch, unit_of_work

logger = logging.getLogger(__name__)


# ── Shared helpers ───────────────────────────────────────────────────────────

def load_context(actor, project_id):
    """Return (project, capabilities) for the actor; 404 when missing."""
    project = get_scoped(Project, project_id)
    return project, permission_service.capabilities_for(actor, project)


def _require_member(actor, project, action):
    if permission_service.member_role(actor, project) is None:
        raise AuthorizationError(action, capability="project membership", actor_id=actor.id)


def _member_limit(role):
    key = "MAX_QA_MEMBERS" if role == ROLE_QA else "MAX_DEV_MEMBERS"
    return current_app.config.get(key, 3 if role == ROLE_QA else 5)


def _clean_member(data, position):
    if not isinstance(data, dict):
        raise ValidationError("Member must be an object")
    member_id = str(data.get("member_id") or "").strip()
    display_name = (data.get("display_name") or "").strip()
    role = data.get("role")
    errors = {}
    if not member_id:
        errors["member_id"] = "required"
    if not display_name:
        errors["display_name"] = "required"
    if role not in MEMBER_ROLES:
        errors["role"] = f"must be one of {sorted(MEMBER_ROLES)}"
    if errors:
        raise ValidationError("Invalid member", details=errors)
    return ProjectMember(
        member_id=member_id,
        display_name=display_name,
        login_handle=(data.get("login_handle") or "").strip(),
        role=role,
        position=position,
    )


def _append_member(project, member):
    if project.find_member(member.member_id) is not None:
        raise ValidationError(
            f"Member {member.member_id} is already in the project",
            details={"member_id": "duplicate"},
        )
    same_role = sum(1 for m in project.members if m.role == member.role)
    limit = _member_limit(member.role)
    if same_role >= limit:
        raise ValidationError(
            f"Maximum {limit} {member.role} members allowed per project",
            details={"role": "limit reached"},
        )
    project.members.append(member)


def _clean_columns(columns):
    if not isinstance(columns, list) or not columns:
        raise ValidationError("board_columns must be a non-empty list")
    seen = set()
    cleaned = []
    for index, col in enumerate(columns):
        if not isinstance(col, dict):
            raise ValidationError("Board column must be an object")
        key = str(col.get("id") or "").strip()
        title = (col.get("title") or "").strip()
        status = col.get("status")
        errors = {}
        if not key:
            errors["id"] = "required"
        elif key in seen:
            errors["id"] = "duplicate"
        if not title:
            errors["title"] = "required"
        if status not in TASK_STATUSES:
            errors["status"] = f"must be one of {list(TASK_STATUSES)}"
        if errors:
            raise ValidationError(f"Invalid board column #{index + 1}", details=errors)
        seen.add(key)
        cleaned.append({"id": key, "title": title, "status": status})
    return cleaned


def _set_columns(project, columns):
    for existing in list(project.board_columns):
        project.board_columns.remove(existing)
    # Old keys must be gone before the same keys are inserted again.
    db.session.flush()
    for position, col in enumerate(columns):
        project.board_columns.append(BoardColumn(
            column_key=col["id"], title=col["title"], status=col["status"], position=position,
        ))


# ═════════════════════════════════════════════════════════════════════════════
# PROJECT CRUD
# ═════════════════════════════════════════════════════════════════════════════

def create_project(actor, data):
    """Create a project; the creator always ends up as a member."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    with unit_of_work("create project"):
        project = Project(
            name=name,
            description=data.get("description") or "",
            creator_id=str(actor.id),
        )
        db.session.add(project)

        for raw in data.get("members") or []:
            _append_member(project, _clean_member(raw, len(project.members)))
        if project.find_member(actor.id) is None:
            _append_member(project, ProjectMember(
                member_id=str(actor.id),
                display_name=actor.name or str(actor.id),
                login_handle="",
                role=ROLE_QA,
                position=len(project.members),
            ))

        flags = dict(DEFAULT_DEV_PERMISSIONS)
        if data.get("permissions") is not None:
            flags.update(permission_service.normalize_overrides(data["permissions"]))
        project.permissions = ProjectPermission(**flags)

        columns = data.get("board_columns")
        _set_columns(project, _clean_columns(columns) if columns is not None
                     else [dict(c) for c in DEFAULT_BOARD_COLUMNS])

    logger.info("Project %s created by %s", project.id, actor.id)
    return project


def list_projects(actor):
    """Projects the actor is a member of, newest first."""
    return (
        Project.query
        .join(ProjectMember)
        .filter(ProjectMember.member_id == str(actor.id))
        .order_by(Project.created_at.desc(), Project.id.desc())
        .all()
    )


def get_project(actor, project_id):
    project, _caps = load_context(actor, project_id)
    _require_member(actor, project, "view project")
    return project


def update_project(actor, project_id, data):
    with unit_of_work("update project"):
        project, _caps = load_context(actor, project_id)
        permission_service.require_qa(actor, project, "edit project")
        if "name" in data:
            name = (data.get("name") or "").strip()
            if not name:
                raise ValidationError("name is required", details={"name": "required"})
            project.name = name
        if "description" in data:
            project.description = data.get("description") or ""
    return project


def delete_project(actor, project_id):
    """Delete a project and everything in it. Creator only."""
    with unit_of_work("delete project"):
        project = get_scoped(Project, project_id)
        if project.creator_id != str(actor.id):
            raise AuthorizationError("delete project", capability="project creator",
                                     actor_id=actor.id)
        db.session.delete(project)
    logger.info("Project %s deleted by %s", project_id, actor.id)


# ═════════════════════════════════════════════════════════════════════════════
# MEMBERS
# ═════════════════════════════════════════════════════════════════════════════

def add_member(actor, project_id, data):
    with unit_of_work("add member"):
        project, _caps = load_context(actor, project_id)
        permission_service.require_qa(actor, project, "add member")
        member = _clean_member(data, max((m.position for m in project.members), default=-1) + 1)
        _append_member(project, member)
        touch(project)
    logger.info("Member %s (%s) added to project %s", member.member_id, member.role, project_id)
    return project


def remove_member(actor, project_id, member_id):
    with unit_of_work("remove member"):
        project, _caps = load_context(actor, project_id)
        permission_service.require_qa(actor, project, "remove member")
        member = project.find_member(member_id)
        if member is None:
            raise NotFoundError(resource="ProjectMember", resource_id=member_id,
                                project_id=project.id)
        if member.member_id == project.creator_id:
            raise ValidationError("The project creator cannot be removed",
                                  details={"member_id": "creator"})
        project.members.remove(member)
        touch(project)
    return project


# ═════════════════════════════════════════════════════════════════════════════
# PERMISSIONS & BOARD
# ═════════════════════════════════════════════════════════════════════════════

def update_permissions(actor, project_id, payload):
    """Apply DEV override changes; unspecified flags keep their value."""
    with unit_of_work("update permissions"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_manage_permissions", "update permissions", actor)
        changes = permission_service.normalize_overrides(payload)
        if project.permissions is None:
            project.permissions = ProjectPermission(**DEFAULT_DEV_PERMISSIONS)
        for name, value in changes.items():
            setattr(project.permissions, name, value)
        touch(project)
    logger.info("Permissions of project %s updated by %s: %s", project_id, actor.id, changes)
    return project.permissions


def update_board_columns(actor, project_id, columns):
    with unit_of_work("update board columns"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_tasks", "configure board", actor)
        _set_columns(project, _clean_columns(columns))
        touch(project)
    return project.board_columns
