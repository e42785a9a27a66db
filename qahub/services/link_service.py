"""
QA Hub
Link graph service — cross-entity relations and the task hierarchy.

Relation kinds:
    TestCase ↔ Bug      symmetric, one TestCaseBugLink row per pair
    Bug ↔ Task          symmetric, one BugTaskLink row per pair
    Task → X            one-directional TaskLink, X ∈ {Task, Bug, TestCase}
    Task → parent Task  Task.parent_id, acyclic, depth-limited

Symmetric links are idempotent in both directions: linking an existing pair
or unlinking a missing one succeeds without change. Both endpoints are
touched so their version counters move with the relation.

Authorization follows the surface the operation starts from:
    test_case → can_edit_test_cases
    bug       → can_edit_bugs
    task      → can_edit_tasks
Removing a symmetric relation that involves a Bug additionally requires the
QA role or being the Bug's creator.
"""

import logging

from flask import current_app

from qahub.core.exceptions import ConflictError, NotFoundError, ValidationError
from qahub.models import db
from qahub.models.task import LINK_TARGET_TYPES, BugTaskLink, Task, TaskLink
from qahub.models.testing import Bug, TestCase, TestCaseBugLink
from qahub.services import permission_service
from qahub.services.project_service import load_context
from qahub.services.store import get_scoped, touch, unit_of_work

logger = logging.getLogger(__name__)

SURFACE_CAPABILITIES = {
    "test_case": "can_edit_test_cases",
    "bug": "can_edit_bugs",
    "task": "can_edit_tasks",
}

_TARGET_MODELS = {"Task": Task, "Bug": Bug, "TestCase": TestCase}

# Hard stop for ancestor/descendant walks over a corrupted hierarchy.
MAX_HIERARCHY_WALK = 1000


def _authorize(actor, project, caps, surface, action):
    capability = SURFACE_CAPABILITIES.get(surface)
    if capability is None:
        raise ValidationError(f"Unknown surface: {surface}",
                              details={"surface": f"one of {sorted(SURFACE_CAPABILITIES)}"})
    permission_service.require(caps, capability, action, actor)


def require_target(model, target_id, project_id, field):
    """Fetch a link counterpart; missing or foreign targets are invalid input."""
    try:
        return get_scoped(model, int(target_id), project_id)
    except (NotFoundError, TypeError, ValueError):
        raise ValidationError(
            f"{model.__name__} {target_id} does not exist in this project",
            details={field: "not found in project"},
        ) from None


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE ↔ BUG
# ═════════════════════════════════════════════════════════════════════════════

def attach_test_case_bug(test_case, bug, actor_id=""):
    """Flush-only link of a same-project pair. Returns True when created."""
    if db.session.get(TestCaseBugLink, (test_case.id, bug.id)) is not None:
        return False
    db.session.add(TestCaseBugLink(test_case=test_case, bug=bug, created_by=str(actor_id or "")))
    touch(test_case, bug)
    db.session.flush()
    return True


def link_test_case_bug(actor, project_id, test_case_id, bug_id, surface="test_case"):
    with unit_of_work("link test case to bug"):
        project, caps = load_context(actor, project_id)
        _authorize(actor, project, caps, surface, "link test case and bug")
        if surface == "bug":
            bug = get_scoped(Bug, bug_id, project.id)
            test_case = require_target(TestCase, test_case_id, project.id, "test_case_id")
        else:
            test_case = get_scoped(TestCase, test_case_id, project.id)
            bug = require_target(Bug, bug_id, project.id, "bug_id")
        created = attach_test_case_bug(test_case, bug, actor.id)
    if created:
        logger.info("Linked %s ↔ %s", test_case.friendly_id, bug.friendly_id)
    return test_case, bug


def unlink_test_case_bug(actor, project_id, test_case_id, bug_id, surface="test_case"):
    with unit_of_work("unlink test case from bug"):
        project, caps = load_context(actor, project_id)
        _authorize(actor, project, caps, surface, "unlink test case and bug")
        test_case = get_scoped(TestCase, test_case_id, project.id)
        bug = get_scoped(Bug, bug_id, project.id)
        permission_service.require_owner_or_qa(actor, project, bug.created_by,
                                               "unlink bug")
        link = db.session.get(TestCaseBugLink, (test_case.id, bug.id))
        if link is not None:
            test_case.bug_links.remove(link)
            if link in bug.test_case_links:
                bug.test_case_links.remove(link)
            touch(test_case, bug)
    return test_case, bug


# ═════════════════════════════════════════════════════════════════════════════
# BUG ↔ TASK
# ═════════════════════════════════════════════════════════════════════════════

def link_bug_task(actor, project_id, bug_id, task_id, surface="bug"):
    with unit_of_work("link bug to task"):
        project, caps = load_context(actor, project_id)
        _authorize(actor, project, caps, surface, "link bug and task")
        if surface == "task":
            task = get_scoped(Task, task_id, project.id)
            bug = require_target(Bug, bug_id, project.id, "bug_id")
        else:
            bug = get_scoped(Bug, bug_id, project.id)
            task = require_target(Task, task_id, project.id, "task_id")
        if db.session.get(BugTaskLink, (bug.id, task.id)) is None:
            db.session.add(BugTaskLink(bug=bug, task=task, created_by=str(actor.id)))
            touch(bug, task)
            logger.info("Linked %s ↔ %s", bug.friendly_id, task.friendly_id)
    return bug, task


def unlink_bug_task(actor, project_id, bug_id, task_id, surface="bug"):
    with unit_of_work("unlink bug from task"):
        project, caps = load_context(actor, project_id)
        _authorize(actor, project, caps, surface, "unlink bug and task")
        bug = get_scoped(Bug, bug_id, project.id)
        task = get_scoped(Task, task_id, project.id)
        permission_service.require_owner_or_qa(actor, project, bug.created_by,
                                               "unlink bug")
        link = db.session.get(BugTaskLink, (bug.id, task.id))
        if link is not None:
            bug.task_links.remove(link)
            if link in task.bug_links:
                task.bug_links.remove(link)
            touch(bug, task)
    return bug, task


# ═════════════════════════════════════════════════════════════════════════════
# TASK → X (one-directional)
# ═════════════════════════════════════════════════════════════════════════════

def link_task_to(actor, project_id, task_id, target_type, target_id):
    """Append a one-directional link to the task.

    Raises:
        ValidationError: bad target type, self link, target not in project.
        ConflictError: the task already links to this target.
    """
    with unit_of_work("link task"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_tasks", "link task", actor)
        task = get_scoped(Task, task_id, project.id)

        if target_type not in LINK_TARGET_TYPES:
            raise ValidationError(
                f"Invalid target type: {target_type}",
                details={"target_type": f"one of {list(LINK_TARGET_TYPES)}"},
            )
        target = require_target(_TARGET_MODELS[target_type], target_id, project.id, "target_id")
        if target_type == "Task" and target.id == task.id:
            raise ValidationError("A task cannot link to itself",
                                  details={"target_id": "self"})
        for link in task.links:
            if link.target_type == target_type and link.target_id == target.id:
                raise ConflictError("TaskLink", "target", f"{target_type}#{target.id}",
                                    message=f"Task already links to {target_type} {target.id}")

        position = max((link.position for link in task.links), default=-1) + 1
        task.links.append(TaskLink(
            target_type=target_type, target_id=target.id,
            position=position, created_by=str(actor.id),
        ))
        touch(task)
    return task


def unlink_task_from(actor, project_id, task_id, index=None, target_type=None, target_id=None):
    """Remove a link by list position or by (target_type, target_id).

    A missing (target_type, target_id) pair is a no-op; an index outside the
    list is NotFoundError.
    """
    with unit_of_work("unlink task"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_tasks", "unlink task", actor)
        task = get_scoped(Task, task_id, project.id)

        if index is not None:
            try:
                index = int(index)
            except (TypeError, ValueError):
                raise ValidationError("index must be an integer",
                                      details={"index": "invalid"}) from None
            if index < 0 or index >= len(task.links):
                raise NotFoundError(resource="TaskLink", resource_id=index,
                                    project_id=project.id)
            link = task.links[index]
        else:
            link = next(
                (lk for lk in task.links
                 if lk.target_type == target_type and str(lk.target_id) == str(target_id)),
                None,
            )
        if link is not None:
            task.links.remove(link)
            touch(task)
    return task


# ═════════════════════════════════════════════════════════════════════════════
# TASK HIERARCHY
# ═════════════════════════════════════════════════════════════════════════════

def _depth(task):
    """Number of ancestors above ``task``."""
    depth = 0
    current = task
    while current.parent_id is not None:
        depth += 1
        if depth > MAX_HIERARCHY_WALK:
            raise ConflictError("Task", "parent_id", task.id,
                                message="Task hierarchy is cyclic")
        current = db.session.get(Task, current.parent_id)
        if current is None:
            break
    return depth


def _subtree_height(task):
    """Levels of subtasks below ``task`` (0 for a leaf)."""
    if task.id is None:
        return 0
    height = 0
    frontier = [task.id]
    visited = set(frontier)
    while frontier:
        children = [t.id for t in Task.query.filter(Task.parent_id.in_(frontier)).all()]
        children = [cid for cid in children if cid not in visited]
        if not children:
            break
        height += 1
        if height > MAX_HIERARCHY_WALK:
            break
        visited.update(children)
        frontier = children
    return height


def assign_parent(task, parent_id, project_id):
    """Flush-only parent assignment with cycle and depth checks.

    Raises:
        ConflictError: self parent or cycle.
        ValidationError: parent not in project, or nesting deeper than
            TASK_MAX_NESTING_DEPTH.
    """
    if parent_id is None:
        task.parent_id = None
        return task

    parent = require_target(Task, parent_id, project_id, "parent_id")
    if task.id is not None and parent.id == task.id:
        raise ConflictError("Task", "parent_id", parent.id,
                            message="A task cannot be its own parent")

    # Bounded ancestor walk from the new parent looking for ``task``.
    current = parent
    steps = 0
    while current is not None:
        if task.id is not None and current.id == task.id:
            raise ConflictError("Task", "parent_id", parent.id,
                                message="Parent assignment would create a cycle")
        steps += 1
        if steps > MAX_HIERARCHY_WALK or current.parent_id is None:
            break
        current = db.session.get(Task, current.parent_id)

    max_depth = current_app.config.get("TASK_MAX_NESTING_DEPTH", 1)
    if _depth(parent) + 1 + _subtree_height(task) > max_depth:
        raise ValidationError(
            f"Task nesting is limited to {max_depth} level(s)",
            details={"parent_id": "nesting too deep"},
        )

    task.parent_id = parent.id
    return task


def set_parent(actor, project_id, task_id, parent_id):
    with unit_of_work("set task parent"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_tasks", "change task parent", actor)
        task = get_scoped(Task, task_id, project.id)
        old_parent_id = task.parent_id
        assign_parent(task, parent_id, project.id)
        if task.parent_id != old_parent_id:
            touch(task)
    return task


# ═════════════════════════════════════════════════════════════════════════════
# DELETE CASCADE
# ═════════════════════════════════════════════════════════════════════════════

def _drop(link, *collections):
    for collection in collections:
        if link in collection:
            collection.remove(link)


def detach_everywhere(entity_type, entity):
    """Remove every relation that references ``entity`` (flush-only).

    Counterparts of symmetric links are touched; tasks that link to the
    entity lose that link; subtasks of a deleted task become standalone.
    """
    if entity_type == "TestCase":
        for link in list(entity.bug_links):
            touch(link.bug)
            _drop(link, link.bug.test_case_links, entity.bug_links)
    elif entity_type == "Bug":
        for link in list(entity.test_case_links):
            touch(link.test_case)
            _drop(link, link.test_case.bug_links, entity.test_case_links)
        for link in list(entity.task_links):
            touch(link.task)
            _drop(link, link.task.bug_links, entity.task_links)
    elif entity_type == "Task":
        for link in list(entity.bug_links):
            touch(link.bug)
            _drop(link, link.bug.task_links, entity.bug_links)
        for child in Task.query.filter_by(parent_id=entity.id).all():
            child.parent_id = None
            touch(child)
    else:
        raise ValueError(f"Unknown entity type: {entity_type}")

    referencing = TaskLink.query.filter_by(target_type=entity_type, target_id=entity.id).all()
    for link in referencing:
        owner = link.task
        owner.links.remove(link)
        if owner is not entity:
            touch(owner)
    db.session.flush()
