"""
QA Hub
Status / workflow gate.

At the data layer any status may follow any other, with one exception:
an entity may only leave Draft (or be created outside Draft) once its
required fields are filled. Draft → Draft is a silent no-op.

Side effects of a status change:
    TestCase → Pass / Fail   records a TestRun
    TestCase → Fail          response carries a create_bug follow-up
    Bug → anything else      publishes bug_status_changed

``apply_*`` helpers are flush-only so create/update flows can reuse them;
``change_*`` functions are the authorized, transactional entry points.
"""

import logging

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.task import TASK_STATUSES, Task
from qahub.models.testing import (
    BUG_STATUSES,
    DRAFT_STATUS,
    REQUIRED_FIELDS,
    RUN_STATUSES,
    TEST_CASE_STATUSES,
    Bug,
    TestCase,
    TestRun,
)
from qahub.services import permission_service
from qahub.services.events import publish
from qahub.services.project_service import load_context
from qahub.services.store import get_scoped, next_friendly_id, unit_of_work

logger = logging.getLogger(__name__)

ALLOWED_STATUSES = {
    "TestCase": TEST_CASE_STATUSES,
    "Bug": BUG_STATUSES,
    "Task": TASK_STATUSES,
}

RUN_ID_WIDTH = 3


def normalize_status(entity_type, value):
    """Map loose spellings ("In Progress", "to do") onto the canonical value.

    Raises:
        ValidationError: the value matches no status of the entity type.
    """
    allowed = ALLOWED_STATUSES[entity_type]
    if isinstance(value, str):
        key = value.replace(" ", "").replace("_", "").lower()
        for status in allowed:
            if status.lower() == key:
                return status
    raise ValidationError(
        f"Invalid {entity_type} status: {value!r}",
        details={"status": f"one of {list(allowed)}"},
    )


def missing_required_fields(entity_type, values):
    """Names of required fields that are empty. ``values`` is a dict or an entity."""
    missing = []
    for name in REQUIRED_FIELDS.get(entity_type, ()):
        raw = values.get(name) if isinstance(values, dict) else getattr(values, name, None)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            missing.append(name)
    return missing


def check_leaving_draft(entity_type, values, current_status, new_status):
    """Block a move out of Draft while required fields are empty."""
    if new_status == DRAFT_STATUS or current_status not in (None, DRAFT_STATUS):
        return
    missing = missing_required_fields(entity_type, values)
    if missing:
        raise ValidationError(
            f"Cannot leave {DRAFT_STATUS}: missing required fields {', '.join(missing)}",
            details={name: "required" for name in missing},
        )


# ═════════════════════════════════════════════════════════════════════════════
# FLUSH-ONLY APPLY
# ═════════════════════════════════════════════════════════════════════════════

def add_run(test_case, status, executed_by):
    """Append a TestRun with the next RUN-nnn id of the project."""
    if status not in RUN_STATUSES:
        raise ValidationError(f"Invalid run status: {status!r}",
                              details={"status": f"one of {list(RUN_STATUSES)}"})
    run = TestRun(
        run_id=next_friendly_id(test_case.project_id, "RUN", width=RUN_ID_WIDTH),
        test_case_id=test_case.id,
        project_id=test_case.project_id,
        status=status,
        executed_by=str(executed_by),
    )
    db.session.add(run)
    db.session.flush()
    return run


def apply_test_case_status(test_case, status, actor):
    """Set a test case status. Returns (changed, follow_up, run)."""
    status = normalize_status("TestCase", status)
    if status == test_case.status:
        return False, None, None
    check_leaving_draft("TestCase", test_case, test_case.status, status)
    test_case.status = status
    db.session.flush()

    run = add_run(test_case, status, actor.id) if status in RUN_STATUSES else None
    follow_up = None
    if status == "Fail":
        follow_up = {"action": "create_bug", "linked_test_case_id": test_case.id}
    return True, follow_up, run


def apply_bug_status(bug, status, actor, project):
    """Set a bug status and publish bug_status_changed. Returns changed."""
    status = normalize_status("Bug", status)
    if status == bug.status:
        return False
    check_leaving_draft("Bug", bug, bug.status, status)
    old_status = bug.status
    bug.status = status
    db.session.flush()
    publish("bug_status_changed", bug=bug, project=project, actor=actor, old_status=old_status)
    return True


def apply_task_status(task, status):
    status = normalize_status("Task", status)
    if status == task.status:
        return False
    task.status = status
    return True


# ═════════════════════════════════════════════════════════════════════════════
# AUTHORIZED ENTRY POINTS
# ═════════════════════════════════════════════════════════════════════════════

def change_test_case_status(actor, project_id, test_case_id, status):
    """Returns (test_case, follow_up, run); the status is committed even when
    a follow-up is returned."""
    with unit_of_work("change test case status"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_test_cases", "change test case status", actor)
        test_case = get_scoped(TestCase, test_case_id, project.id)
        old_status = test_case.status
        _changed, follow_up, run = apply_test_case_status(test_case, status, actor)
    logger.info("%s status %s → %s by %s",
                test_case.friendly_id, old_status, test_case.status, actor.id)
    return test_case, follow_up, run


def change_bug_status(actor, project_id, bug_id, status):
    with unit_of_work("change bug status"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_bug_status", "change bug status", actor)
        bug = get_scoped(Bug, bug_id, project.id)
        old_status = bug.status
        apply_bug_status(bug, status, actor, project)
    logger.info("%s status %s → %s by %s", bug.friendly_id, old_status, bug.status, actor.id)
    return bug


def change_task_status(actor, project_id, task_id, status):
    with unit_of_work("change task status"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_tasks", "change task status", actor)
        task = get_scoped(Task, task_id, project.id)
        apply_task_status(task, status)
    return task
