"""Testing service layer — test cases, bugs and test runs.

Transaction policy: every public function runs in one unit_of_work; the
flush-only helpers in link_service / workflow_service / comment_service
join that transaction.

Operations:
- Test case CRUD, duplicate (same or other project), move to another project
- Bug CRUD with symmetric test case links on create and bug_created event
- Test runs: explicit record, history, latest
- Cascading delete: links, task references and comments go with the entity
"""
import logging

from qahub.core.exceptions import ConflictError, ValidationError
from qahub.models import db
from qahub.models.testing import (
    BUG_SEVERITIES, DRAFT_STATUS, PRIORITIES,
    Bug, TestCase, TestRun,
)
from qahub.services import comment_service, link_service, permission_service, workflow_service
from qahub.services.events import publish
from qahub.services.project_service import load_context
from qahub.services.store import get_scoped, next_friendly_id, unit_of_work
from qahub.utils.helpers import coerce_str_list, parse_int, parse_int_list

logger = logging.getLogger(__name__)

TEST_CASE_FIELDS = (
    "title", "description", "preconditions", "steps", "expected_result", "priority", "tags",
)
BUG_FIELDS = (
    "title", "description", "steps_to_reproduce", "test_data", "expected_result",
    "actual_result", "severity", "tags", "attachments",
)

_TEXT_DEFAULTS = {
    "title": "", "description": "", "steps": "", "expected_result": "",
    "steps_to_reproduce": "",
}


# ── Shared helpers ───────────────────────────────────────────────────────────

def _clean_fields(data, allowed):
    """Pick and validate the editable fields present in ``data``."""
    values = {}
    for name in allowed:
        if name not in data:
            continue
        raw = data[name]
        if name == "tags":
            values[name] = coerce_str_list(raw, name)
        elif name == "attachments":
            values[name] = coerce_str_list(raw, name, unique=False)
        elif name == "priority":
            if raw not in PRIORITIES:
                raise ValidationError(f"Invalid priority: {raw!r}",
                                      details={name: f"one of {list(PRIORITIES)}"})
            values[name] = raw
        elif name == "severity":
            if raw not in BUG_SEVERITIES:
                raise ValidationError(f"Invalid severity: {raw!r}",
                                      details={name: f"one of {list(BUG_SEVERITIES)}"})
            values[name] = raw
        else:
            if raw is not None and not isinstance(raw, str):
                raise ValidationError(f"{name} must be a string", details={name: "string"})
            if raw is None:
                raw = _TEXT_DEFAULTS.get(name)
            values[name] = raw.strip() if name == "title" and raw else raw
    return values


def _check_version(entity, data):
    """Reject an update made against an older version the client has seen."""
    if "version" not in data or data["version"] is None:
        return
    if parse_int(data["version"], "version") != entity.version:
        raise ConflictError(
            type(entity).__name__, "version", data["version"],
            message=f"{type(entity).__name__} {entity.id} was modified (now version "
                    f"{entity.version}), reload and retry",
        )


def _changed(entity, values):
    return {k: v for k, v in values.items() if getattr(entity, k) != v}


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASES
# ═════════════════════════════════════════════════════════════════════════════

def list_test_cases(actor, project_id, status=None, priority=None, tag=None):
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, "can_view_test_cases", "view test cases", actor)
    q = TestCase.query.filter_by(project_id=project.id)
    if status:
        q = q.filter_by(status=workflow_service.normalize_status("TestCase", status))
    if priority:
        q = q.filter_by(priority=priority)
    items = q.order_by(TestCase.id.desc()).all()
    if tag:
        items = [tc for tc in items if tag in (tc.tags or [])]
    return items


def get_test_case(actor, project_id, test_case_id):
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, "can_view_test_cases", "view test case", actor)
    return get_scoped(TestCase, test_case_id, project.id)


def create_test_case(actor, project_id, data):
    """Create a test case; ``linked_bug_ids`` are linked symmetrically."""
    values = _clean_fields(data, TEST_CASE_FIELDS)
    status = workflow_service.normalize_status("TestCase", data.get("status") or DRAFT_STATUS)
    workflow_service.check_leaving_draft("TestCase", values, None, status)
    bug_ids = parse_int_list(data.get("linked_bug_ids"), "linked_bug_ids")

    with unit_of_work("create test case"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_create_test_cases", "create test case", actor)
        test_case = TestCase(
            project_id=project.id,
            friendly_id=next_friendly_id(project.id, "TC"),
            status=status,
            created_by=str(actor.id),
            **{"title": "", "steps": "", "expected_result": "", **values},
        )
        db.session.add(test_case)
        db.session.flush()
        for bug_id in bug_ids:
            bug = link_service.require_target(Bug, bug_id, project.id, "linked_bug_ids")
            link_service.attach_test_case_bug(test_case, bug, actor.id)

    logger.info("Test case %s created in project %s by %s",
                test_case.friendly_id, project_id, actor.id)
    return test_case


def update_test_case(actor, project_id, test_case_id, data):
    """Edit fields and, optionally, status. Returns (test_case, follow_up)."""
    values = _clean_fields(data, TEST_CASE_FIELDS)
    follow_up = None
    with unit_of_work("update test case"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_test_cases", "edit test case", actor)
        test_case = get_scoped(TestCase, test_case_id, project.id)
        _check_version(test_case, data)

        for name, value in _changed(test_case, values).items():
            setattr(test_case, name, value)
        if data.get("status") is not None:
            _c, follow_up, _run = workflow_service.apply_test_case_status(
                test_case, data["status"], actor,
            )
    return test_case, follow_up


def delete_test_case(actor, project_id, test_case_id):
    with unit_of_work("delete test case"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_test_cases", "delete test case", actor)
        test_case = get_scoped(TestCase, test_case_id, project.id)
        link_service.detach_everywhere("TestCase", test_case)
        db.session.delete(test_case)
    logger.info("Test case %s deleted by %s", test_case_id, actor.id)


def duplicate_test_case(actor, project_id, test_case_id, target_project_id=None):
    """Copy a test case (into the same or another project) as a new Draft."""
    with unit_of_work("duplicate test case"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_view_test_cases", "duplicate test case", actor)
        source = get_scoped(TestCase, test_case_id, project.id)

        target, target_caps = project, caps
        if target_project_id is not None:
            target_id = parse_int(target_project_id, "target_project_id")
            if target_id != project.id:
                target, target_caps = load_context(actor, target_id)
        permission_service.require(target_caps, "can_create_test_cases",
                                   "create test case", actor)

        copy = TestCase(
            project_id=target.id,
            friendly_id=next_friendly_id(target.id, "TC"),
            title=source.title,
            description=source.description,
            preconditions=source.preconditions,
            steps=source.steps,
            expected_result=source.expected_result,
            priority=source.priority,
            tags=list(source.tags or []),
            status=DRAFT_STATUS,
            created_by=str(actor.id),
        )
        db.session.add(copy)
    logger.info("Test case %s duplicated as %s (project %s)",
                source.friendly_id, copy.friendly_id, target.id)
    return copy


def move_test_case(actor, project_id, test_case_id, target_project_id):
    """Move a test case to another project.

    Links on both sides are dropped, the case gets the target project's
    next TC id and its runs are renumbered in the target sequence.
    """
    with unit_of_work("move test case"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_test_cases", "move test case", actor)
        test_case = get_scoped(TestCase, test_case_id, project.id)

        target_id = parse_int(target_project_id, "target_project_id")
        if target_id == project.id:
            raise ValidationError("Test case is already in this project",
                                  details={"target_project_id": "same project"})
        target, target_caps = load_context(actor, target_id)
        permission_service.require(target_caps, "can_create_test_cases",
                                   "create test case", actor)

        link_service.detach_everywhere("TestCase", test_case)
        test_case.project_id = target.id
        test_case.friendly_id = next_friendly_id(target.id, "TC")
        for run in test_case.runs.order_by(TestRun.run_at, TestRun.id).all():
            run.project_id = target.id
            run.run_id = next_friendly_id(target.id, "RUN", width=workflow_service.RUN_ID_WIDTH)
    logger.info("Test case %s moved from project %s to %s", test_case.id, project.id, target.id)
    return test_case


# ═════════════════════════════════════════════════════════════════════════════
# TEST RUNS
# ═════════════════════════════════════════════════════════════════════════════

def record_run(actor, project_id, test_case_id, status):
    """Record an execution without touching the test case status."""
    with unit_of_work("record test run"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_test_cases", "record test run", actor)
        test_case = get_scoped(TestCase, test_case_id, project.id)
        run = workflow_service.add_run(test_case, status, actor.id)
    return run


def list_runs(actor, project_id, test_case_id):
    """Runs of a test case, newest first."""
    test_case = get_test_case(actor, project_id, test_case_id)
    return test_case.runs.order_by(TestRun.run_at.desc(), TestRun.id.desc()).all()


def latest_run(actor, project_id, test_case_id):
    runs = list_runs(actor, project_id, test_case_id)
    return runs[0] if runs else None


# ═════════════════════════════════════════════════════════════════════════════
# BUGS
# ═════════════════════════════════════════════════════════════════════════════

def list_bugs(actor, project_id, status=None, severity=None, created_by=None):
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, "can_view_bugs", "view bugs", actor)
    q = Bug.query.filter_by(project_id=project.id)
    if status:
        q = q.filter_by(status=workflow_service.normalize_status("Bug", status))
    if severity:
        q = q.filter_by(severity=severity)
    if created_by:
        q = q.filter_by(created_by=str(created_by))
    return q.order_by(Bug.id.desc()).all()


def get_bug(actor, project_id, bug_id):
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, "can_view_bugs", "view bug", actor)
    return get_scoped(Bug, bug_id, project.id)


def create_bug(actor, project_id, data):
    """Create a bug, link the given test cases and publish bug_created.

    Typical caller: the follow-up of a test case moved to Fail, which sends
    ``linked_test_case_ids=[<test case id>]``.
    """
    values = _clean_fields(data, BUG_FIELDS)
    status = workflow_service.normalize_status("Bug", data.get("status") or DRAFT_STATUS)
    workflow_service.check_leaving_draft("Bug", values, None, status)
    test_case_ids = parse_int_list(data.get("linked_test_case_ids"), "linked_test_case_ids")

    with unit_of_work("create bug"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_create_bugs", "create bug", actor)
        bug = Bug(
            project_id=project.id,
            friendly_id=next_friendly_id(project.id, "BUG"),
            status=status,
            created_by=str(actor.id),
            **{"title": "", "steps_to_reproduce": "", **values},
        )
        db.session.add(bug)
        db.session.flush()
        for tc_id in test_case_ids:
            test_case = link_service.require_target(TestCase, tc_id, project.id,
                                                     "linked_test_case_ids")
            link_service.attach_test_case_bug(test_case, bug, actor.id)
        publish("bug_created", bug=bug, project=project, actor=actor)

    logger.info("Bug %s created in project %s by %s", bug.friendly_id, project_id, actor.id)
    return bug


def update_bug(actor, project_id, bug_id, data):
    """Edit a bug.

    Field changes need can_edit_bugs; a status change alone needs only
    can_edit_bug_status. Fields sent unchanged do not count as edits.
    """
    values = _clean_fields(data, BUG_FIELDS)
    with unit_of_work("update bug"):
        project, caps = load_context(actor, project_id)
        bug = get_scoped(Bug, bug_id, project.id)
        _check_version(bug, data)

        changes = _changed(bug, values)
        if changes:
            permission_service.require(caps, "can_edit_bugs", "edit bug", actor)
            for name, value in changes.items():
                setattr(bug, name, value)
        if data.get("status") is not None:
            permission_service.require(caps, "can_edit_bug_status", "change bug status", actor)
            workflow_service.apply_bug_status(bug, data["status"], actor, project)
        if not changes and data.get("status") is None:
            # Nothing to do, but the caller still needs read access.
            permission_service.require(caps, "can_view_bugs", "view bug", actor)
    return bug


def delete_bug(actor, project_id, bug_id):
    """Delete a bug. Requires can_edit_bugs and being QA or the creator."""
    with unit_of_work("delete bug"):
        project, caps = load_context(actor, project_id)
        permission_service.require(caps, "can_edit_bugs", "delete bug", actor)
        bug = get_scoped(Bug, bug_id, project.id)
        permission_service.require_owner_or_qa(actor, project, bug.created_by, "delete bug")
        link_service.detach_everywhere("Bug", bug)
        comment_service.delete_for_subject("Bug", bug.id)
        db.session.delete(bug)
    logger.info("Bug %s deleted by %s", bug_id, actor.id)
