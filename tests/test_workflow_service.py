"""Status gate: Draft required fields, Fail follow-up, test runs, bug status rights."""

import pytest

from qahub.core.exceptions import AuthorizationError, ValidationError
from qahub.models import db
from qahub.models import testing as testing_models
from qahub.services import project_service, testing_service, workflow_service
from qahub.services.workflow_service import normalize_status


@pytest.mark.parametrize("raw,expected", [
    ("In Progress", "InProgress"),
    ("in_progress", "InProgress"),
    ("todo", "Todo"),
    ("FAIL", "Fail"),
])
def test_normalize_test_case_status(raw, expected):
    assert normalize_status("TestCase", raw) == expected


def test_normalize_rejects_unknown_status():
    with pytest.raises(ValidationError):
        normalize_status("Bug", "Reopened")
    with pytest.raises(ValidationError):
        normalize_status("Task", None)


# ── Draft gate ───────────────────────────────────────────────────────────


def test_draft_gate_names_missing_fields(project, qa):
    tc = testing_service.create_test_case(qa, project.id, {"title": "Only a title"})
    assert tc.status == "Draft"

    with pytest.raises(ValidationError) as exc:
        workflow_service.change_test_case_status(qa, project.id, tc.id, "Todo")
    assert set(exc.value.details) == {"steps", "expected_result"}

    db.session.expire_all()
    assert db.session.get(testing_models.TestCase, tc.id).status == "Draft"


def test_draft_to_draft_is_a_noop(project, qa):
    tc = testing_service.create_test_case(qa, project.id, {"title": "Only a title"})
    version = tc.version
    tc, follow_up, run = workflow_service.change_test_case_status(qa, project.id, tc.id, "Draft")
    assert tc.status == "Draft"
    assert follow_up is None and run is None
    assert tc.version == version


def test_cannot_create_outside_draft_with_missing_fields(project, qa):
    with pytest.raises(ValidationError):
        testing_service.create_bug(qa, project.id, {"title": "No steps", "status": "Opened"})
    assert testing_service.list_bugs(qa, project.id) == []


def test_whitespace_does_not_satisfy_required_field(project, qa, ready_bug):
    bug = testing_service.create_bug(qa, project.id, {**ready_bug, "steps_to_reproduce": "  "})
    with pytest.raises(ValidationError) as exc:
        workflow_service.change_bug_status(qa, project.id, bug.id, "Opened")
    assert "steps_to_reproduce" in exc.value.details


def test_any_move_allowed_after_draft(project, qa, ready_bug):
    bug = testing_service.create_bug(qa, project.id, ready_bug)
    for status in ("Opened", "Closed", "Draft", "Fixed"):
        bug = workflow_service.change_bug_status(qa, project.id, bug.id, status)
        assert bug.status == status


# ── Test case Fail / Pass side effects ───────────────────────────────────


def test_fail_returns_create_bug_follow_up_and_commits(project, qa, ready_test_case):
    tc = testing_service.create_test_case(qa, project.id, {**ready_test_case, "status": "Todo"})
    tc, follow_up, run = workflow_service.change_test_case_status(qa, project.id, tc.id, "Fail")

    assert follow_up == {"action": "create_bug", "linked_test_case_id": tc.id}
    assert run.status == "Fail"
    assert run.run_id == "RUN-001"

    # Abandoning the follow-up leaves the status committed.
    db.session.rollback()
    db.session.expire_all()
    assert db.session.get(testing_models.TestCase, tc.id).status == "Fail"


def test_follow_up_bug_links_back(project, qa, ready_test_case, ready_bug):
    tc = testing_service.create_test_case(qa, project.id, {**ready_test_case, "status": "Todo"})
    _tc, follow_up, _run = workflow_service.change_test_case_status(qa, project.id, tc.id, "Fail")
    bug = testing_service.create_bug(qa, project.id, {
        **ready_bug, "linked_test_case_ids": [follow_up["linked_test_case_id"]],
    })
    db.session.expire_all()
    assert db.session.get(testing_models.TestCase, tc.id).linked_bug_ids == [bug.id]


def test_pass_records_run_without_follow_up(project, qa, ready_test_case):
    tc = testing_service.create_test_case(qa, project.id, {**ready_test_case, "status": "Todo"})
    _tc, follow_up, run = workflow_service.change_test_case_status(
        qa, project.id, tc.id, "pass",
    )
    assert follow_up is None
    assert run.status == "Pass"
    assert run.executed_by == qa.id


def test_update_with_status_returns_follow_up(project, qa, ready_test_case):
    tc = testing_service.create_test_case(qa, project.id, {**ready_test_case, "status": "Todo"})
    tc, follow_up = testing_service.update_test_case(qa, project.id, tc.id, {"status": "Fail"})
    assert tc.status == "Fail"
    assert follow_up["action"] == "create_bug"


def test_run_history_newest_first(project, qa, ready_test_case):
    tc = testing_service.create_test_case(qa, project.id, {**ready_test_case, "status": "Todo"})
    testing_service.record_run(qa, project.id, tc.id, "Pass")
    testing_service.record_run(qa, project.id, tc.id, "Fail")

    runs = testing_service.list_runs(qa, project.id, tc.id)
    assert [r.run_id for r in runs] == ["RUN-002", "RUN-001"]
    assert testing_service.latest_run(qa, project.id, tc.id).status == "Fail"
    # An explicit run record leaves the case status alone.
    assert testing_service.get_test_case(qa, project.id, tc.id).status == "Todo"


def test_record_run_rejects_other_statuses(project, qa, ready_test_case):
    tc = testing_service.create_test_case(qa, project.id, ready_test_case)
    with pytest.raises(ValidationError):
        testing_service.record_run(qa, project.id, tc.id, "Blocked")


# ── Bug status relaxation ────────────────────────────────────────────────


def test_dev_with_status_only_can_move_bug_but_not_edit(project, qa, dev, ready_bug):
    bug = testing_service.create_bug(qa, project.id, {**ready_bug, "status": "Opened"})

    bug = workflow_service.change_bug_status(dev, project.id, bug.id, "Fixed")
    assert bug.status == "Fixed"

    with pytest.raises(AuthorizationError):
        testing_service.update_bug(dev, project.id, bug.id, {"title": "Renamed by dev"})


def test_dev_update_with_unchanged_fields_counts_as_status_change(project, qa, dev, ready_bug):
    bug = testing_service.create_bug(qa, project.id, {**ready_bug, "status": "Opened"})
    bug = testing_service.update_bug(dev, project.id, bug.id, {
        "title": ready_bug["title"], "status": "Fixed",
    })
    assert bug.status == "Fixed"


def test_dev_without_status_rights(project, qa, dev, ready_bug):
    project_service.update_permissions(qa, project.id, {"devCanEditBugStatusOnly": False})
    bug = testing_service.create_bug(qa, project.id, {**ready_bug, "status": "Opened"})
    with pytest.raises(AuthorizationError):
        workflow_service.change_bug_status(dev, project.id, bug.id, "Fixed")
